import logging
import unittest

import numpy as np

from context import gridreduce, create_network, two_zone_network
from gridreduce.grid import node_degree, select_representative_nodes


class TestRepresentativeNodes(unittest.TestCase):

    def setUp(self):
        logging.getLogger('log.gridreduce').setLevel(logging.ERROR)
        self.nodes, self.lines = two_zone_network()
        self.ybus = gridreduce.grid.build_admittance_matrix(self.lines, self.nodes)

    def test_node_degree(self):
        np.testing.assert_array_equal(node_degree(self.ybus), [3, 2, 3, 2])

    def test_two_zone_selection(self):
        representatives = select_representative_nodes(self.ybus, self.nodes)
        self.assertEqual(list(representatives.bus), [1, 3])
        self.assertEqual(list(representatives.zone), ["A", "B"])
        self.assertEqual(list(representatives.degree), [3, 3])
        self.assertEqual(list(self.nodes.index[self.nodes.is_representative]), [1, 3])

    def test_deterministic(self):
        first = select_representative_nodes(self.ybus, self.nodes.copy().assign(is_representative=False))
        second = select_representative_nodes(self.ybus, self.nodes.copy().assign(is_representative=False))
        self.assertEqual(list(first.bus), list(second.bus))

    def test_tie_lowest_bus_id(self):
        nodes, lines = create_network([(1, 2, 0.0, 0.1, 100), (2, 3, 0.0, 0.1, 100),
                                       (3, 4, 0.0, 0.1, 100), (4, 1, 0.0, 0.1, 100)],
                                      ["B", "A", "A", "B"])
        ybus = gridreduce.grid.build_admittance_matrix(lines, nodes)
        representatives = select_representative_nodes(ybus, nodes)
        # zones in order of first appearance, all buses have degree 2
        self.assertEqual(list(representatives.zone), ["B", "A"])
        self.assertEqual(list(representatives.bus), [1, 2])

    def test_selected_only_once(self):
        select_representative_nodes(self.ybus, self.nodes)
        with self.assertRaises(ValueError):
            select_representative_nodes(self.ybus, self.nodes)


if __name__ == '__main__':
    unittest.main()
