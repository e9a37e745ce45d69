import unittest

import numpy as np
import scipy.sparse as sp

from context import gridreduce, create_network, triangle_network
from gridreduce.grid.admittance import bus_shunt_admittance


class TestAdmittance(unittest.TestCase):

    def setUp(self):
        self.nodes, self.lines = triangle_network()
        self.ybus = gridreduce.grid.build_admittance_matrix(self.lines, self.nodes)

    def test_triangle_full_rank(self):
        self.assertTrue(sp.issparse(self.ybus))
        self.assertEqual(self.ybus.shape, (3, 3))
        self.assertEqual(np.linalg.matrix_rank(self.ybus.toarray()), 3)

    def test_symmetry(self):
        dense = self.ybus.toarray()
        np.testing.assert_allclose(dense, dense.T)

    def test_off_diagonal(self):
        y_12 = 1 / (0.01 + 0.1j)
        self.assertAlmostEqual(self.ybus[0, 1], -y_12)
        self.assertAlmostEqual(self.ybus[1, 0], -y_12)

    def test_lossless_row_sums(self):
        dense = self.ybus.toarray()
        np.testing.assert_allclose(dense.sum(axis=1), 0, atol=1e-10)

    def test_row_sums_with_shunts(self):
        nodes, lines = create_network([(1, 2, 0.01, 0.1, 100), (2, 3, 0.01, 0.1, 100)],
                                      ["A", "A", "B"], b=0.02)
        nodes.loc[2, "gs"] = 0.01
        nodes.loc[3, "bs"] = 0.5
        ybus = gridreduce.grid.build_admittance_matrix(lines, nodes).toarray()
        shunt = bus_shunt_admittance(lines, nodes)

        np.testing.assert_allclose(ybus.sum(axis=1) - shunt, 0, atol=1e-10)
        self.assertAlmostEqual(shunt[1], 0.01 + 0.02j)
        self.assertAlmostEqual(shunt[2], 0.51j)

    def test_parallel_lines_accumulate(self):
        nodes, lines = create_network([(1, 2, 0.0, 0.2, 100), (1, 2, 0.0, 0.2, 100)], ["A", "A"])
        ybus = gridreduce.grid.build_admittance_matrix(lines, nodes)
        self.assertAlmostEqual(ybus[0, 1], 10j)
        self.assertAlmostEqual(ybus[0, 0], -10j)

    def test_susceptance_matrix(self):
        susceptance = gridreduce.grid.susceptance_matrix(self.ybus)
        self.assertAlmostEqual(susceptance[0, 1], -np.imag(-1 / (0.01 + 0.1j)))
        # series susceptance b_ij = -B_ij is positive for inductive lines
        self.assertTrue(-susceptance[0, 1] > 0)


if __name__ == '__main__':
    unittest.main()
