import logging
import unittest

import numpy as np
import scipy.sparse as sp

from context import gridreduce, create_network, two_zone_network
from gridreduce.exceptions import InvalidTopologyError, SingularMatrixWarning
from gridreduce.grid import SensitivityEngine, kron_reduce


class TestKronReduction(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        logging.getLogger('log.gridreduce').setLevel(logging.ERROR)
        cls.nodes, cls.lines = two_zone_network()
        cls.ybus = gridreduce.grid.build_admittance_matrix(cls.lines, cls.nodes)

    def test_invalid_representatives(self):
        for representatives in [[], [1, 1], [1, 5], [0, 2]]:
            with self.assertRaises(InvalidTopologyError):
                kron_reduce(self.ybus, representatives)

    def test_full_set_strict(self):
        with self.assertRaises(InvalidTopologyError):
            kron_reduce(self.ybus, [1, 2, 3, 4])

    def test_idempotence(self):
        reduced = kron_reduce(self.ybus, [1, 2, 3, 4], strict=False)
        np.testing.assert_allclose(reduced.toarray(), self.ybus.toarray())

        reduced = kron_reduce(self.ybus, [1, 3])
        reduced_again = kron_reduce(reduced, [1, 2], strict=False)
        np.testing.assert_allclose(reduced_again.toarray(), reduced.toarray())

    def test_series_lines(self):
        nodes, lines = create_network([(1, 2, 0.0, 0.1, 100), (2, 3, 0.0, 0.3, 100)], ["A", "B", "C"])
        ybus = gridreduce.grid.build_admittance_matrix(lines, nodes)
        reduced = kron_reduce(ybus, [1, 3]).toarray()
        # two lines in series, the equivalent reactance is the sum
        y_eq = 1 / 0.4j
        np.testing.assert_allclose(reduced, [[y_eq, -y_eq], [-y_eq, y_eq]], atol=1e-10)

    def test_order_of_representatives(self):
        reduced = kron_reduce(self.ybus, [1, 3]).toarray()
        reduced_reversed = kron_reduce(self.ybus, [3, 1]).toarray()
        np.testing.assert_allclose(reduced_reversed, reduced[::-1, ::-1])

    def test_symmetric_and_sparse(self):
        reduced = kron_reduce(self.ybus, [1, 3])
        self.assertTrue(sp.issparse(reduced))
        np.testing.assert_allclose(reduced.toarray(), reduced.toarray().T, atol=1e-12)

    def test_transfer_preserved(self):
        # the ptdf sum over the synthetic line equals the transferred power of one
        reduced = kron_reduce(self.ybus, [1, 3])
        engine = SensitivityEngine(reduced, bus_ids=[1, 3])
        self.assertEqual(len(engine.branches), 1)
        np.testing.assert_allclose(engine.transaction_ptdf(1, 3), [1])

    def test_singular_elimination_block(self):
        # buses 3 and 4 form an island without connection to representative nodes
        nodes, lines = create_network([(1, 2, 0.0, 0.1, 100), (3, 4, 0.0, 0.1, 100)],
                                      ["A", "B", "C", "C"])
        ybus = gridreduce.grid.build_admittance_matrix(lines, nodes)
        with self.assertWarns(SingularMatrixWarning):
            reduced = kron_reduce(ybus, [1, 2])
        self.assertTrue(np.all(np.isfinite(reduced.toarray())))
        np.testing.assert_allclose(reduced.toarray(), ybus[:2, :2].toarray())


if __name__ == '__main__':
    unittest.main()
