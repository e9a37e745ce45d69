import logging
import unittest
import warnings

import cvxpy as cp
import numpy as np
import pandas as pd

from context import gridreduce
from gridreduce.exceptions import SolverStatusWarning
from gridreduce.optimization import CapacityFitter, OptimizationType, prepare_fitting_data


def synthetic_triangle():
    """PTDF table of three representative nodes connected by equal synthetic lines."""
    rows = []
    for bus_from, bus_to, ptdf in [(1, 4, [2/3, 1/3, -1/3]), (1, 7, [1/3, 2/3, 1/3]),
                                   (4, 7, [-1/3, 1/3, 2/3])]:
        # second synthetic line is stored in reverse direction
        for (line_from, line_to), value in zip([(1, 4), (7, 1), (4, 7)], ptdf):
            rows.append([bus_from, bus_to, line_from, line_to, value])
    ptdf_reduced = pd.DataFrame(rows, columns=["transaction_from", "transaction_to",
                                               "synth_line_from", "synth_line_to", "ptdf"])
    ttc_original = pd.DataFrame({"transaction_from": [1, 1, 1, 4],
                                 "transaction_to": [2, 4, 7, 7],
                                 "ttc": [0.5, 1.0, 0.8, 0.6],
                                 "bounded": True})
    return ttc_original, ptdf_reduced


class TestFittingData(unittest.TestCase):

    def setUp(self):
        logging.getLogger('log.gridreduce').setLevel(logging.ERROR)
        self.ttc_original, self.ptdf_reduced = synthetic_triangle()

    def test_prepare_fitting_data(self):
        data = prepare_fitting_data(self.ttc_original, self.ptdf_reduced)
        self.assertEqual(data.synth_lines, [(1, 4), (1, 7), (4, 7)])
        # transaction (1, 2) does not connect representative nodes
        self.assertEqual(list(zip(data.transactions.transaction_from, data.transactions.transaction_to)),
                         [(1, 4), (1, 7), (4, 7)])
        np.testing.assert_allclose(data.ttc_original, [1.0, 0.8, 0.6])
        self.assertEqual(data.ptdf.shape, (3, 3))
        np.testing.assert_allclose(data.ptdf[0].toarray().ravel(), [2/3, 1/3, 1/3])
        self.assertTrue(np.all(data.values > 0))

    def test_duplicate_and_small_entries(self):
        ptdf_reduced = pd.concat([self.ptdf_reduced, self.ptdf_reduced.iloc[[0]]], ignore_index=True)
        ptdf_reduced.loc[2, "ptdf"] = 1e-5
        data = prepare_fitting_data(self.ttc_original, ptdf_reduced)
        self.assertEqual(len(data.values), 8)
        self.assertEqual(data.ptdf[0, 2], 0)
        pairs = list(zip(data.t_idx, data.l_idx))
        self.assertEqual(pairs, sorted(set(pairs)))

    def test_unbounded_transactions_excluded(self):
        self.ttc_original.loc[3, "ttc"] = np.inf
        with self.assertLogs('log.gridreduce.optimization.prepare_fitting_data', level="WARNING"):
            data = prepare_fitting_data(self.ttc_original, self.ptdf_reduced)
        self.assertEqual(len(data.transactions), 2)
        self.assertEqual(data.ptdf.shape, (2, 3))


class TestCapacityFitter(unittest.TestCase):

    def setUp(self):
        logging.getLogger('log.gridreduce').setLevel(logging.ERROR)
        self.options = gridreduce.tools.default_options()
        self.ttc_original, self.ptdf_reduced = synthetic_triangle()
        self.data = prepare_fitting_data(self.ttc_original, self.ptdf_reduced)

    def check_ratio_constraints(self, result):
        capacity = result.capacities.capacity.values
        ttc_eq = result.ttc_equivalent.ttc_equivalent.values
        flows = self.data.values*ttc_eq[self.data.t_idx]
        self.assertTrue(np.all(flows <= capacity[self.data.l_idx] + 1e-4))

    def test_invalid_optimization_type(self):
        self.options["optimization"]["type"] = "NLP"
        with self.assertRaises(ValueError):
            CapacityFitter(self.options)
        self.options["optimization"]["type"] = "QP"
        fitter = CapacityFitter(self.options)
        with self.assertRaises(ValueError):
            fitter.fit(self.ttc_original, self.ptdf_reduced, "NLP")

    def test_nothing_to_fit(self):
        fitter = CapacityFitter(self.options)
        with self.assertRaises(ValueError):
            fitter.fit(self.ttc_original, self.ptdf_reduced.assign(ptdf=0.0))

    def test_qp(self):
        fitter = CapacityFitter(self.options)
        result = fitter.fit(self.ttc_original, self.ptdf_reduced)
        self.assertEqual(result.optimization_type, OptimizationType.QP)
        self.assertTrue(result.optimal)
        self.assertEqual(len(result.capacities), 3)
        self.assertTrue((result.capacities.capacity >= -1e-6).all())
        self.check_ratio_constraints(result)
        # small regularization, the TTCs can be matched almost exactly
        np.testing.assert_allclose(result.ttc_equivalent.ttc_equivalent,
                                   result.ttc_equivalent.ttc_original, atol=1e-2)
        self.assertListEqual(list(result.ttc_equivalent.columns),
                             ["transaction_from", "transaction_to", "ttc_original", "ttc_equivalent",
                              "limiting_synth_line_from", "limiting_synth_line_to"])
        self.assertTrue((result.ttc_equivalent.limiting_synth_line_from == 0).all())

    def test_lp(self):
        fitter = CapacityFitter(self.options)
        result = fitter.fit(self.ttc_original, self.ptdf_reduced, optimization_type="LP")
        self.assertTrue(result.optimal)
        self.check_ratio_constraints(result)
        ttc = result.ttc_equivalent
        self.assertTrue(np.all(ttc.ttc_equivalent <= ttc.ttc_original + 1e-5))
        # without upper bounds on the capacities the original TTCs are attainable
        np.testing.assert_allclose(ttc.ttc_equivalent, ttc.ttc_original, atol=1e-4)
        self.assertAlmostEqual(result.objective, 2.4, places=4)

    @unittest.skipUnless("SCIP" in cp.installed_solvers(), "SCIP not installed")
    def test_miqp(self):
        fitter = CapacityFitter(self.options)
        result = fitter.fit(self.ttc_original, self.ptdf_reduced, optimization_type=OptimizationType.MIQP)
        self.assertTrue(result.optimal)
        b = fitter.model.var_dict["b"].value
        for t in range(len(self.data.transactions)):
            self.assertLessEqual(np.sum(b[self.data.t_idx == t] > 0.5), 1)

        capacity = dict(zip(zip(result.capacities.synth_line_from, result.capacities.synth_line_to),
                            result.capacities.capacity))
        values = {(t, self.data.synth_lines[l]): v
                  for t, l, v in zip(self.data.t_idx, self.data.l_idx, self.data.values)}
        for t, row in result.ttc_equivalent.iterrows():
            line = (row.limiting_synth_line_from, row.limiting_synth_line_to)
            if line == (0, 0):
                self.assertAlmostEqual(row.ttc_equivalent, 0, places=4)
            else:
                self.assertAlmostEqual(row.ttc_equivalent, capacity[line]/values[(t, line)], places=3)

    def test_check_status(self):
        fitter = CapacityFitter(self.options)
        result_warnings = []
        self.assertTrue(fitter._check_status(cp.OPTIMAL, result_warnings))
        with self.assertWarns(SolverStatusWarning):
            self.assertFalse(fitter._check_status(cp.INFEASIBLE, result_warnings))
        self.assertEqual(len(result_warnings), 1)

    @unittest.skipUnless("OSQP" in cp.installed_solvers(), "OSQP not installed")
    def test_iteration_limit(self):
        self.options["optimization"]["solver"] = "OSQP"
        self.options["optimization"]["solver_options"] = {"max_iter": 1}
        fitter = CapacityFitter(self.options)
        with self.assertWarns(SolverStatusWarning):
            result = fitter.fit(self.ttc_original, self.ptdf_reduced)
        self.assertIs(result.optimal, False)
        self.assertEqual(result.status, cp.USER_LIMIT)
        self.assertListEqual(result.warnings, ["Solution status of the capacity fitting is user_limit."])
        self.assertEqual(len(result.capacities), 3)
        self.assertEqual(len(result.ttc_equivalent), 3)

    def test_solver_options(self):
        self.options["optimization"]["solver"] = "NOT_A_SOLVER"
        fitter = CapacityFitter(self.options)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            with self.assertRaises(cp.error.SolverError):
                fitter.fit(self.ttc_original, self.ptdf_reduced)


if __name__ == '__main__':
    unittest.main()
