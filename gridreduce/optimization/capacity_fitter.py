"""Fitting of synthetic line capacities in the reduced network."""
import logging
import types
import warnings
from enum import Enum

import cvxpy as cp
import numpy as np
import pandas as pd
import scipy.sparse as sp

from gridreduce.exceptions import SolverStatusWarning


class OptimizationType(Enum):
    """Formulations available to fit the synthetic line capacities."""
    QP = "QP"
    MIQP = "MIQP"
    LP = "LP"


def prepare_fitting_data(ttc_original, ptdf_reduced, epsilon=1e-3):
    """Precompute the data shared by all formulations.

    Synthetic lines are identified by the canonical pair (min, max) of their
    representative nodes, in order of first appearance in *ptdf_reduced*. Only
    canonical transactions between representative nodes with a finite original TTC
    are considered. The ptdf is stored as sparse transaction x synthetic line matrix
    of absolute values, entries below *epsilon* are discarded.

    Parameters
    ----------
    ttc_original : pandas.DataFrame
        TTC of the original network with columns transaction_from, transaction_to,
        ttc and bounded.
    ptdf_reduced : pandas.DataFrame
        PTDF table of the reduced network with columns transaction_from,
        transaction_to, synth_line_from, synth_line_to and ptdf, in original bus ids.
    epsilon : float, optional
        PTDF threshold.

    Returns
    -------
    data : types.SimpleNamespace
        With attributes synth_lines, transactions, ttc_original, ptdf (scipy.sparse.csr_matrix)
        and the nonzero entries of ptdf as t_idx, l_idx and values.
    """
    logger = logging.getLogger('log.gridreduce.optimization.prepare_fitting_data')
    table = ptdf_reduced.copy()
    table["u"] = np.minimum(table.synth_line_from, table.synth_line_to)
    table["v"] = np.maximum(table.synth_line_from, table.synth_line_to)

    synth_lines = table[["u", "v"]].drop_duplicates().reset_index(drop=True)
    synth_lines["l"] = synth_lines.index

    representatives = set(table.transaction_from) | set(table.transaction_to)
    condition = (ttc_original.transaction_from.isin(representatives)
                 & ttc_original.transaction_to.isin(representatives)
                 & (ttc_original.transaction_from < ttc_original.transaction_to))
    transactions = ttc_original.loc[condition, ["transaction_from", "transaction_to", "ttc"]]

    unbounded = ~np.isfinite(transactions.ttc)
    if unbounded.any():
        logger.warning("Excluding %d transactions without finite original TTC.", unbounded.sum())
    transactions = transactions[~unbounded].reset_index(drop=True)
    transactions["t"] = transactions.index

    table = table.merge(transactions[["transaction_from", "transaction_to", "t"]],
                        on=["transaction_from", "transaction_to"], how="inner")
    table = table.merge(synth_lines, on=["u", "v"], how="inner")
    table["value"] = table.ptdf.abs()
    table = table[table.value > epsilon].drop_duplicates(["t", "l"], keep="last")
    table = table.sort_values(["t", "l"])

    num_transactions, num_lines = len(transactions), len(synth_lines)
    ptdf = sp.csr_matrix((table.value.values, (table.t.values, table.l.values)),
                         shape=(num_transactions, num_lines))
    logger.info("Synthetic lines: %d, canonical transactions: %d, relevant PTDF entries: %d",
                num_lines, num_transactions, len(table))

    return types.SimpleNamespace(
        synth_lines=list(zip(synth_lines.u, synth_lines.v)),
        transactions=transactions[["transaction_from", "transaction_to"]],
        ttc_original=transactions.ttc.values.astype(float),
        ptdf=ptdf,
        t_idx=table.t.values.astype(int),
        l_idx=table.l.values.astype(int),
        values=table.value.values.astype(float),
    )


class CapacityFitter():
    """Fit the capacities of the synthetic lines in the reduced network.

    The reduced network is described by the ptdfs of the transactions between
    representative nodes on the synthetic lines. The capacities :math:`C_{eq}`
    of the synthetic lines are chosen such that the resulting transfer capacities
    :math:`TTC_{eq}` match the original network's TTCs as close as possible. All
    formulations share the ratio constraint, which ensures that a transfer of
    :math:`TTC_{eq}` does not overload a synthetic line:

    .. math:: TTC_{eq}[t] |PTDF[t,l]| \\leq C_{eq}[l]

    There are currently the following formulations:
        * QP : Minimizes the squared mismatch between equivalent and original
          TTC, regularized with :math:`\\lambda \\sum C_{eq}^2`.
        * MIQP : Same objective as QP but represents the TTC of each transaction
          through at most one binding synthetic line, using auxiliary variables
          Z[t,l] and binary variables b[t,l] in big-M constraints. This identifies
          the binding (limiting) synthetic line of each transaction.
        * LP : Maximizes the sum of equivalent TTCs not exceeding the original TTCs.

    The problem is formulated in cvxpy, which makes the solver exchangeable. If no
    solver is specified in the options cvxpy chooses one, except for MIQP where SCIP
    is used.

    Parameters
    ----------
    options : dict
        The options from GRIDREDUCE, see :func:`~gridreduce.tools.default_options`.

    Attributes
    ----------
    optimization_type : :class:`~OptimizationType`
        Formulation used by :meth:`~fit`.
    model : cvxpy.Problem
        The last problem that was solved.
    """

    def __init__(self, options):
        self.logger = logging.getLogger('log.gridreduce.optimization.CapacityFitter')
        self.options = options
        self.optimization_type = OptimizationType(options["optimization"]["type"])
        self.model = None

    def fit(self, ttc_original, ptdf_reduced, optimization_type=None):
        """Fit the synthetic line capacities.

        Parameters
        ----------
        ttc_original : pandas.DataFrame
            TTC table of the original network.
        ptdf_reduced : pandas.DataFrame
            PTDF table of the reduced network in original bus ids.
        optimization_type : str or :class:`~OptimizationType`, optional
            Overwrites the type from the options.

        Returns
        -------
        result : types.SimpleNamespace
            With the attributes capacities (DataFrame synth_line_from, synth_line_to,
            capacity), ttc_equivalent (DataFrame transaction_from, transaction_to,
            ttc_original, ttc_equivalent, limiting_synth_line_from,
            limiting_synth_line_to), optimization_type, status, optimal, objective,
            warnings and the fitting data.

        Raises
        ------
        ValueError
            If there is no transaction or synthetic line to fit.
        cvxpy.error.SolverError
            If the solver fails to solve the problem.
        """
        if optimization_type is not None:
            self.optimization_type = OptimizationType(optimization_type)
        opt_type = self.optimization_type
        self.logger.info("Optimizing equivalent capacities (Type: %s)", opt_type.value)

        data = prepare_fitting_data(ttc_original, ptdf_reduced,
                                    self.options["optimization"]["ptdf_epsilon"])
        if len(data.transactions) == 0 or len(data.values) == 0:
            raise ValueError("No transactions or synthetic lines to fit capacities for.")

        builder = {OptimizationType.QP: self._build_qp_model,
                   OptimizationType.MIQP: self._build_miqp_model,
                   OptimizationType.LP: self._build_lp_model}[opt_type]
        self.model, variables = builder(data)

        result = types.SimpleNamespace(optimization_type=opt_type, data=data, warnings=[])
        result.status = self._solve(self.model, opt_type)
        result.optimal = self._check_status(result.status, result.warnings)
        result.objective = self.model.value

        capacity = self._values(variables["C_eq"], len(data.synth_lines))
        ttc_equivalent = self._values(variables["TTC_eq"], len(data.transactions))
        result.capacities = pd.DataFrame({
            "synth_line_from": [u for u, _ in data.synth_lines],
            "synth_line_to": [v for _, v in data.synth_lines],
            "capacity": capacity,
        })
        result.ttc_equivalent = data.transactions.copy()
        result.ttc_equivalent["ttc_original"] = data.ttc_original
        result.ttc_equivalent["ttc_equivalent"] = ttc_equivalent

        binding_from, binding_to = self._binding_lines(data, variables.get("b"))
        result.ttc_equivalent["limiting_synth_line_from"] = binding_from
        result.ttc_equivalent["limiting_synth_line_to"] = binding_to

        self._log_statistics(result)
        return result

    def _build_qp_model(self, data):
        """Least squares fit of the TTCs with regularization of the capacities."""
        lam = self.options["optimization"]["lambda"]
        c_eq = cp.Variable(len(data.synth_lines), nonneg=True, name="C_eq")
        ttc_eq = cp.Variable(len(data.transactions), nonneg=True, name="TTC_eq")

        objective = cp.Minimize(cp.sum_squares(ttc_eq - data.ttc_original) + lam*cp.sum_squares(c_eq))
        constraints = self._ratio_constraints(data, ttc_eq, c_eq)
        return cp.Problem(objective, constraints), {"C_eq": c_eq, "TTC_eq": ttc_eq}

    def _build_miqp_model(self, data):
        """Least squares fit with at most one binding synthetic line per transaction.

        For each relevant pair (t, l) the variable Z[t,l] is either zero or equals
        C_eq[l], enforced by the binary b[t,l]. The TTC of a transaction is then
        C_eq[l]/|PTDF[t,l]| of its binding line, or zero without one.
        """
        lam = self.options["optimization"]["lambda"]
        num_pairs = len(data.values)
        big_m = data.ttc_original.max()*data.values.max()*self.options["optimization"]["bigM_factor"]
        self.logger.debug("Big-M for %d relevant pairs: %s", num_pairs, big_m)

        c_eq = cp.Variable(len(data.synth_lines), nonneg=True, name="C_eq")
        ttc_eq = cp.Variable(len(data.transactions), nonneg=True, name="TTC_eq")
        z = cp.Variable(num_pairs, nonneg=True, name="Z")
        b = cp.Variable(num_pairs, boolean=True, name="b")

        pairs = np.arange(num_pairs)
        shape = (len(data.transactions), num_pairs)
        allocation = sp.csr_matrix((1/data.values, (data.t_idx, pairs)), shape=shape)
        membership = sp.csr_matrix((np.ones(num_pairs), (data.t_idx, pairs)), shape=shape)

        objective = cp.Minimize(cp.sum_squares(ttc_eq - data.ttc_original) + lam*cp.sum_squares(c_eq))
        constraints = [ttc_eq == allocation @ z,
                       z <= c_eq[data.l_idx],
                       c_eq[data.l_idx] - z <= big_m*(1 - b),
                       z <= big_m*b,
                       membership @ b <= 1]
        return cp.Problem(objective, constraints), {"C_eq": c_eq, "TTC_eq": ttc_eq, "b": b}

    def _build_lp_model(self, data):
        """Maximize the equivalent TTCs, bounded by the original TTCs."""
        c_eq = cp.Variable(len(data.synth_lines), nonneg=True, name="C_eq")
        ttc_eq = cp.Variable(len(data.transactions), nonneg=True, name="TTC_eq")

        objective = cp.Maximize(cp.sum(ttc_eq))
        constraints = [ttc_eq <= data.ttc_original] + self._ratio_constraints(data, ttc_eq, c_eq)
        return cp.Problem(objective, constraints), {"C_eq": c_eq, "TTC_eq": ttc_eq}

    def _ratio_constraints(self, data, ttc_eq, c_eq):
        return [cp.multiply(data.values, ttc_eq[data.t_idx]) <= c_eq[data.l_idx]]

    def _solve(self, problem, opt_type):
        """Solve the problem with the configured solver and return its status."""
        solver = self.options["optimization"]["solver"] or None
        if solver is None and opt_type == OptimizationType.MIQP:
            solver = cp.SCIP
        solver_options = self.options["optimization"]["solver_options"]

        self.logger.info("Solving %s with %s", opt_type.value, solver or "default solver")
        try:
            problem.solve(solver=solver, **solver_options)
        except cp.error.SolverError:
            self.logger.error("Solver %s failed to solve the %s model.", solver, opt_type.value)
            raise
        self.logger.info("%s status: %s", opt_type.value, problem.status)
        return problem.status

    def _check_status(self, status, result_warnings):
        """Return True for an optimal status, otherwise issue a SolverStatusWarning."""
        if status == cp.OPTIMAL:
            return True
        message = f"Solution status of the capacity fitting is {status}."
        self.logger.warning(message)
        warnings.warn(message, SolverStatusWarning, stacklevel=3)
        result_warnings.append(message)
        return False

    def _values(self, variable, size):
        if variable.value is None:
            return np.full(size, np.nan)
        return np.asarray(variable.value, dtype=float).reshape(size)

    def _binding_lines(self, data, b):
        """Binding synthetic line of each transaction, (0, 0) if there is none."""
        binding_from = np.zeros(len(data.transactions), dtype=int)
        binding_to = np.zeros(len(data.transactions), dtype=int)
        if b is None or b.value is None:
            return binding_from, binding_to

        # pairs are sorted by (t, l), the first binding pair is kept
        found = set()
        for t, l, value in zip(data.t_idx, data.l_idx, b.value):
            if value > 0.5 and t not in found:
                binding_from[t], binding_to[t] = data.synth_lines[l]
                found.add(t)
        return binding_from, binding_to

    def _log_statistics(self, result):
        capacity = result.capacities.capacity
        self.logger.info("C_eq statistics: Min %.6f, Max %.6f, Mean %.6f, Std %.6f pu",
                         capacity.min(), capacity.max(), capacity.mean(), capacity.std())
        error = result.ttc_equivalent.ttc_equivalent - result.ttc_equivalent.ttc_original
        self.logger.info("TTC matching accuracy: Max |error| %.6f, Mean |error| %.6f, RMS %.6f pu",
                         error.abs().max(), error.abs().mean(), np.sqrt((error**2).mean()))
