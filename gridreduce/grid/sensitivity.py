"""Sensitivity analysis of GRIDREDUCE based on power transfer distribution factors."""
import itertools
import logging
import warnings
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pandas as pd
import progress
import scipy.sparse as sp
import scipy.sparse.linalg as spla
from progress.bar import Bar

import gridreduce.tools as tools
from gridreduce.exceptions import InvalidTopologyError, SingularMatrixWarning
from gridreduce.grid.admittance import susceptance_matrix

progress.HIDE_CURSOR, progress.SHOW_CURSOR = '', ''

# Smallest pivot of the LU factorization relative to the largest
PIVOT_TOLERANCE = 1e-12


def canonical_transactions(bus_ids):
    """Return all canonical transactions (a, b) with a < b.

    For N buses these are exactly N(N-1)/2 transactions, ordered by *a* then *b*.
    """
    return list(itertools.combinations(sorted(int(bus) for bus in bus_ids), 2))

def _factorize(matrix, logger):
    """Factorize a sparse square matrix and return a function solving for a rhs.

    The sparse LU factorization is used if possible. If the matrix is singular, as
    it happens for islanded networks, the pseudoinverse is used instead and a
    :class:`~gridreduce.exceptions.SingularMatrixWarning` is issued. A matrix is
    considered singular if the factorization fails, its pivots span more than
    1/PIVOT_TOLERANCE or the solution of a test rhs has a residual.
    """
    size = matrix.shape[0]
    if size == 0:
        return lambda rhs: np.zeros_like(rhs, dtype=float)
    matrix = sp.csc_matrix(matrix)
    try:
        lu = spla.splu(matrix)
        pivots = np.abs(lu.U.diagonal())
        rhs = np.arange(1, size + 1, dtype=float)
        x = lu.solve(rhs)
        if (pivots.min() > PIVOT_TOLERANCE*pivots.max() and np.all(np.isfinite(x))
                and np.allclose(matrix @ x, rhs)):
            return lu.solve
        logger.debug("Smallest pivot %s, largest pivot %s.", pivots.min(), pivots.max())
    except RuntimeError as error_msg:
        logger.debug(error_msg)

    message = "Reduced susceptance matrix is singular, using pseudoinverse."
    logger.warning(message)
    warnings.warn(message, SingularMatrixWarning, stacklevel=3)
    pseudo_inverse = np.linalg.pinv(matrix.toarray())
    return lambda rhs: pseudo_inverse @ rhs

def create_ptdf_table(transactions, ptdf, branch_from, branch_to, branch_labels=None,
                      prefix="line"):
    """Create a long DataFrame (transaction, branch, ptdf) from a ptdf matrix.

    Parameters
    ----------
    transactions : list(tuple)
        Transactions, one for each row of *ptdf*.
    ptdf : np.ndarray
        Matrix (T x K) of transaction ptdfs.
    branch_from, branch_to : array like
        Bus ids of the K branches.
    branch_labels : array like, optional
        Names of the K branches, added as column *prefix* if supplied.
    prefix : str, optional
        Column prefix of the branch columns, e.g. line or synth_line.
    """
    transactions = np.asarray(transactions, dtype=int).reshape(-1, 2)
    num_transactions, num_branches = ptdf.shape
    table = pd.DataFrame({
        "transaction_from": np.repeat(transactions[:, 0], num_branches),
        "transaction_to": np.repeat(transactions[:, 1], num_branches),
        prefix + "_from": np.tile(np.asarray(branch_from), num_transactions),
        prefix + "_to": np.tile(np.asarray(branch_to), num_transactions),
        "ptdf": ptdf.ravel(),
    })
    if branch_labels is not None:
        table.insert(2, prefix, np.tile(np.asarray(branch_labels), num_transactions))
    return table


class SensitivityEngine():
    """SensitivityEngine of GRIDREDUCE

    Calculates power transfer distribution factors (ptdf) for a network represented
    by its admittance matrix in a DC (linearized) power flow model. This is used for
    both the original and the kron-reduced network.

    The central idea is to calculate the ptdf for a single unit injection at each bus,
    balanced by a fixed reference (slack) bus, once. The susceptance matrix without
    the slack is factorized exactly once and reused for all solves. The ptdf of any
    transaction from bus *a* to bus *b* then follows from superposition as the
    difference of the single injection ptdfs of *a* and *b*, which avoids a
    factorization for each of the N(N-1)/2 transactions.

    The branches of the network are derived from the susceptance matrix
    :math:`B = -Im(Y)`: each bus pair (i, j) with :math:`|B_{ij}|` above the tolerance is
    a branch with series susceptance :math:`b_{ij} = -B_{ij}`. Branches are ordered by
    the matrix positions (i, j) with i < j. Bus pairs with a near-zero susceptance are
    not part of the branch set.

    The flow on branch (i, j) for the angles :math:`\\theta` is
    :math:`b_{ij} (\\theta_i - \\theta_j)`, positive in direction from i to j.

    Parameters
    ----------
    ybus : scipy.sparse matrix
        Admittance matrix (N x N).
    bus_ids : array like, optional
        Bus ids of the matrix rows/columns, defaults to 1..N. For a reduced network
        these are the ids of the representative nodes in the original network.
    reference_bus : int, optional
        Bus id of the reference slack, defaults to the first bus.
    tolerance : float, optional
        Susceptance below which a bus pair is not considered a branch.
    chunk_size : int, optional
        Number of unit injections/transactions processed at once.
    workers : int, optional
        Number of threads used to enumerate transaction ptdfs.

    Attributes
    ----------
    susceptance : scipy.sparse.csr_matrix
        Susceptance matrix :math:`B = -Im(Y)`.
    branches : pandas.DataFrame
        Branches with columns *node_i*, *node_j* (bus ids) and *b* (series susceptance).
    """

    def __init__(self, ybus, bus_ids=None, reference_bus=None, tolerance=1e-8,
                 chunk_size=1000, workers=1):
        self.logger = logging.getLogger('log.gridreduce.grid.SensitivityEngine')
        self.ybus = sp.csr_matrix(ybus)
        num_buses = self.ybus.shape[0]

        if bus_ids is None:
            bus_ids = np.arange(1, num_buses + 1)
        self.bus_ids = np.asarray(bus_ids, dtype=int)
        if len(self.bus_ids) != num_buses or len(set(self.bus_ids)) != num_buses:
            raise InvalidTopologyError("bus_ids have to be unique and match the admittance matrix.")
        self._bus_position = {bus: position for position, bus in enumerate(self.bus_ids)}

        if reference_bus is None:
            reference_bus = self.bus_ids[0]
        if reference_bus not in self._bus_position:
            raise InvalidTopologyError(f"Reference bus {reference_bus} is not part of the network.")
        self.reference_bus = int(reference_bus)
        self.tolerance = tolerance
        self.chunk_size = chunk_size
        self.workers = workers

        self.susceptance = susceptance_matrix(self.ybus)
        self.non_slack = np.array([pos for pos in range(num_buses)
                                   if pos != self._bus_position[self.reference_bus]], dtype=int)
        self._branch_i, self._branch_j, self._branch_b = self._find_branches()
        self.branches = pd.DataFrame({"node_i": self.bus_ids[self._branch_i],
                                      "node_j": self.bus_ids[self._branch_j],
                                      "b": self._branch_b})
        self._solve = None
        self._single_injection_ptdf = None

    def _find_branches(self):
        """Return positions and susceptance of all branches, ordered by (i, j)."""
        upper = sp.triu(self.susceptance, k=1).tocoo()
        condition = np.abs(upper.data) > self.tolerance
        rows, cols, data = upper.row[condition], upper.col[condition], -upper.data[condition]
        order = np.lexsort((cols, rows))
        return rows[order], cols[order], data[order]

    def position(self, bus):
        """Return matrix position of a bus id."""
        try:
            return self._bus_position[int(bus)]
        except KeyError:
            raise InvalidTopologyError(f"Bus {bus} is not part of the network.")

    def factorize(self):
        """Factorize the susceptance matrix without the slack.

        The factorization is cached and computed only once for the lifetime of
        the engine.
        """
        if self._solve is None:
            self.logger.info("Factorizing susceptance matrix of %d buses.", len(self.bus_ids))
            b_reduced = self.susceptance[self.non_slack][:, self.non_slack]
            self._solve = _factorize(b_reduced, self.logger)
        return self._solve

    def _angles_to_flows(self, theta):
        """Branch flows for the angles theta (N x k), returns (k x K)."""
        return (self._branch_b*(theta[self._branch_i, :] - theta[self._branch_j, :]).T)

    @property
    def single_injection_ptdf(self):
        """Single injection ptdf matrix (N x K).

        Row n contains the flow on each branch for a unit injection at the n-th bus
        withdrawn at the reference bus. The row of the reference bus is zero.
        """
        if self._single_injection_ptdf is None:
            self._single_injection_ptdf = self.create_single_injection_ptdf()
        return self._single_injection_ptdf

    def create_single_injection_ptdf(self):
        """Calculate ptdf vectors for a unit injection at each non-slack bus."""
        solve = self.factorize()
        num_buses, num_non_slack = len(self.bus_ids), len(self.non_slack)
        ptdf = np.zeros((num_buses, len(self._branch_b)))
        self.logger.info("Calculating single injection PTDFs for %d buses and %d branches.",
                         num_buses, len(self._branch_b))

        for chunk in tools.split_length_in_ranges(self.chunk_size, num_non_slack):
            if len(chunk) == 0:
                continue
            injection = np.zeros((num_non_slack, len(chunk)))
            injection[np.arange(chunk.start, chunk.stop), np.arange(len(chunk))] = 1
            theta = np.zeros((num_buses, len(chunk)))
            theta[self.non_slack, :] = solve(injection)
            ptdf[self.non_slack[chunk.start:chunk.stop], :] = self._angles_to_flows(theta)
        return ptdf

    def transaction_ptdf(self, bus_from, bus_to, sensitivity=None):
        """Return the ptdf of a transaction from *bus_from* to *bus_to*.

        Calculated by superposition of the single injection ptdfs.

        Parameters
        ----------
        bus_from, bus_to : int
            Bus ids of the transaction.
        sensitivity : np.ndarray, optional
            Single injection sensitivity (N x K), defaults to the branch ptdfs.

        Raises
        ------
        ValueError
            If *bus_from* equals *bus_to*.
        """
        if bus_from == bus_to:
            raise ValueError(f"Invalid transaction from bus {bus_from} to itself.")
        if sensitivity is None:
            sensitivity = self.single_injection_ptdf
        return sensitivity[self.position(bus_from), :] - sensitivity[self.position(bus_to), :]

    def transaction_ptdf_direct(self, bus_from, bus_to):
        """Return the ptdf of a transaction with a separate factorization.

        This is the straight forward way, solving the DC power flow for the injection
        at *bus_from* and withdrawal at *bus_to* directly. It does not use the cached
        factorization and is meant to validate :meth:`~transaction_ptdf`.
        """
        if bus_from == bus_to:
            raise ValueError(f"Invalid transaction from bus {bus_from} to itself.")
        b_reduced = self.susceptance[self.non_slack][:, self.non_slack]
        solve = _factorize(b_reduced, self.logger)

        reduced_position = {pos: idx for idx, pos in enumerate(self.non_slack)}
        injection = np.zeros((len(self.non_slack), 2))
        for col, bus in enumerate([bus_from, bus_to]):
            if self.position(bus) in reduced_position:
                injection[reduced_position[self.position(bus)], col] = 1

        theta = np.zeros((len(self.bus_ids), 2))
        theta[self.non_slack, :] = solve(injection)
        flows = self._angles_to_flows(theta)
        return flows[0, :] - flows[1, :]

    def line_sensitivity(self, lines):
        """Single injection ptdf for individual lines.

        The ptdf on a line is the ptdf of its branch scaled with the share of the line's
        series susceptance in the branch susceptance. For a line without parallel lines
        this share is one. The sign follows the direction from *node_i* to *node_j*.
        Lines whose bus pair is not a branch, because of a near-zero susceptance, have
        a zero ptdf.

        Parameters
        ----------
        lines : pandas.DataFrame
            Lines with columns *node_i*, *node_j*, *r*, *x*.

        Returns
        -------
        sensitivity : np.ndarray
            Single injection ptdf matrix (N x L) for the lines.
        """
        branch_index = {(i, j): k for k, (i, j) in enumerate(zip(self._branch_i, self._branch_j))}
        sensitivity = np.zeros((len(self.bus_ids), len(lines)))
        b_line = -np.imag(1 / (lines.r.values + 1j*lines.x.values))

        excluded = 0
        for idx, (node_i, node_j) in enumerate(zip(lines.node_i, lines.node_j)):
            pos_i, pos_j = self.position(node_i), self.position(node_j)
            sign = 1 if pos_i < pos_j else -1
            k = branch_index.get((min(pos_i, pos_j), max(pos_i, pos_j)))
            if k is None:
                excluded += 1
                continue
            share = b_line[idx] / self._branch_b[k]
            sensitivity[:, idx] = sign*share*self.single_injection_ptdf[:, k]
        if excluded > 0:
            self.logger.warning("%d lines with near-zero susceptance are excluded.", excluded)
        return sensitivity

    def calculate_transaction_ptdfs(self, transactions=None, sensitivity=None):
        """Calculate the ptdf of all (canonical) transactions.

        The transactions are processed in chunks, optionally in a pool of *workers*
        threads. All workers only read the single injection ptdf.

        Parameters
        ----------
        transactions : list(tuple), optional
            Transactions (a, b), defaults to all canonical transactions.
        sensitivity : np.ndarray, optional
            Single injection sensitivity (N x K), defaults to the branch ptdfs. Use
            the result of :meth:`~line_sensitivity` to obtain line ptdfs.

        Returns
        -------
        transactions : list(tuple)
            The processed transactions.
        ptdf : np.ndarray
            Matrix (T x K), row t is the ptdf of the t-th transaction.
        """
        if transactions is None:
            transactions = canonical_transactions(self.bus_ids)
        if sensitivity is None:
            sensitivity = self.single_injection_ptdf

        from_position = np.array([self.position(a) for a, _ in transactions], dtype=int)
        to_position = np.array([self.position(b) for _, b in transactions], dtype=int)
        if np.any(from_position == to_position):
            raise ValueError("Transactions from a bus to itself are invalid.")

        ptdf = np.empty((len(transactions), sensitivity.shape[1]))
        chunks = [c for c in tools.split_length_in_ranges(self.chunk_size, len(transactions))
                  if len(c) > 0]

        def _process_chunk(chunk):
            rows = slice(chunk.start, chunk.stop)
            ptdf[rows, :] = sensitivity[from_position[rows], :] - sensitivity[to_position[rows], :]

        self.logger.info("Processing PTDFs for %d transactions.", len(transactions))
        bar = Bar('Processing', max=len(chunks), check_tty=False, hide_cursor=True)
        if self.workers > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                for _ in executor.map(_process_chunk, chunks):
                    bar.next()
        else:
            for chunk in chunks:
                _process_chunk(chunk)
                bar.next()
        bar.finish()
        return transactions, ptdf

    def create_branch_ptdf_table(self, transactions=None):
        """Return the transaction ptdfs on all branches as long DataFrame.

        Used for the reduced network, where the branches are the synthetic lines
        between representative nodes.
        """
        transactions, ptdf = self.calculate_transaction_ptdfs(transactions)
        return create_ptdf_table(transactions, ptdf, self.branches.node_i.values,
                                 self.branches.node_j.values, prefix="synth_line")
