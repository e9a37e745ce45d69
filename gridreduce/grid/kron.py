"""Kron reduction of the admittance matrix onto a set of representative buses."""
import logging
import warnings

import numpy as np
import psutil
import scipy.sparse as sp

from gridreduce.exceptions import InvalidTopologyError, SingularMatrixWarning

logger = logging.getLogger('log.gridreduce.grid.kron')


def _validate_representatives(representative_ids, num_buses, strict):
    """Check that representative ids are a non-empty set of valid bus ids."""
    if len(representative_ids) == 0:
        raise InvalidTopologyError("The set of representative nodes is empty.")
    if len(set(representative_ids)) != len(representative_ids):
        raise InvalidTopologyError("The set of representative nodes contains duplicates.")
    invalid = [bus for bus in representative_ids if not 1 <= bus <= num_buses]
    if invalid:
        raise InvalidTopologyError(f"Representative nodes {invalid} are not part of the network.")
    if strict and len(representative_ids) == num_buses:
        raise InvalidTopologyError("All buses are representative nodes, nothing to reduce.")

def _check_memory(num_eliminated):
    """Raise MemoryError if the dense matrices of the reduction do not fit in memory."""
    # M, its inverse and one intermediate product
    estimated_size = 3*16*num_eliminated**2
    available = psutil.virtual_memory().available
    logger.debug("Estimated size of the dense elimination block: %d MB (available %d MB).",
                 estimated_size/1e6, available/1e6)
    if estimated_size > available:
        raise MemoryError(f"Estimated size of the elimination block of {estimated_size/1e6:.0f} MB "
                          f"exceeds the available memory of {available/1e6:.0f} MB.")

def invert(matrix):
    """Invert a dense matrix, falling back to the pseudoinverse if it is singular."""
    try:
        inverse = np.linalg.inv(matrix)
        if np.all(np.isfinite(inverse)) and np.allclose(matrix @ inverse, np.eye(len(matrix)), atol=1e-6):
            return inverse
    except np.linalg.LinAlgError as error_msg:
        logger.debug(error_msg)
    message = "Elimination block of the admittance matrix is singular, using pseudoinverse."
    logger.warning(message)
    warnings.warn(message, SingularMatrixWarning, stacklevel=3)
    return np.linalg.pinv(matrix)

def kron_reduce(ybus, representative_ids, strict=True):
    """Eliminate all non-representative buses from the admittance matrix.

    The buses are permuted into representative buses (in the supplied order) and
    buses to eliminate, which partitions the admittance matrix into

    .. math:: Y = \\begin{bmatrix} K & L^T \\\\ L & M \\end{bmatrix}

    The reduced matrix is the Schur complement :math:`Y_{red} = K - L^T M^{-1} L`,
    which preserves the electrical behavior between the representative buses.
    The identities of the eliminated buses are not retained.

    Parameters
    ----------
    ybus : scipy.sparse matrix
        Admittance matrix, row k belongs to bus id k+1.
    representative_ids : list(int)
        Bus ids to keep. Order determines the order of the reduced matrix.
    strict : bool, optional
        If True (default) the representative nodes have to be a proper subset of
        the buses. Otherwise a set containing all buses returns the permuted
        admittance matrix unchanged.

    Returns
    -------
    ybus_reduced : scipy.sparse.csr_matrix
        Reduced complex admittance matrix (R x R), row r belongs to
        representative_ids[r].

    Raises
    ------
    InvalidTopologyError
        If the representative ids are empty, contain duplicates, invalid bus ids or
        include all buses (when strict).
    """
    ybus = sp.csr_matrix(ybus)
    num_buses = ybus.shape[0]
    representative_ids = [int(bus) for bus in representative_ids]
    _validate_representatives(representative_ids, num_buses, strict)

    keep = np.array(representative_ids, dtype=int) - 1
    eliminate = np.setdiff1d(np.arange(num_buses), keep)
    if len(eliminate) == 0:
        return ybus[keep][:, keep].tocsr()

    logger.info("Kron reduction of %d buses onto %d representative nodes.", num_buses, len(keep))
    _check_memory(len(eliminate))

    K = ybus[keep][:, keep].toarray()
    L = ybus[eliminate][:, keep]
    L_T = ybus[keep][:, eliminate]
    M = ybus[eliminate][:, eliminate].toarray()

    ybus_reduced = K - L_T @ (invert(M) @ L.toarray())
    return sp.csr_matrix(ybus_reduced)
