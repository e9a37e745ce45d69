"""Assembly of the nodal admittance matrix (Y-bus)."""
import logging

import numpy as np
import scipy.sparse as sp

logger = logging.getLogger('log.gridreduce.grid.admittance')


def build_admittance_matrix(lines, nodes):
    """Create the sparse complex nodal admittance matrix from lines and bus shunts.

    Each line contributes its series admittance :math:`y = 1/(r + jx)` to both
    diagonal entries and :math:`-y` to both off-diagonal entries. Half of the
    line charging susceptance :math:`jb/2` is added to both diagonal entries.
    Finally the shunt admittance :math:`g_s + jb_s` of each bus is added to its
    diagonal.

    Lines are expected to connect two distinct buses. Self-loops are removed during
    input processing, see :func:`~gridreduce.data.input_processing.clean_line_data`,
    and are not checked for here.

    Parameters
    ----------
    lines : pandas.DataFrame
        Lines and tie-lines with columns *node_i*, *node_j* (bus ids) and *r*, *x*,
        *b* in per-unit.
    nodes : pandas.DataFrame
        Nodes indexed by bus id 1..N with shunt columns *gs* and *bs* in per-unit.

    Returns
    -------
    ybus : scipy.sparse.csr_matrix
        N x N complex admittance matrix. Row/Column k belongs to bus id k+1.
    """
    n_buses = len(nodes)
    i = lines.node_i.values.astype(int) - 1
    j = lines.node_j.values.astype(int) - 1

    y_series = 1 / (lines.r.values + 1j*lines.x.values)
    y_shunt = 1j*lines.b.values/2

    rows = np.concatenate([i, j, i, j])
    cols = np.concatenate([i, j, j, i])
    data = np.concatenate([y_series + y_shunt, y_series + y_shunt, -y_series, -y_series])

    # duplicate entries are summed, which accumulates parallel lines
    ybus = sp.coo_matrix((data, (rows, cols)), shape=(n_buses, n_buses), dtype=complex).tocsr()
    ybus += sp.diags(nodes.gs.values + 1j*nodes.bs.values, format="csr")
    logger.debug("Admittance matrix with %d buses and %d lines created.", n_buses, len(lines))
    return ybus

def susceptance_matrix(ybus):
    """Return the susceptance matrix :math:`B = -Im(Y)` as sparse csr matrix."""
    return sp.csr_matrix(-ybus.imag)

def bus_shunt_admittance(lines, nodes):
    """Return the diagonal contribution of all shunt elements per bus.

    This includes the bus shunts and the line charging. Subtracting it from the
    row sums of the admittance matrix leaves the series part only, which sums to
    zero for every bus.
    """
    shunt = nodes.gs.values + 1j*nodes.bs.values
    shunt = shunt.astype(complex)
    line_charging = 1j*lines.b.values/2
    np.add.at(shunt, lines.node_i.values.astype(int) - 1, line_charging)
    np.add.at(shunt, lines.node_j.values.astype(int) - 1, line_charging)
    return shunt
