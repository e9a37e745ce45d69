"""Total transfer capacity (TTC) of transactions."""
import logging

import numpy as np
import pandas as pd

logger = logging.getLogger('log.gridreduce.grid.transfer_capacity')


def calculate_ttc(transactions, ptdf, capacities, branch_from, branch_to,
                  branch_labels=None, epsilon=1e-6):
    """Calculate the total transfer capacity for each transaction.

    The TTC of a transaction is the largest transfer that does not overload any
    branch. Only branches with :math:`|PTDF| > \\epsilon` are relevant for a
    transaction, the TTC is then

    .. math:: TTC(t) = \\min_{l: |PTDF_{t,l}| > \\epsilon} \\frac{C_l}{|PTDF_{t,l}|}

    The limiting branch is the first branch attaining the minimum, in order of the
    columns of *ptdf*. Branches with a non-finite capacity are not relevant.
    Transactions without any relevant branch have no finite TTC,
    they are returned with an infinite TTC, ``bounded = False`` and no limiting
    branch.

    Parameters
    ----------
    transactions : list(tuple)
        Transactions (a, b), one for each row of *ptdf*.
    ptdf : np.ndarray
        PTDF matrix (T x K) of the transactions on the K branches.
    capacities : array like
        Capacity of the K branches.
    branch_from, branch_to : array like
        Bus ids of the K branches.
    branch_labels : array like, optional
        Names of the K branches, e.g. the line index.
    epsilon : float, optional
        Threshold below which a ptdf is considered zero.

    Returns
    -------
    ttc : pandas.DataFrame
        Columns transaction_from, transaction_to, ttc, limiting_line,
        limiting_line_from, limiting_line_to and bounded.
    """
    transactions = np.asarray(transactions, dtype=int).reshape(-1, 2)
    capacities = np.asarray(capacities, dtype=float)
    branch_from, branch_to = np.asarray(branch_from), np.asarray(branch_to)
    if branch_labels is None:
        branch_labels = np.arange(len(capacities))
    branch_labels = np.asarray(branch_labels, dtype=object)

    abs_ptdf = np.abs(ptdf)
    candidates = (abs_ptdf > epsilon) & np.isfinite(capacities)[np.newaxis, :]
    bounded = candidates.any(axis=1)

    ttc = np.full(len(transactions), np.inf)
    limiting_line = np.full(len(transactions), None, dtype=object)
    limiting_from = np.zeros(len(transactions), dtype=int)
    limiting_to = np.zeros(len(transactions), dtype=int)
    if candidates.size > 0:
        with np.errstate(divide="ignore", invalid="ignore"):
            ratio = np.where(candidates, capacities / abs_ptdf, np.inf)
        # argmin returns the first occurrence of the minimum
        limiting = np.argmin(ratio, axis=1)
        ttc[bounded] = ratio[np.arange(len(transactions)), limiting][bounded]
        limiting_line[bounded] = branch_labels[limiting][bounded]
        limiting_from[bounded] = branch_from[limiting][bounded]
        limiting_to[bounded] = branch_to[limiting][bounded]

    result = pd.DataFrame({
        "transaction_from": transactions[:, 0],
        "transaction_to": transactions[:, 1],
        "ttc": ttc,
        "limiting_line": limiting_line,
        "limiting_line_from": limiting_from,
        "limiting_line_to": limiting_to,
        "bounded": bounded,
    })

    if (~bounded).any():
        logger.warning("%d of %d transactions have no branch with a PTDF above %s, TTC is undefined.",
                       (~bounded).sum(), len(transactions), epsilon)
    return result

def capacity_lookup(branch_from, branch_to, capacities):
    """Dict of branch capacities keyed by both directions (i, j) and (j, i)."""
    lookup = {}
    for i, j, cap in zip(branch_from, branch_to, capacities):
        lookup[(i, j)] = cap
        lookup[(j, i)] = cap
    return lookup

def ttc_from_ptdf_table(ptdf_table, capacities, prefix="synth_line", epsilon=1e-6):
    """Calculate TTCs from a long ptdf table and a capacity lookup.

    Used to evaluate the reduced network with its fitted synthetic line capacities.
    Branches without an entry in *capacities* are not considered.

    Parameters
    ----------
    ptdf_table : pandas.DataFrame
        Long table with columns transaction_from, transaction_to, *prefix*_from,
        *prefix*_to and ptdf, as created by
        :func:`~gridreduce.grid.sensitivity.create_ptdf_table`.
    capacities : dict
        Capacity keyed by (from, to), see :func:`~capacity_lookup`.
    """
    table = ptdf_table[["transaction_from", "transaction_to",
                        prefix + "_from", prefix + "_to", "ptdf"]].copy()
    table["capacity"] = [capacities.get((i, j), np.nan) for i, j
                         in zip(table[prefix + "_from"], table[prefix + "_to"])]
    table["candidate"] = (table.ptdf.abs() > epsilon) & np.isfinite(table.capacity)
    with np.errstate(divide="ignore", invalid="ignore"):
        table["ratio"] = np.where(table.candidate, table.capacity / table.ptdf.abs(), np.inf)

    grouped = table.groupby(["transaction_from", "transaction_to"], sort=False)
    limiting = table.loc[grouped.ratio.idxmin()].reset_index(drop=True)
    limiting["bounded"] = grouped.candidate.any().values

    result = pd.DataFrame({
        "transaction_from": limiting.transaction_from,
        "transaction_to": limiting.transaction_to,
        "ttc": np.where(limiting.bounded, limiting.ratio, np.inf),
        "limiting_line_from": np.where(limiting.bounded, limiting[prefix + "_from"], 0),
        "limiting_line_to": np.where(limiting.bounded, limiting[prefix + "_to"], 0),
        "bounded": limiting.bounded,
    })
    if (~result.bounded).any():
        logger.warning("%d transactions have no relevant branch, TTC is undefined.",
                       (~result.bounded).sum())
    return result
