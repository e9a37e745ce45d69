"""Selection of representative nodes, one for each zone."""
import logging

import numpy as np
import pandas as pd

from gridreduce.grid.admittance import susceptance_matrix

logger = logging.getLogger('log.gridreduce.grid.representative')


def node_degree(ybus, tolerance=1e-8):
    """Number of adjacent buses, i.e. off-diagonal entries with :math:`|B_{ij}| >` tolerance."""
    susceptance = susceptance_matrix(ybus).tocoo()
    condition = (susceptance.row != susceptance.col) & (np.abs(susceptance.data) > tolerance)
    return np.bincount(susceptance.row[condition], minlength=ybus.shape[0])

def select_representative_nodes(ybus, nodes, tolerance=1e-8):
    """Select the best connected bus of each zone as its representative.

    For every zone, in order of first appearance in *nodes*, the bus with the highest
    degree is selected. Ties are broken by the lowest bus id. The selected buses are
    marked in the column *is_representative* of *nodes*, which is the only change
    made to the nodes.

    Parameters
    ----------
    ybus : scipy.sparse matrix
        Admittance matrix of the network, row k belongs to bus id k+1.
    nodes : pandas.DataFrame
        Nodes indexed by bus id with columns *name*, *zone* and *area*.
    tolerance : float, optional
        Susceptance threshold to consider two buses adjacent.

    Returns
    -------
    representatives : pandas.DataFrame
        Representative nodes with columns bus, name, zone, area, degree.

    Raises
    ------
    ValueError
        If representative nodes have been selected before.
    """
    if "is_representative" in nodes.columns and nodes.is_representative.any():
        raise ValueError("Representative nodes are already selected.")

    degree = pd.Series(node_degree(ybus, tolerance), index=nodes.index)
    representatives = []
    for zone in nodes.zone.unique():
        zone_degree = degree[nodes.zone == zone].sort_index()
        if zone_degree.empty:
            continue
        # idxmax returns the first, i.e. lowest, bus id with the maximum degree
        bus = zone_degree.idxmax()
        representatives.append({"bus": bus,
                                "name": nodes.loc[bus, "name"],
                                "zone": zone,
                                "area": nodes.loc[bus, "area"],
                                "degree": zone_degree[bus]})
        logger.debug("Zone %s: selected bus %s (%s) with degree %d.",
                     zone, bus, nodes.loc[bus, "name"], zone_degree[bus])

    representatives = pd.DataFrame(representatives, columns=["bus", "name", "zone", "area", "degree"])
    nodes["is_representative"] = nodes.index.isin(representatives.bus)
    logger.info("Selected %d representative nodes for %d zones.",
                len(representatives), nodes.zone.nunique())
    return representatives
