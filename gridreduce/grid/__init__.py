"""The Grid Model of GRIDREDUCE

These modules provide the network functionality to GRIDREDUCE, i.e. everything
needed to derive the electrical properties of the original and the reduced
network from its topology.

The functionality includes:

    - Assembly of the nodal admittance matrix (Y-bus) from lines, tie-lines and
      bus shunts, see :func:`~gridreduce.grid.build_admittance_matrix`.
    - Calculation of power transfer distribution factors (ptdf) for all
      transactions between two buses in a linear (DC) power flow model, see
      :class:`~gridreduce.grid.SensitivityEngine`. The ptdf of a transaction is
      obtained by superposition of single injection ptdfs, which requires only
      a single factorization of the susceptance matrix.
    - Calculation of the total transfer capacity (TTC) of each transaction from
      the ptdf and the line capacities, see :func:`~gridreduce.grid.calculate_ttc`.
    - Selection of one representative node per zone, the node with the most
      connections, see :func:`~gridreduce.grid.select_representative_nodes`.
    - Kron reduction of the admittance matrix onto the representative nodes, see
      :func:`~gridreduce.grid.kron_reduce`. The reduced network has a synthetic
      line between each pair of representative nodes with non-zero susceptance.

The capacities of the synthetic lines are not a result of the reduction. These
are fitted in :class:`~gridreduce.optimization.CapacityFitter` such that the TTCs
of the reduced network match the TTCs of the original network.
"""

from gridreduce.grid.admittance import build_admittance_matrix, susceptance_matrix
from gridreduce.grid.kron import kron_reduce
from gridreduce.grid.representative import node_degree, select_representative_nodes
from gridreduce.grid.sensitivity import (SensitivityEngine, canonical_transactions,
                                         create_ptdf_table)
from gridreduce.grid.transfer_capacity import (calculate_ttc, capacity_lookup,
                                               ttc_from_ptdf_table)
