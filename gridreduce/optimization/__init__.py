"""Capacity fitting of GRIDREDUCE.

The reduced network obtained through kron reduction preserves the electrical
behavior between the representative nodes, but its synthetic lines have no
capacity. :class:`~gridreduce.optimization.CapacityFitter` formulates and solves
an optimization problem (QP, MIQP or LP) with cvxpy to find capacities for which
the transfer capacities of the reduced network match those of the original network.
"""

from gridreduce.optimization.capacity_fitter import (CapacityFitter, OptimizationType,
                                                     prepare_fitting_data)
