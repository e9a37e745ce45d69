"""Exceptions and warnings raised by GRIDREDUCE.

Errors in the topology are fatal and abort a reduction run. Numerical issues,
i.e. singular matrices and non-optimal solver terminations, are recovered and
surfaced as warnings.
"""


class InvalidTopologyError(ValueError):
    """Topology cannot be processed, e.g. a line references an unknown bus or
    the set of representative nodes is empty or covers the whole network."""


class SingularMatrixWarning(RuntimeWarning):
    """A matrix that has to be inverted is singular, the pseudoinverse is used instead."""


class SolverStatusWarning(RuntimeWarning):
    """The optimization did not terminate with an optimal solution."""
