"""
Error taxonomy for the density clustering pipeline.

Every failure is raised synchronously to the caller, which decides whether to abort the run or skip
that analysis step. All classes derive from ValueError so callers treating bad input generically keep working.
"""


class ClusteringError(ValueError):
    """Base class for all pipeline errors."""


class InvalidParameterError(ClusteringError):
    """A parameter (eps, minPts, k, thresholds) is non-positive, non-finite or exceeds the population size."""


class EmptyInputError(ClusteringError):
    """The point set has no points."""


class InsufficientPointsError(EmptyInputError):
    """The point set is too small for the requested k."""


class DegenerateTableError(ClusteringError):
    """The contingency table collapses to a single row or column, or a level has zero total count."""
