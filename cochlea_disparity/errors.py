"""
Exception taxonomy for the disparity pipeline.

All errors subclass ValueError so callers that already guard argument
validation keep catching them.
"""


class PipelineError(ValueError):
    """Base class for data and configuration defects."""


class DegenerateTreeError(PipelineError):
    """Zero or negative branch length reached a likelihood computation."""


class AlignmentFailureError(PipelineError):
    """Superimposition did not converge or the slider table is invalid."""


class SubsetBoundaryError(PipelineError):
    """Malformed time-bin or time-slice configuration."""


class InsufficientDataError(PipelineError):
    """A subset is empty or too few subsets remain for a comparison."""


class InputShapeMismatchError(PipelineError):
    """Landmark files or metadata rows disagree with the declared layout."""
