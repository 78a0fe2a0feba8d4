"""
Exception taxonomy for the dotwhisker pipeline.

Every error is raised at the point of detection and propagates unchanged to the
caller; nothing in the pipeline retries or returns a partial chart.
"""


class DotWhiskerError(Exception):
    """Base exception for dotwhisker errors."""

    pass


class InputFormatError(DotWhiskerError, ValueError):
    """Raised when a coefficient table lacks required columns or is malformed."""

    pass


class InvalidParameterError(DotWhiskerError, ValueError):
    """Raised when a parameter (alpha, dodge increment, ...) is out of range."""

    pass


class InsufficientModelsError(DotWhiskerError):
    """Raised when a multi-model plot receives fewer than two models."""

    pass


class AmbiguousOrderError(DotWhiskerError):
    """Raised when a caller-supplied order omits a term or model present in the data."""

    pass


class UnknownTermError(DotWhiskerError, KeyError):
    """Raised when a bracket or predictor name does not match any term."""

    def __str__(self) -> str:
        # KeyError repr-quotes its message; keep it readable
        return str(self.args[0]) if self.args else ""
