"""Terminal composition failures.

Only these escape the core. Reference problems and rounding residue are
recovered locally and reported as diagnostics instead. Each class carries
a ``category`` so callers can decide whether to retry upstream selection
(``no_content``, ``empty_pool``) or fix the request (``invalid_target``).
"""


class CompositionError(ValueError):
    """Base class for failures that abort a composition request."""

    category = "composition"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.category}] {self.message}"


class InvalidTargetError(CompositionError):
    """Target duration missing or non-positive, or no continuous source."""

    category = "invalid_target"


class EmptyCandidatePoolError(CompositionError):
    """The candidate pool holds no items at all."""

    category = "empty_pool"


class NoValidContentError(CompositionError):
    """Every proposed segment was dropped; nothing is left to render."""

    category = "no_content"
