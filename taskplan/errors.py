"""Error taxonomy for the taskplan pipeline.

Every error raised by the pipeline derives from :class:`PlanError`. Each
class carries a short ``user_message`` that is safe to show to a user; the
full exception text is reserved for the diagnostic log.
"""

from __future__ import annotations

from typing import Iterable, List, Optional


class PlanError(Exception):
    """Base class for all taskplan errors."""

    user_message = "The plan operation failed."


class ValidationError(PlanError):
    """Raw input (task text or UI message) is malformed, empty or oversized."""

    user_message = "The request is invalid."


class StructuralError(PlanError):
    """A plan references unknown steps or has an invalid shape."""

    user_message = "The plan structure is invalid."


class CycleError(StructuralError):
    """The step dependency graph is not acyclic."""

    user_message = "The plan steps contain a dependency cycle."

    def __init__(self, steps: Iterable[str], message: Optional[str] = None):
        self.steps: List[str] = list(steps)
        super().__init__(message or f"Dependency cycle among steps: {' -> '.join(self.steps)}")


class AnalysisError(PlanError):
    """The workspace snapshot is unavailable or the workspace is absent."""

    user_message = "The workspace could not be analyzed."


class ComparisonError(PlanError):
    """Verifying a single file failed."""

    user_message = "The file could not be compared."

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        super().__init__(message or f"Comparison failed for {path}")


class TransitionError(PlanError):
    """A plan mutation would move it backwards or edit a completed plan."""

    user_message = "The plan cannot change to that state."


class PlanNotFoundError(PlanError):
    """No stored plan matches the request."""

    user_message = "No plan was found."


class OperationCancelled(PlanError):
    """A cancellation was requested while workspace I/O was in progress."""

    user_message = "The operation was cancelled."


# Errors whose message text is written by this package and never carries
# file contents or lower-level exception text.
_DOMAIN_MESSAGE_ERRORS = (ValidationError, StructuralError, TransitionError, PlanNotFoundError)


def describe_error(error: BaseException) -> str:
    """Return a short, non-leaking message for ``error``."""
    if isinstance(error, _DOMAIN_MESSAGE_ERRORS) and str(error):
        return str(error)
    if isinstance(error, PlanError):
        return error.user_message
    return "An unexpected error occurred. See the diagnostic log for details."
