"""Error taxonomy shared by the research core."""
from __future__ import annotations

SERVICE_UNAVAILABLE_MESSAGE = (
    "Our research service is temporarily unavailable. Please try again in a few moments."
)


class DiligenceError(Exception):
    """Base class for every error raised by the research core."""


class TerminalInputError(DiligenceError, ValueError):
    """Invalid entity name or catalog; raised before any work begins."""


class TransientBackendError(DiligenceError):
    """Retryable backend failure (rate limited, overloaded, unavailable)."""

    def __init__(self, message: str, *, backend: str | None = None, attempts: int = 0):
        super().__init__(message)
        self.backend = backend
        self.attempts = attempts


class ServiceUnavailableError(DiligenceError):
    """Every backend exhausted its retry budget.

    The message is generic; per-backend detail lives on `errors`.
    """

    def __init__(self, errors: dict[str, BaseException] | None = None):
        super().__init__(SERVICE_UNAVAILABLE_MESSAGE)
        self.errors: dict[str, BaseException] = dict(errors or {})


class OrchestrationCancelledError(DiligenceError):
    """Cancellation or global timeout hit before any section finished."""

    def __init__(self, message: str, *, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class PartialResultWarning(UserWarning):
    """One or more sections came back Failed or Degraded."""
