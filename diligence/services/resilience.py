"""Resilient invocation: exponential backoff plus ordered backend fallback.

Every external call made by the research core goes through `ResilientInvoker`.
Errors are classified as retryable (rate limited, overloaded, unavailable,
gateway timeout) or terminal. Retryable errors consume the per-backend retry
budget; once it is spent the invoker moves to the next backend with a fresh
budget. Terminal errors abort the whole call immediately.
"""
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Protocol, Sequence, TypeVar, runtime_checkable

import httpx
import openai

from diligence.config import settings
from diligence.errors import (
    DiligenceError,
    ServiceUnavailableError,
    TerminalInputError,
    TransientBackendError,
)
from diligence.services import logger as log_service

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

_TRANSIENT_CODE_PATTERN = re.compile(r"\b(429|500|502|503|504)\b")
_TRANSIENT_SIGNATURES = (
    "overloaded",
    "rate limit",
    "rate-limit",
    "rate_limit",
    "too many requests",
    "resource exhausted",
    "resource_exhausted",
    "service unavailable",
    "temporarily unavailable",
    "gateway timeout",
    "bad gateway",
)


def is_retryable(exc: BaseException) -> bool:
    """Return True when `exc` matches a known transient failure signature."""
    if isinstance(exc, TransientBackendError):
        return True
    if isinstance(exc, DiligenceError):
        return False
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)):
        return True
    if isinstance(exc, (openai.RateLimitError, openai.APIConnectionError)):
        return True
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return True

    message = str(exc).lower()
    if _TRANSIENT_CODE_PATTERN.search(message):
        return True
    return any(signature in message for signature in _TRANSIENT_SIGNATURES)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    attempt_timeout: float | None = None

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the zero-based `attempt` failed."""
        return min(self.max_delay, self.base_delay * (self.multiplier ** attempt))

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        timeout = float(settings.attempt_timeout_seconds)
        return cls(
            max_attempts=max(int(settings.retry_max_attempts), 1),
            base_delay=max(float(settings.retry_base_delay_seconds), 0.0),
            multiplier=max(float(settings.retry_backoff_multiplier), 1.0),
            max_delay=max(float(settings.retry_max_delay_seconds), 0.0),
            attempt_timeout=timeout if timeout > 0 else None,
        )


@runtime_checkable
class Backend(Protocol):
    """One interchangeable way of fulfilling a request."""

    name: str

    async def invoke(self, request: Any) -> Any: ...


@dataclass(slots=True)
class CallableBackend:
    """Adapt a coroutine function into a `Backend`."""

    name: str
    fn: Callable[[Any], Awaitable[Any]]

    async def invoke(self, request: Any) -> Any:
        return await self.fn(request)


@dataclass(slots=True)
class InvocationResult(Generic[T]):
    value: T
    backend: str
    attempts: int
    fallback_from: str | None = None
    errors: dict[str, str] = field(default_factory=dict)


def build_limiter(max_concurrency: int | None = None) -> asyncio.Semaphore | None:
    """Shared semaphore bounding concurrent backend calls; None means unlimited."""
    limit = settings.backend_max_concurrency if max_concurrency is None else max_concurrency
    if not limit or limit <= 0:
        return None
    return asyncio.Semaphore(int(limit))


class ResilientInvoker:
    """Retry/backoff + fallback decorator around external calls.

    Holds no per-call state, so one instance can be shared by concurrent
    section tasks. The optional `limiter` is the only shared resource.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        limiter: asyncio.Semaphore | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy.from_settings()
        self.limiter = limiter
        self._sleep = sleep

    async def _run_once(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.policy.attempt_timeout:
            return await asyncio.wait_for(operation(), timeout=self.policy.attempt_timeout)
        return await operation()

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.limiter is None:
            return await self._run_once(operation)
        async with self.limiter:
            return await self._run_once(operation)

    async def _call_with_retries(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str,
        backend: str,
    ) -> tuple[T, int]:
        max_attempts = max(self.policy.max_attempts, 1)
        last_error: BaseException | None = None

        for attempt in range(max_attempts):
            try:
                value = await self._attempt(operation)
            except Exception as exc:
                if not is_retryable(exc):
                    log_service.log_invocation_attempt(
                        label, backend, attempt + 1, "terminal", error=str(exc)
                    )
                    raise
                last_error = exc
                if attempt + 1 >= max_attempts:
                    log_service.log_invocation_attempt(
                        label, backend, attempt + 1, "exhausted", error=str(exc)
                    )
                    break
                delay = self.policy.delay_for(attempt)
                log_service.log_invocation_attempt(
                    label, backend, attempt + 1, "retry", delay_seconds=delay, error=str(exc)
                )
                await self._sleep(delay)
                continue

            log_service.log_invocation_attempt(label, backend, attempt + 1, "success")
            return value, attempt + 1

        raise TransientBackendError(
            f"{label}: backend '{backend}' failed after {max_attempts} attempts: {last_error}",
            backend=backend,
            attempts=max_attempts,
        ) from last_error

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str = "call",
        backend: str = "default",
    ) -> T:
        """Retry a zero-argument coroutine factory against a single backend."""
        value, _ = await self._call_with_retries(operation, label=label, backend=backend)
        return value

    async def invoke(
        self,
        request: Any,
        backends: Sequence[Backend],
        *,
        label: str = "invoke",
    ) -> InvocationResult[Any]:
        """Send `request` to each backend in preference order until one succeeds."""
        if not backends:
            raise TerminalInputError(f"{label}: at least one backend is required")

        errors: dict[str, BaseException] = {}
        primary = backends[0].name

        for backend in backends:
            try:
                value, attempts = await self._call_with_retries(
                    lambda backend=backend: backend.invoke(request),
                    label=label,
                    backend=backend.name,
                )
            except TransientBackendError as exc:
                errors[backend.name] = exc
                log_service.log_event(
                    event_type="backend_fallback",
                    message=f"{label}: backend '{backend.name}' exhausted, trying next",
                    backend=backend.name,
                )
                continue

            return InvocationResult(
                value=value,
                backend=backend.name,
                attempts=attempts,
                fallback_from=primary if backend.name != primary else None,
                errors={name: str(err) for name, err in errors.items()},
            )

        raise ServiceUnavailableError(errors)
