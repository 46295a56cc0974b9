"""Exponential backoff with jitter around fallible external and persistence calls.

Two call styles share one schedule:
- ``with_retry`` for operations that raise on failure.
- ``with_retry_result`` for operations that return an object exposing
  ``success`` and ``error`` instead of raising.
"""

from __future__ import annotations

import functools
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from enrichment_orchestrator.errors import TransientExternalError

T = TypeVar("T")
TResult = TypeVar("TResult", bound="ResultLike")
logger = logging.getLogger(__name__)

TRANSIENT_SIGNATURES = (
    "network",
    "timeout",
    "timed out",
    "econnreset",
    "econnrefused",
    "connection reset",
    "connection refused",
    "rate limit",
    "429",
    "502",
    "503",
    "504",
)

PERSISTENCE_SIGNATURES = (
    "server closed the connection",
    "terminating connection",
    "could not connect",
    "connection",
    "deadlock detected",
    "could not serialize",
)

# Driver errors worth another attempt, matched by class name so the driver
# stays an optional import.
TRANSIENT_DRIVER_ERRORS = frozenset({"OperationalError", "InterfaceError"})

WRITE_CONFLICT_SIGNATURES = ("duplicate key", "unique constraint")

JITTER_RATIO = 0.3


class ResultLike(Protocol):
    success: bool
    error: str | None


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 30000
    backoff_multiplier: float = 2.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)
    rand: Callable[[], float] = field(default=random.random, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must be non-negative")

    def compute_delay_ms(self, attempt: int) -> float:
        """Delay before retrying after ``attempt`` (1-based) failed."""
        delay = self.base_delay_ms * (self.backoff_multiplier ** (attempt - 1))
        jitter = self.rand() * JITTER_RATIO * delay
        return min(delay + jitter, self.max_delay_ms)

    @classmethod
    def from_settings(cls, settings: Any) -> RetryPolicy:
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_ms=settings.retry_base_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            backoff_multiplier=settings.retry_backoff_multiplier,
        )


DEFAULT_POLICY = RetryPolicy()


def is_transient_error(error: BaseException) -> bool:
    if isinstance(error, TransientExternalError):
        return True
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    return is_transient_message(str(error))


def is_transient_message(message: str | None) -> bool:
    if not message:
        return False
    lowered = message.lower()
    return any(signature in lowered for signature in TRANSIENT_SIGNATURES)


def is_transient_persistence_error(error: BaseException) -> bool:
    """Lost connections, deadlocks and serialization failures of a record store."""
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    if type(error).__name__ in TRANSIENT_DRIVER_ERRORS:
        return True
    lowered = str(error).lower()
    return any(signature in lowered for signature in PERSISTENCE_SIGNATURES)


def is_write_conflict(message: str | None) -> bool:
    """A write lost a uniqueness race; re-running the duplicate gate resolves it."""
    if not message:
        return False
    lowered = message.lower()
    return any(signature in lowered for signature in WRITE_CONFLICT_SIGNATURES)


def with_retry(
    operation: Callable[[], T],
    classify: Callable[[BaseException], bool] | None = None,
    *,
    policy: RetryPolicy = DEFAULT_POLICY,
    label: str = "",
) -> T:
    should_retry = classify or is_transient_error
    attempt = 1
    while True:
        try:
            return operation()
        except Exception as exc:
            if attempt >= policy.max_attempts or not should_retry(exc):
                raise
            delay_ms = policy.compute_delay_ms(attempt)
            logger.warning(
                "retry attempt=%d/%d label=%s delay_ms=%d reason=%s",
                attempt,
                policy.max_attempts,
                label or getattr(operation, "__name__", "operation"),
                round(delay_ms),
                exc,
            )
            policy.sleep(delay_ms / 1000.0)
            attempt += 1


def with_retry_result(
    operation: Callable[[], TResult],
    classify: Callable[[str | None], bool] | None = None,
    *,
    policy: RetryPolicy = DEFAULT_POLICY,
    label: str = "",
) -> TResult:
    should_retry = classify or is_transient_message
    attempt = 1
    while True:
        result = operation()
        if result.success:
            return result
        if attempt >= policy.max_attempts or not should_retry(result.error):
            return result
        delay_ms = policy.compute_delay_ms(attempt)
        logger.warning(
            "retry attempt=%d/%d label=%s delay_ms=%d reason=%s",
            attempt,
            policy.max_attempts,
            label or getattr(operation, "__name__", "operation"),
            round(delay_ms),
            result.error,
        )
        policy.sleep(delay_ms / 1000.0)
        attempt += 1


def retryable(
    classify: Callable[[BaseException], bool] | None = None,
    *,
    policy: RetryPolicy = DEFAULT_POLICY,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator form of ``with_retry``."""

    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return with_retry(
                lambda: fn(*args, **kwargs),
                classify,
                policy=policy,
                label=fn.__qualname__,
            )

        return wrapper

    return decorator
