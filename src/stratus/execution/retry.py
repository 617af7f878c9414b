"""Retry primitive with exponential backoff and transient-error classification.

Wraps a single idempotent provider call. Transient failures (throttling,
timeouts, gateway errors, dropped connections) are retried with capped
exponential backoff; anything else fails immediately so the caller can
route it.

Example:
    >>> from stratus.execution.retry import execute_with_retry
    >>>
    >>> outcome = execute_with_retry(lambda: client.list_resources("rg"), max_retries=3)
    >>> if not outcome.success and outcome.is_transient:
    ...     print(f"gave up after {outcome.attempts} attempts")
"""

from __future__ import annotations

import random
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Generic, TypeVar

from stratus.core.errors import categorize_error, is_retryable
from stratus.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

# Matched case-insensitively against "<message> <code>"
TRANSIENT_ERROR_PATTERNS: tuple[str, ...] = (
    "serviceunavailable",
    "service unavailable",
    "toomanyrequests",
    "too many requests",
    "timeout",
    "timed out",
    "gatewaytimeout",
    "badgateway",
    "bad gateway",
    "gateway error",
    "throttl",
    "network",
    "connection reset",
    "connection refused",
    "connection aborted",
    "connectionerror",
    "could not connect",
)

# Bare HTTP status, not a digit run inside a tracking id or resource name
_HTTP_429 = re.compile(r"(?<![\w-])429(?![\w-])")


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def error_text(error: BaseException) -> str:
    """Combined message and error code used for classification."""
    code = getattr(error, "code", None)
    parts = [str(error)]
    if code:
        parts.append(str(code))
    return " ".join(parts)


def is_transient_error(error: BaseException) -> bool:
    """Return True when *error* looks like provider noise rather than a real failure."""
    if is_retryable(error):
        return True
    text = error_text(error).lower()
    if _HTTP_429.search(text):
        return True
    return any(pattern in text for pattern in TRANSIENT_ERROR_PATTERNS)


@dataclass
class ExponentialBackoff:
    """Exponential backoff with a ceiling.

    Delay = min(base_delay * (multiplier ** attempt), max_delay)

    Attributes:
        max_retries: Retries allowed after the first attempt
        base_delay: Delay before the first retry, in seconds
        max_delay: Cap applied to every delay
        multiplier: Growth factor between successive delays
        jitter: Randomise each delay by ``jitter_range`` (never above ``max_delay``)
        jitter_range: Fraction of the delay used for jitter (0.0-1.0)
    """

    max_retries: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = False
    jitter_range: float = 0.25

    def next_delay(self, attempt: int) -> float:
        """Delay before retry number *attempt* (0 = first retry)."""
        delay = min(self.base_delay * (self.multiplier ** attempt), self.max_delay)

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = min(max(0.0, delay), self.max_delay)

        return delay

    def should_retry(self, retries_done: int) -> bool:
        return retries_done < self.max_retries


def _log_retry(attempt: int, error: BaseException, delay: float) -> None:
    logger.warning(
        "retry.scheduled",
        attempt=attempt,
        next_attempt=attempt + 1,
        delay_seconds=round(delay, 2),
        error=str(error)[:300],
    )


@dataclass
class RetryContext:
    """Tracks one retried call.

    Example:
        >>> ctx = RetryContext(ExponentialBackoff(max_retries=3))
        >>> result = ctx.run(lambda: call_api())
    """

    strategy: ExponentialBackoff
    is_transient: Callable[[BaseException], bool] = is_transient_error
    on_retry: Callable[[int, BaseException, float], None] | None = _log_retry
    sleep: Callable[[float], None] | None = None
    attempt: int = field(default=0, init=False)
    last_error: BaseException | None = field(default=None, init=False)
    delays: list[float] = field(default_factory=list, init=False)
    started_at: datetime = field(default_factory=utcnow, init=False)

    @property
    def elapsed_seconds(self) -> float:
        return (utcnow() - self.started_at).total_seconds()

    def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Execute *func*, retrying transient failures.

        Raises:
            The last exception once it is non-transient or retries are exhausted.
        """
        while True:
            self.attempt += 1
            try:
                return func(*args, **kwargs)
            except Exception as e:
                self.last_error = e

                if not self.is_transient(e):
                    raise

                retries_done = self.attempt - 1
                if not self.strategy.should_retry(retries_done):
                    raise

                delay = self.strategy.next_delay(retries_done)
                self.delays.append(delay)

                if self.on_retry:
                    self.on_retry(self.attempt, e, delay)

                (self.sleep or time.sleep)(delay)


@dataclass
class RetryResult(Generic[T]):
    """Outcome of :func:`execute_with_retry`.

    ``is_transient`` describes the last error: True means the budget ran out
    on provider noise, False means a real failure stopped the loop early.
    """

    success: bool
    attempts: int
    result: T | None = None
    error: BaseException | None = None
    is_transient: bool = False
    delays: list[float] = field(default_factory=list)

    @property
    def error_message(self) -> str:
        return str(self.error) if self.error is not None else ""


def execute_with_retry(
    action: Callable[[], T],
    max_retries: int = 3,
    initial_delay: float = 2.0,
    max_delay: float = 30.0,
    backoff_multiplier: float = 2.0,
    *,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
    sleep: Callable[[float], None] | None = None,
) -> RetryResult[T]:
    """Run *action* with exponential backoff on transient failures.

    Never raises for ``Exception`` subclasses: the failure is returned in
    the :class:`RetryResult`. At most ``max_retries + 1`` attempts are made.

    Args:
        action: Zero-argument callable; raising signals failure
        max_retries: Retries allowed after the first attempt
        initial_delay: Delay before the first retry
        max_delay: Cap for any single delay
        backoff_multiplier: Growth factor between delays
        is_transient: Classifier deciding whether an error is worth retrying
        sleep: Sleep function; defaults to ``time.sleep``
    """
    ctx = RetryContext(
        strategy=ExponentialBackoff(
            max_retries=max_retries,
            base_delay=initial_delay,
            max_delay=max_delay,
            multiplier=backoff_multiplier,
        ),
        is_transient=is_transient,
        sleep=sleep,
    )
    try:
        value = ctx.run(action)
    except Exception as e:
        transient = is_transient(e)
        logger.debug(
            "retry.failed",
            attempts=ctx.attempt,
            transient=transient,
            category=categorize_error(e).value,
            elapsed_seconds=round(ctx.elapsed_seconds, 2),
        )
        return RetryResult(
            success=False,
            attempts=ctx.attempt,
            error=e,
            is_transient=transient,
            delays=list(ctx.delays),
        )
    return RetryResult(success=True, attempts=ctx.attempt, result=value, delays=list(ctx.delays))


__all__ = [
    "TRANSIENT_ERROR_PATTERNS",
    "ExponentialBackoff",
    "RetryContext",
    "RetryResult",
    "error_text",
    "execute_with_retry",
    "is_transient_error",
]
