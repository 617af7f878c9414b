"""Execution primitives: retry with exponential backoff."""

from stratus.execution.retry import (
    TRANSIENT_ERROR_PATTERNS,
    ExponentialBackoff,
    RetryContext,
    RetryResult,
    execute_with_retry,
    is_transient_error,
)

__all__ = [
    "TRANSIENT_ERROR_PATTERNS",
    "ExponentialBackoff",
    "RetryContext",
    "RetryResult",
    "execute_with_retry",
    "is_transient_error",
]
