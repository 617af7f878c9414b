"""
Structured error types for Stratus.

Every failure the deployment stack can produce is a ``StratusError``
subclass. Each error carries:
- **Category:** what kind of failure (network, provider, template, config, ...)
- **Retryable:** whether the retry primitive may try the same call again
- **Context:** deployment coordinates (name, resource group, location, attempt)
- **Cause:** the chained underlying exception

Manifesto:
    - **Typed Error Hierarchy:** Transient provider noise, provider failures,
      template problems and configuration mistakes are different types
    - **Explicit Retry Semantics:** Only ``TransientError`` is retryable by default
    - **Rich Context:** Errors carry deployment coordinates for logging
    - **Error Chaining:** Original exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       StratusError                               │
        │  (category, retryable, context, cause)                           │
        ├─────────────────────────────────────────────────────────────────┤
        │  TransientError     ProviderError        ConfigError             │
        │  (retryable=True)   (PROVIDER)           (CONFIG)                │
        │                         │                     │                  │
        │                   ProviderNotFound      InvalidConfigError       │
        │                                                                   │
        │  TemplateError                           OrchestrationError      │
        │  (TEMPLATE)                              (ORCHESTRATION)         │
        │       │                                                          │
        │  ParameterFileError                                              │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = TransientError("Service unavailable")
    >>> error.retryable
    True
    >>> error.with_context(resource_group="dev-euw-rg-app").context.resource_group
    'dev-euw-rg-app'

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context, stratus
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    # Infrastructure (usually transient)
    NETWORK = "NETWORK"              # Connection, timeout, throttling
    PROVIDER = "PROVIDER"            # Cloud CLI/API returned an error

    # Deployment inputs
    TEMPLATE = "TEMPLATE"            # Template or parameter file problems

    # Configuration (never retryable)
    CONFIG = "CONFIG"

    # Control flow
    ORCHESTRATION = "ORCHESTRATION"

    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields are emitted by ``to_dict()``; anything without a
    dedicated field goes into ``metadata``.

    Attributes:
        deployment_name: Name of the provider deployment being submitted
        resource_group: Target resource group
        location: Target region
        category: Resource category involved (app-hosting, storage, ...)
        attempt: Orchestrator attempt number
        metadata: Additional key-value pairs
    """

    deployment_name: str | None = None
    resource_group: str | None = None
    location: str | None = None
    category: str | None = None
    attempt: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["deployment_name", "resource_group", "location", "category", "attempt"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StratusError(Exception):
    """
    Base exception for all Stratus errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely need to pass them explicitly.

    Examples:
        >>> error = StratusError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StratusError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ProviderError("Deployment failed").with_context(
                resource_group="dev-euw-rg-app", attempt=2
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT / PROVIDER ERRORS
# =============================================================================


class TransientError(StratusError):
    """
    Temporary provider failure that may succeed on retry.

    Throttling, timeouts, gateway errors and dropped connections. These are
    absorbed by the retry primitive and never reach the conflict router.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class ProviderError(StratusError):
    """A cloud CLI/API call returned a non-zero exit code."""

    default_category = ErrorCategory.PROVIDER
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        stderr: str = "",
        code: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.exit_code = exit_code
        self.stderr = stderr
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.exit_code is not None:
            result["exit_code"] = self.exit_code
        if self.code:
            result["code"] = self.code
        return result


class ProviderNotFoundError(ProviderError):
    """The provider CLI binary is not installed or not on PATH."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# CONFIGURATION / TEMPLATE ERRORS
# =============================================================================


class ConfigError(StratusError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


class TemplateError(StratusError):
    """Template file missing or unusable."""

    default_category = ErrorCategory.TEMPLATE


class ParameterFileError(TemplateError):
    """Template parameter file could not be generated."""


# =============================================================================
# DEPLOYMENT FLOW ERRORS
# =============================================================================


class OrchestrationError(StratusError):
    """The orchestration loop cannot proceed (e.g. no operator decision available)."""

    default_category = ErrorCategory.ORCHESTRATION


# =============================================================================
# HELPERS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check whether an exception is marked retryable."""
    if isinstance(error, StratusError):
        return error.retryable
    return False


def categorize_error(error: Exception) -> ErrorCategory:
    """Best-effort category for any exception."""
    if isinstance(error, StratusError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, (FileNotFoundError, PermissionError)):
        return ErrorCategory.CONFIG
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StratusError",
    "TransientError",
    "ProviderError",
    "ProviderNotFoundError",
    "ConfigError",
    "InvalidConfigError",
    "TemplateError",
    "ParameterFileError",
    "OrchestrationError",
    "is_retryable",
    "categorize_error",
]
