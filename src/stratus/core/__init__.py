"""Core primitives: typed errors, structured logging, settings."""

from stratus.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    OrchestrationError,
    ParameterFileError,
    ProviderError,
    ProviderNotFoundError,
    StratusError,
    TemplateError,
    TransientError,
    categorize_error,
    is_retryable,
)
from stratus.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

__all__ = [
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidConfigError",
    "OrchestrationError",
    "ParameterFileError",
    "ProviderError",
    "ProviderNotFoundError",
    "StratusError",
    "TemplateError",
    "TransientError",
    "categorize_error",
    "is_retryable",
    "LogContext",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "unbind_context",
]
