"""
Standardized error handling utilities for the Discord bot.
Defines the exception taxonomy shared by every component and the helpers used
for side effects that are allowed to degrade instead of failing the request.
"""

import logging
from typing import Optional, Callable, Any

logger = logging.getLogger('summary_bot.error_handler')


class ErrorSeverity:
    """Error severity levels for consistent logging and handling."""
    CRITICAL = "critical"  # Bot shutdown required
    HIGH = "error"        # Major functionality broken
    MEDIUM = "warning"    # Functionality impacted but recoverable
    LOW = "info"          # Minor issues or expected behavior


class BotError(Exception):
    """Base class for errors raised by the summary bot components."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ValidationError(BotError):
    """Missing or malformed input. Never retried; the caller has to fix it."""
    pass


class AdminCooldownError(ValidationError):
    """An admin action was attempted before the per-user cooldown expired."""

    def __init__(self, retry_after: float):
        super().__init__(f"Admin action on cooldown for another {retry_after:.1f}s")
        self.retry_after = retry_after


class RetrievalError(BotError):
    """Fetching channel history from Discord failed. Partial results are discarded."""
    pass


class CompletionError(BotError):
    """The completion service failed, either permanently or after exhausting retries."""

    def __init__(self, message: str, cause: Optional[BaseException] = None, attempts: int = 0):
        super().__init__(message, cause)
        self.attempts = attempts


class StorageError(BotError):
    """Persistence failure after the storage retry policy gave up."""
    pass


def log_error_with_context(
    error: Exception,
    context: str,
    severity: str = ErrorSeverity.MEDIUM,
    additional_info: Optional[dict] = None
) -> None:
    """
    Log an error with consistent formatting and context information.

    Args:
        error: The exception that occurred
        context: Description of where/when the error occurred
        severity: Error severity level
        additional_info: Additional context information to log
    """
    error_msg = f"{context}: {str(error)}"

    if additional_info:
        error_msg += f" | Context: {additional_info}"

    log_func = getattr(logger, severity, logger.error)

    if severity in (ErrorSeverity.CRITICAL, ErrorSeverity.HIGH):
        log_func(error_msg, exc_info=error)
    else:
        log_func(error_msg)


async def safe_execute_async(
    func: Callable,
    *args,
    context: str = "Async operation",
    default_return: Any = None,
    severity: str = ErrorSeverity.MEDIUM,
    **kwargs
) -> Any:
    """
    Safely execute an async function with standardized error handling.

    Only meant for non-critical side effects (audit writes, display-name
    lookups); the failure is logged and default_return is handed back.

    Args:
        func: Async function to execute
        *args: Positional arguments for the function
        context: Description of the operation for logging
        default_return: Value to return if an error occurs
        severity: Error severity level
        **kwargs: Keyword arguments for the function

    Returns:
        Function result or default_return if an error occurs
    """
    try:
        return await func(*args, **kwargs)
    except Exception as e:
        log_error_with_context(e, context, severity)
        return default_return
