"""
Error types, centralized error handling and validation helpers for the DPR
engine.
"""

import logging
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from .logging import log_error, log_warning

T = TypeVar("T")


class EngineError(Exception):
    """Base class for every error raised by the engine."""


class FormatError(EngineError, ValueError):
    """Raised when a dice expression cannot be parsed."""

    def __init__(self, expression: Any, reason: str = "") -> None:
        self.expression = expression
        message = f"Invalid dice expression: {expression!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ErrorSeverity(Enum):
    """Severity levels used by the error handler."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class EngineIssue:
    """A recorded problem with its severity and context."""

    message: str
    severity: ErrorSeverity
    context: dict[str, Any] = field(default_factory=dict)
    exception: Optional[Exception] = None


class ErrorHandler:
    """Logs handled problems by severity and keeps a history of them."""

    def __init__(self) -> None:
        self.logger = logging.getLogger("dpr_engine.errors")
        self.history: list[EngineIssue] = []

    def handle(
        self,
        message: str,
        severity: ErrorSeverity,
        context: Optional[dict[str, Any]] = None,
        exception: Optional[Exception] = None,
    ) -> None:
        """Records a problem and logs it at the level matching its severity."""
        issue = EngineIssue(message, severity, context or {}, exception)
        self.history.append(issue)

        details = ", ".join(f"{k}={v}" for k, v in issue.context.items())
        text = f"{issue.message} [{details}]" if details else issue.message
        if severity == ErrorSeverity.CRITICAL:
            self.logger.critical(text)
            if exception is not None:
                self.logger.critical(
                    "".join(traceback.format_exception(exception))
                )
        elif severity == ErrorSeverity.HIGH:
            self.logger.error(text)
        elif severity == ErrorSeverity.MEDIUM:
            self.logger.warning(text)
        else:
            self.logger.info(text)

    def safe_execute(
        self,
        operation: Callable[[], T],
        default: T,
        error_message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[dict[str, Any]] = None,
    ) -> T:
        """
        Runs an operation, returning `default` if it raises an engine or
        validation error. The failure is recorded and logged.
        """
        try:
            return operation()
        except (EngineError, ValueError) as e:
            self.handle(f"{error_message}: {e}", severity, context, e)
            return default


ERROR_HANDLER = ErrorHandler()


def safe_operation(
    default_value: Any = None,
    error_message: str = "Operation failed",
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
) -> Callable:
    """
    Decorator running the wrapped function through `ERROR_HANDLER`.

    Args:
        default_value (Any): Value returned when the function fails.
        error_message (str): Prefix of the logged message.
        severity (ErrorSeverity): Severity of the recorded problem.

    Returns:
        Callable: The decorator.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        def wrapper(*args, **kwargs) -> T:
            return ERROR_HANDLER.safe_execute(
                lambda: func(*args, **kwargs),
                default_value,
                error_message,
                severity,
                {"operation": func.__name__},
            )

        wrapper.__name__ = func.__name__
        wrapper.__doc__ = func.__doc__
        return wrapper

    return decorator


# ==============================================================================
# VALIDATION HELPERS
# ==============================================================================
# These helpers validate inputs with consistent logging. The `require_*`
# helpers raise, the `ensure_*` helpers correct the value and continue.


def require_non_empty_string(
    value: Any, param_name: str, context: Optional[dict[str, Any]] = None
) -> str:
    """
    Validates that a value is a non-empty string.

    Args:
        value: The value to validate
        param_name: Human-readable parameter name for error messages
        context: Additional context for logging

    Returns:
        str: The validated string value

    Raises:
        ValueError: If validation fails
    """
    if not value or not isinstance(value, str) or not value.strip():
        log_error(
            f"{param_name} must be a non-empty string, got: {value!r}",
            {
                **(context or {}),
                "param_name": param_name,
                "type": type(value).__name__,
            },
        )
        raise ValueError(f"Invalid {param_name}: {value!r}")
    return value


def ensure_int_in_range(
    value: Any,
    param_name: str,
    min_val: int,
    max_val: Optional[int] = None,
    context: Optional[dict[str, Any]] = None,
) -> int:
    """
    Ensures a value is an integer within the specified range, clamping it
    when needed. Logs a warning for out-of-range values but continues
    execution.

    Args:
        value: The value to validate
        param_name: Human-readable parameter name for error messages
        min_val: Minimum allowed value (inclusive)
        max_val: Maximum allowed value (inclusive), None for no maximum
        context: Additional context for logging

    Returns:
        int: The corrected integer value
    """
    if (
        isinstance(value, int)
        and not isinstance(value, bool)
        and value >= min_val
        and (max_val is None or value <= max_val)
    ):
        return value

    try:
        corrected = int(value)
    except (TypeError, ValueError):
        corrected = min_val
    corrected = max(min_val, corrected)
    if max_val is not None:
        corrected = min(max_val, corrected)

    range_desc = (
        f">= {min_val}" if max_val is None else f"between {min_val} and {max_val}"
    )
    log_warning(
        f"{param_name} must be integer {range_desc}, got: {value!r}, "
        f"correcting to {corrected}",
        {**(context or {}), "param_name": param_name},
    )
    return corrected
