"""
Unified exception hierarchy for the change feed processor.

Provides typed exceptions with an error category so callers can decide
whether restarting from the last reported checkpoint is worthwhile.
"""


# Import ErrorCategory from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from core.types import ErrorCategory


class ChangefeedError(Exception):
    """
    Base exception for all change feed errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for restart decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
            ErrorCategory.UNKNOWN,
        )

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthError(ChangefeedError):
    """Store rejected the master key or bearer token."""

    category = ErrorCategory.AUTH


# =============================================================================
# Transient Errors
# =============================================================================


class TransientError(ChangefeedError):
    """Base class for transient errors."""

    category = ErrorCategory.TRANSIENT


class ThrottlingError(TransientError):
    """Rate limited (429) by the store."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.retry_after = retry_after  # Seconds suggested by the store


# =============================================================================
# Permanent Errors
# =============================================================================


class PermanentError(ChangefeedError):
    """Base class for permanent errors."""

    category = ErrorCategory.PERMANENT


class ConfigurationError(PermanentError):
    """Invalid processor or endpoint configuration."""

    pass


class PositionParseError(PermanentError):
    """A range bound or continuation token could not be parsed."""

    def __init__(
        self,
        field: str,
        value: str | None,
        partition_id: str | None = None,
    ):
        message = f"Unparsable {field}: {value!r}"
        if partition_id is not None:
            message += f" (partition: {partition_id})"
        super().__init__(
            message,
            context={"field": field, "value": value, "partition_id": partition_id},
        )
        self.field = field
        self.value = value
        self.partition_id = partition_id


# =============================================================================
# Processor Stage Errors
# =============================================================================


class DiscoveryError(ChangefeedError):
    """Partition discovery failed; the run cannot start."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        if isinstance(cause, ChangefeedError):
            self.category = cause.category


class HandlerError(ChangefeedError):
    """User event handler raised while processing a partition."""

    def __init__(self, partition_id: str, cause: Exception):
        super().__init__(
            f"Event handler failed on partition {partition_id}",
            cause=cause,
            context={"partition_id": partition_id},
        )
        self.partition_id = partition_id


class ProgressHandlerError(ChangefeedError):
    """User progress handler raised; the run ends."""

    pass


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_http_status(status_code: int) -> ErrorCategory:
    """Classify HTTP status code into error category."""
    if 200 <= status_code < 400:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code == 401:
        return ErrorCategory.AUTH

    if status_code in (408, 429):
        return ErrorCategory.TRANSIENT

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT

    if status_code >= 500:
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def classify_exception(exc: Exception) -> ErrorCategory:
    """Classify an exception into error category."""
    # Already classified
    if isinstance(exc, ChangefeedError):
        return exc.category

    if isinstance(exc, (TimeoutError, ConnectionError)):
        return ErrorCategory.TRANSIENT

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    connection_markers = (
        "connectionerror",
        "connection refused",
        "connection reset",
        "server disconnected",
        "name resolution",
        "broken pipe",
    )
    if any(m in exc_type or m in exc_str for m in connection_markers):
        return ErrorCategory.TRANSIENT

    if "timeout" in exc_type or "timeout" in exc_str:
        return ErrorCategory.TRANSIENT

    if "401" in exc_str or "unauthorized" in exc_str:
        return ErrorCategory.AUTH

    if "429" in exc_str or "throttl" in exc_str or "request rate is large" in exc_str:
        return ErrorCategory.TRANSIENT

    if "404" in exc_str or "not found" in exc_str:
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN


def wrap_exception(
    exc: Exception,
    default_class: type = ChangefeedError,
    context: dict | None = None,
) -> ChangefeedError:
    """Wrap a generic exception in the matching ChangefeedError subclass."""
    if isinstance(exc, ChangefeedError):
        if context:
            exc.context.update(context)
        return exc

    category = classify_exception(exc)
    context = context or {}
    context.setdefault("error_type", type(exc).__name__)

    if category == ErrorCategory.AUTH:
        return AuthError(str(exc), cause=exc, context=context)

    if category == ErrorCategory.TRANSIENT:
        exc_str = str(exc).lower()
        if "429" in exc_str or "throttl" in exc_str:
            return ThrottlingError(str(exc), cause=exc, context=context)
        return TransientError(str(exc), cause=exc, context=context)

    if category == ErrorCategory.PERMANENT:
        return PermanentError(str(exc), cause=exc, context=context)

    return default_class(str(exc), cause=exc, context=context)
