"""
Structured logging helpers.

Keyword fields become attributes on the LogRecord; JSONFormatter picks up
the ones it knows. Names that would overwrite LogRecord's own attributes
are dropped rather than raising KeyError inside logging.
"""

import logging
from typing import Any

MAX_ERROR_MESSAGE_LENGTH = 500

_RESERVED_LOG_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
    "taskName",
}


def _record_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if k not in _RESERVED_LOG_KEYS}


def error_fields(exc: BaseException) -> dict[str, Any]:
    """
    Log fields describing an exception.

    Typed errors contribute their category, their context dict (partition id,
    HTTP status and so on) and, when throttled, the store's retry hint.
    """
    message = str(exc)
    if len(message) > MAX_ERROR_MESSAGE_LENGTH:
        message = message[:MAX_ERROR_MESSAGE_LENGTH] + "..."

    fields: dict[str, Any] = {}
    context = getattr(exc, "context", None)
    if isinstance(context, dict):
        fields.update(context)

    category = getattr(exc, "category", None)
    if category is not None:
        fields["error_category"] = getattr(category, "value", str(category))

    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        fields["retry_after_seconds"] = retry_after

    fields["error_type"] = type(exc).__name__
    fields["error_message"] = message
    return fields


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log msg with structured fields.

    Example:
        log_with_context(
            logger, logging.DEBUG, "Fetched change feed page",
            partition_id=pid,
            items_fetched=len(page.items),
        )

    exc_info=True is passed through to the logger.
    """
    exc_info = kwargs.pop("exc_info", None)
    logger.log(level, msg, exc_info=exc_info, extra=_record_fields(kwargs))


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log an exception with its error_fields() plus caller fields.

    Caller fields win over fields taken from the exception's context.
    """
    fields = error_fields(exc)
    fields.update(kwargs)
    logger.log(
        level,
        msg,
        exc_info=exc if include_traceback else None,
        extra=_record_fields(fields),
    )
