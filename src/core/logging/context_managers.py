"""Scoped logging: temporary context fields and timed operations."""

import logging
import time
from typing import Any

from core.logging.context import LOG_CONTEXT_FIELDS, get_log_context, set_log_context
from core.logging.utilities import log_exception, log_with_context


class LogContext:
    """
    Temporarily override log context fields.

        with LogContext(stage="reader", partition_id="3"):
            ...

    Fields passed as None are left alone. Only the overridden fields are
    restored on exit.
    """

    def __init__(self, **fields: str | None):
        unknown = set(fields) - set(LOG_CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
        self._overrides = {k: v for k, v in fields.items() if v is not None}
        self._saved: dict[str, str] = {}

    def __enter__(self) -> "LogContext":
        current = get_log_context()
        self._saved = {k: current[k] for k in self._overrides}
        set_log_context(**self._overrides)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        set_log_context(**self._saved)
        return False


def _resolve_level(level: int | str) -> int:
    if isinstance(level, str):
        return logging.getLevelNamesMapping().get(level.upper(), logging.DEBUG)
    return level


class OperationContext:
    """
    Times a block and logs one completion or failure record.

    Works with both ``with`` and ``async with``. Completions log at level,
    raised to INFO when slower than slow_threshold_ms. Failures log at ERROR
    with the exception's error fields and propagate.
    """

    def __init__(
        self,
        logger: logging.Logger,
        operation: str,
        level: int | str = logging.DEBUG,
        slow_threshold_ms: float | None = 1000.0,
        log_start: bool = False,
        **fields: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.level = _resolve_level(level)
        self.slow_threshold_ms = slow_threshold_ms
        self.log_start = log_start
        self.fields = fields
        self.duration_ms: float | None = None
        self._started = 0.0

    def add_context(self, **fields: Any) -> None:
        """Attach fields learned mid-operation (partition counts, etc)."""
        self.fields.update(fields)

    def _start(self) -> "OperationContext":
        self._started = time.perf_counter()
        if self.log_start:
            log_with_context(
                self.logger,
                logging.DEBUG,
                f"Starting: {self.operation}",
                operation=self.operation,
                **self.fields,
            )
        return self

    def _finish(self, exc: BaseException | None) -> None:
        elapsed_ms = (time.perf_counter() - self._started) * 1000
        self.duration_ms = round(elapsed_ms, 2)

        if exc is not None:
            log_exception(
                self.logger,
                exc,
                f"Failed: {self.operation}",
                operation=self.operation,
                duration_ms=self.duration_ms,
                **self.fields,
            )
            return

        level = self.level
        if self.slow_threshold_ms is not None and elapsed_ms > self.slow_threshold_ms:
            level = max(level, logging.INFO)
        log_with_context(
            self.logger,
            level,
            f"Completed: {self.operation}",
            operation=self.operation,
            duration_ms=self.duration_ms,
            **self.fields,
        )

    def __enter__(self) -> "OperationContext":
        return self._start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self._finish(exc_val)
        return False

    async def __aenter__(self) -> "OperationContext":
        return self._start()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        self._finish(exc_val)
        return False


def log_operation(
    logger: logging.Logger,
    operation: str,
    level: int | str = logging.DEBUG,
    slow_threshold_ms: float | None = 1000.0,
    **fields: Any,
) -> OperationContext:
    """Shorthand for OperationContext, for ``with`` or ``async with``."""
    return OperationContext(
        logger, operation, level=level, slow_threshold_ms=slow_threshold_ms, **fields
    )
