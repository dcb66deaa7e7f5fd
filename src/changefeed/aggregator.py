"""
Progress aggregation over a many-producer, one-consumer channel.

Partition tasks submit (handler_output, PartitionPosition | None) pairs. A
single aggregator task owns the running ChangefeedPosition, folds every
submitted position into it with merge() (None leaves it unchanged), and
hands each wall-clock window's outputs plus the latest position to the
progress handler.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from changefeed.metrics import record_progress_emission
from changefeed.position import EMPTY_POSITION, ChangefeedPosition, PartitionPosition, merge
from core.errors import ProgressHandlerError
from core.logging import log_with_context

logger = logging.getLogger(__name__)

ProgressHandler = Callable[[list[Any], ChangefeedPosition], Awaitable[None]]

# Queued after the last submission to end the aggregator's run()
_CLOSED = object()


class ProgressAggregator:
    """Owned fold of handler outputs and partition positions.

    Windows are interval_seconds of wall-clock time. A window with no
    submissions is not delivered. The progress handler is awaited before
    any further submissions are folded, so a slow handler delays later
    windows without dropping them.

    Args:
        interval_seconds: Window length
        progress_handler: async (outputs, position) callback
        max_size: Channel bound; 0 means unbounded (submit never waits)
    """

    def __init__(
        self,
        interval_seconds: float,
        progress_handler: ProgressHandler,
        max_size: int = 0,
    ):
        self.interval_seconds = interval_seconds
        self.progress_handler = progress_handler
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_size)
        self._position: ChangefeedPosition = EMPTY_POSITION
        self._closed = False
        self._windows_delivered = 0

    @property
    def position(self) -> ChangefeedPosition:
        """Most recent merged position."""
        return self._position

    @property
    def windows_delivered(self) -> int:
        return self._windows_delivered

    @property
    def closed(self) -> bool:
        return self._closed

    async def submit(self, output: Any, position: PartitionPosition | None) -> None:
        if self._closed:
            raise RuntimeError("ProgressAggregator is closed")
        await self._queue.put((output, position))

    async def close(self) -> None:
        """Stop accepting submissions; run() flushes and returns once drained."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSED)

    async def _deliver(self, outputs: list[Any]) -> None:
        if not outputs:
            return
        position = self._position
        self._windows_delivered += 1
        log_with_context(
            logger,
            logging.INFO,
            "Delivering progress",
            window=self._windows_delivered,
            outputs=len(outputs),
            position_partitions=len(position),
        )
        try:
            await self.progress_handler(outputs, position)
        except Exception as e:
            raise ProgressHandlerError(
                f"Progress handler failed on window {self._windows_delivered}",
                cause=e,
                context={"window": self._windows_delivered},
            ) from e
        record_progress_emission()

    async def run(self) -> ChangefeedPosition:
        """Consume submissions until close(); return the final position.

        Raises:
            ProgressHandlerError: The progress handler raised
        """
        loop = asyncio.get_running_loop()
        outputs: list[Any] = []
        window_end = loop.time() + self.interval_seconds

        while True:
            remaining = window_end - loop.time()
            if remaining <= 0:
                await self._deliver(outputs)
                outputs = []
                window_end = loop.time() + self.interval_seconds
                continue

            try:
                item = await asyncio.wait_for(self._queue.get(), timeout=remaining)
            except TimeoutError:
                continue

            if item is _CLOSED:
                await self._deliver(outputs)
                log_with_context(
                    logger,
                    logging.DEBUG,
                    "Progress aggregator drained",
                    window=self._windows_delivered,
                    position_partitions=len(self._position),
                )
                return self._position

            output, partition_position = item
            outputs.append(output)
            if partition_position is not None:
                self._position = merge(self._position, partition_position)


__all__ = ["ProgressAggregator", "ProgressHandler"]
