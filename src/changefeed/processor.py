"""
Change feed processor: discovery, per-partition fan-out, aggregation.

One asyncio task per partition reads pages, passes each event through the
user handler and submits (output, batch position) to the shared
ProgressAggregator. The run ends when either every partition task has
finished or the aggregator has stopped, whichever comes first; remaining
tasks are cancelled and awaited before run() returns.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from changefeed.aggregator import ProgressAggregator, ProgressHandler
from changefeed.config import CosmosEndpoint, ProcessorConfig
from changefeed.cosmos import CosmosChangefeedClient
from changefeed.discovery import discover_partitions
from changefeed.metrics import (
    active_partitions_gauge,
    record_event_handled,
    record_partition_failure,
)
from changefeed.position import ChangefeedPosition
from changefeed.reader import PartitionReader
from changefeed.store import ChangefeedStore, PartitionDescriptor
from core.errors import ChangefeedError, HandlerError, wrap_exception
from core.logging import LogContext, log_exception, log_with_context, set_log_context
from core.utils import generate_worker_id

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Awaitable[Any]]

COMPLETED_BY_READERS = "readers"
COMPLETED_BY_AGGREGATOR = "aggregator"


@dataclass
class RunResult:
    """Outcome of one processor run.

    Attributes:
        completed_by: "readers" when every partition finished first,
            "aggregator" when the aggregator stopped first
        partitions: Discovered partition ids
        failures: Errors that stopped individual partitions, by partition id
        position: Final merged position (also delivered to the progress handler)
    """

    completed_by: str
    partitions: list[str] = field(default_factory=list)
    failures: dict[str, ChangefeedError] = field(default_factory=dict)
    position: ChangefeedPosition = field(default_factory=ChangefeedPosition)

    @property
    def ok(self) -> bool:
        return not self.failures


class ChangefeedProcessor:
    """Runs one change feed pass over all partitions of a store.

    The store is not closed by the processor; its owner closes it.
    """

    def __init__(
        self,
        store: ChangefeedStore,
        config: ProcessorConfig,
        handler: EventHandler,
        progress_handler: ProgressHandler,
        worker_id: str | None = None,
    ):
        self.store = store
        self.config = config
        self.handler = handler
        self.progress_handler = progress_handler
        self.worker_id = worker_id or generate_worker_id("changefeed")

    async def _handle_event(self, partition_id: str, event: Any) -> Any:
        start = time.perf_counter()
        try:
            output = await self.handler(event)
        except Exception as e:
            raise HandlerError(partition_id, e) from e
        record_event_handled(partition_id, time.perf_counter() - start)
        return output

    async def _process_partition(
        self,
        descriptor: PartitionDescriptor,
        aggregator: ProgressAggregator,
        failures: dict[str, ChangefeedError],
    ) -> None:
        # Runs in its own task, so this context is local to the partition
        set_log_context(stage="reader", partition_id=descriptor.id)
        reader = PartitionReader(self.store, descriptor, self.config)
        active_partitions_gauge.inc()
        # A batch's trailing position is reported only with its last event;
        # earlier events carry the position the batch started from
        reached = reader.resume_position()
        try:
            async with aclosing(reader.batches()) as batches:
                async for items, position in batches:
                    last = len(items) - 1
                    for index, event in enumerate(items):
                        output = await self._handle_event(descriptor.id, event)
                        await aggregator.submit(output, position if index == last else reached)
                    reached = position
        except Exception as e:
            error = wrap_exception(e, context={"partition_id": descriptor.id})
            failures[descriptor.id] = error
            record_partition_failure(error.category.value)
            log_exception(
                logger,
                error,
                "Partition stopped on error",
                partition_id=descriptor.id,
            )
        finally:
            active_partitions_gauge.dec()

    async def _run_partitions(
        self,
        partitions: list[PartitionDescriptor],
        aggregator: ProgressAggregator,
        failures: dict[str, ChangefeedError],
    ) -> None:
        tasks = [
            asyncio.create_task(
                self._process_partition(descriptor, aggregator, failures),
                name=f"changefeed-partition-{descriptor.id}",
            )
            for descriptor in partitions
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def run(self) -> RunResult:
        """Discover partitions and process them until the completion policy ends the run.

        The caller's log context is restored when the run ends.

        Raises:
            DiscoveryError: Partitions could not be listed; nothing was read
            ProgressHandlerError: The progress handler raised
        """
        with LogContext(stage="changefeed", worker_id=self.worker_id):
            return await self._run()

    async def _run(self) -> RunResult:
        partitions = await discover_partitions(self.store)
        partition_ids = [p.id for p in partitions]
        failures: dict[str, ChangefeedError] = {}

        aggregator = ProgressAggregator(
            self.config.progress_interval_seconds,
            self.progress_handler,
            max_size=self.config.channel_max_size,
        )

        log_with_context(
            logger,
            logging.INFO,
            "Starting change feed processing",
            partition_count=len(partitions),
            batch_size=self.config.batch_size,
            interval_seconds=self.config.progress_interval_seconds,
        )

        aggregator_task = asyncio.create_task(aggregator.run(), name="changefeed-aggregator")
        readers_task = asyncio.create_task(
            self._run_partitions(partitions, aggregator, failures),
            name="changefeed-readers",
        )
        tasks = [aggregator_task, readers_task]

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

            if aggregator_task in done:
                # Only a progress handler failure ends the aggregator early
                position = aggregator_task.result()
                completed_by = COMPLETED_BY_AGGREGATOR
            else:
                readers_task.result()
                closing = asyncio.create_task(aggregator.close(), name="changefeed-close")
                tasks.append(closing)
                await asyncio.wait(
                    [closing, aggregator_task], return_when=asyncio.FIRST_COMPLETED
                )
                position = await aggregator_task
                completed_by = COMPLETED_BY_READERS
        finally:
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        log_with_context(
            logger,
            logging.INFO,
            "Change feed processing finished",
            completed_by=completed_by,
            partition_count=len(partitions),
            failed_partitions=len(failures),
            position_partitions=len(position),
        )

        return RunResult(
            completed_by=completed_by,
            partitions=partition_ids,
            failures=dict(failures),
            position=position,
        )


async def run(
    endpoint: CosmosEndpoint,
    config: ProcessorConfig,
    handler: EventHandler,
    progress_handler: ProgressHandler,
    *,
    store: ChangefeedStore | None = None,
) -> RunResult:
    """Process the endpoint's change feed once.

    Args:
        endpoint: Cosmos DB account and collection
        config: Processor settings
        handler: async (event) -> output, called once per event
        progress_handler: async (outputs, position), called once per
            non-empty progress window; persist position here to resume later
        store: Pre-built store to use instead of a client for endpoint.
            A store passed in is left open.

    Returns:
        RunResult with per-partition failures and the final position

    Raises:
        DiscoveryError: Partitions could not be listed
        ProgressHandlerError: progress_handler raised
    """
    if store is not None:
        return await ChangefeedProcessor(store, config, handler, progress_handler).run()

    async with CosmosChangefeedClient.from_endpoint(endpoint) as client:
        return await ChangefeedProcessor(client, config, handler, progress_handler).run()


__all__ = ["ChangefeedProcessor", "RunResult", "EventHandler", "run"]
