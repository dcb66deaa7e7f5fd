"""
Per-partition change feed reader.

Turns the store's continuation-token paging into a forward-only async
sequence of (items, PartitionPosition) pairs. A reader is a single cursor;
to restart, build a new reader whose starting position contains any
previously emitted PartitionPosition.
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

from changefeed.config import ProcessorConfig, StartingPosition
from changefeed.metrics import record_batch_fetched
from changefeed.position import (
    PartitionPosition,
    find_partition,
    try_parse_range_bound,
    try_parse_sequence_number,
)
from changefeed.store import ChangefeedPage, ChangefeedStore, PartitionDescriptor
from core.errors import PositionParseError
from core.logging import log_with_context

logger = logging.getLogger(__name__)


def strip_token_quotes(token: str | None) -> str | None:
    """Remove the double quotes some stores wrap around etag-style tokens."""
    if token is None:
        return None
    return token.strip().strip('"')


class PartitionReader:
    """Reads one partition from its resume point until the stopping policy ends it.

    Args:
        store: Shared change feed store
        descriptor: Partition to read
        config: Processor settings (batch size, start/stop positions, parsing mode)
    """

    def __init__(
        self,
        store: ChangefeedStore,
        descriptor: PartitionDescriptor,
        config: ProcessorConfig,
    ):
        self.store = store
        self.descriptor = descriptor
        self.config = config

    @property
    def partition_id(self) -> str:
        return self.descriptor.id

    def resume_position(self) -> PartitionPosition | None:
        """This partition's entry in the starting position, if any."""
        start = self.config.starting_position
        if isinstance(start, StartingPosition):
            return None
        return find_partition(self.partition_id, start)

    def resume_token(self) -> str | None:
        """Continuation token to start from, or None for start of partition."""
        prior = self.resume_position()
        if prior is None:
            return None
        return str(prior.last_sequence_number)

    def _parse(self, field: str, value: str | None, parser) -> int:
        parsed = parser(value)
        if parsed is not None:
            return parsed
        if self.config.strict_position_parsing:
            raise PositionParseError(field, value, self.partition_id)
        log_with_context(
            logger,
            logging.WARNING,
            "Unparsable position value, using 0",
            partition_id=self.partition_id,
            operation=field,
            error=repr(value),
        )
        return 0

    def _range_bounds(self) -> tuple[int, int]:
        range_min = self._parse("range_min", self.descriptor.range_min_hex, try_parse_range_bound)
        range_max = self._parse("range_max", self.descriptor.range_max_hex, try_parse_range_bound)
        return range_min, range_max

    def _position_for(self, range_min: int, range_max: int, token: str | None) -> PartitionPosition:
        if token is None:
            sequence_number = 0
        else:
            sequence_number = self._parse(
                "continuation_token", strip_token_quotes(token), try_parse_sequence_number
            )
        return PartitionPosition(
            partition_id=self.partition_id,
            range_min=range_min,
            range_max=range_max,
            last_sequence_number=sequence_number,
        )

    def should_continue(self, page: ChangefeedPage, position: PartitionPosition) -> bool:
        """Stopping policy applied after each emission.

        May overshoot the stopping entry by one page.
        """
        if not page.has_more:
            return False
        stop = self.config.stopping_position
        if stop is None:
            return True
        stop_entry = find_partition(self.partition_id, stop)
        if stop_entry is None:
            return True
        return stop_entry.last_sequence_number >= position.last_sequence_number

    async def batches(self) -> AsyncIterator[tuple[list[Any], PartitionPosition]]:
        """Yield (items, position) per fetched page.

        Raises:
            PositionParseError: Unparsable range bound or token in strict mode
            ChangefeedError: Page fetch failed (not retried)
        """
        token = self.resume_token()
        range_min, range_max = self._range_bounds()

        log_with_context(
            logger,
            logging.DEBUG,
            "Starting partition reader",
            partition_id=self.partition_id,
            continuation_token=token,
            range_min=range_min,
            range_max=range_max,
        )

        while True:
            page = await self.store.query_changefeed(
                self.partition_id, token, self.config.batch_size
            )
            record_batch_fetched(self.partition_id)

            # A page without a token leaves the cursor where it was
            if page.continuation_token is not None:
                token = page.continuation_token
            position = self._position_for(range_min, range_max, token)

            log_with_context(
                logger,
                logging.DEBUG,
                "Fetched change feed page",
                partition_id=self.partition_id,
                items_fetched=len(page.items),
                last_sequence_number=position.last_sequence_number,
                has_more=page.has_more,
            )

            yield page.items, position

            if not self.should_continue(page, position):
                log_with_context(
                    logger,
                    logging.INFO,
                    "Partition reader finished",
                    partition_id=self.partition_id,
                    last_sequence_number=position.last_sequence_number,
                )
                return


__all__ = ["PartitionReader", "strip_token_quotes"]
