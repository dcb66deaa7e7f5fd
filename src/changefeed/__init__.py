"""
Concurrent change feed processing.

Reads every partition of a collection's change feed concurrently, passes
each event through a user handler and reports progress with a resumable
ChangefeedPosition on a fixed cadence.

Usage:
    from changefeed import BEGINNING, ProcessorConfig, run

    result = await run(endpoint, ProcessorConfig(starting_position=BEGINNING),
                       handler, progress_handler)
"""

from changefeed.aggregator import ProgressAggregator
from changefeed.checkpoint import JsonPositionStore
from changefeed.config import (
    BEGINNING,
    CosmosEndpoint,
    ProcessorConfig,
    StartingPosition,
    load_config,
)
from changefeed.discovery import discover_partitions
from changefeed.position import (
    EMPTY_POSITION,
    INT64_MAX,
    ChangefeedPosition,
    PartitionPosition,
    PartitionRange,
    find_partition,
    merge,
    parse_range_bound,
    parse_sequence_number,
    pick_latest,
    range_covers,
    succeeds,
)
from changefeed.processor import ChangefeedProcessor, RunResult, run
from changefeed.reader import PartitionReader
from changefeed.store import ChangefeedPage, ChangefeedStore, PartitionDescriptor

__all__ = [
    # Entry point
    "run",
    "ChangefeedProcessor",
    "RunResult",
    # Config
    "BEGINNING",
    "StartingPosition",
    "CosmosEndpoint",
    "ProcessorConfig",
    "load_config",
    # Positions
    "INT64_MAX",
    "EMPTY_POSITION",
    "PartitionRange",
    "PartitionPosition",
    "ChangefeedPosition",
    "range_covers",
    "parse_range_bound",
    "parse_sequence_number",
    "succeeds",
    "pick_latest",
    "find_partition",
    "merge",
    # Components
    "discover_partitions",
    "PartitionReader",
    "ProgressAggregator",
    "JsonPositionStore",
    # Store boundary
    "ChangefeedStore",
    "ChangefeedPage",
    "PartitionDescriptor",
]
