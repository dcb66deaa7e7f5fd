"""Store boundary consumed by the change feed processor.

A store exposes a collection's change feed as a set of partitions, each
paged with an opaque continuation token. The collection is bound when the
store is constructed; see changefeed.cosmos for the Cosmos DB binding.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class PartitionDescriptor:
    """A partition as reported by the store, with hex-encoded range bounds."""

    id: str
    range_min_hex: str
    range_max_hex: str


@dataclass(frozen=True)
class ChangefeedPage:
    """One page of a partition's change feed.

    continuation_token resumes after the last item of this page. has_more
    is False once the store reports the partition is caught up.
    """

    items: list[Any] = field(default_factory=list)
    continuation_token: str | None = None
    has_more: bool = False


class ChangefeedStore(Protocol):
    """Protocol for change feed stores.

    Implementations must be safe to share across concurrently running
    partition readers.
    """

    async def list_partitions(self) -> list[PartitionDescriptor]:
        """List the collection's current partitions."""
        ...

    async def query_changefeed(
        self,
        partition_id: str,
        continuation_token: str | None,
        max_item_count: int,
    ) -> ChangefeedPage:
        """Fetch up to max_item_count changes after continuation_token.

        A continuation_token of None reads from the start of the partition.
        """
        ...

    async def close(self) -> None:
        """Release connections."""
        ...


__all__ = ["PartitionDescriptor", "ChangefeedPage", "ChangefeedStore"]
