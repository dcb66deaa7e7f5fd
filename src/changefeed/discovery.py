"""Partition discovery: one store call at the start of a run."""

import logging

from changefeed.store import ChangefeedStore, PartitionDescriptor
from core.errors import DiscoveryError
from core.logging import log_operation

logger = logging.getLogger(__name__)


def _validate(partitions: object) -> list[PartitionDescriptor]:
    if not isinstance(partitions, (list, tuple)):
        raise DiscoveryError(
            f"Store returned a malformed partition list: {type(partitions).__name__}"
        )
    seen: set[str] = set()
    for descriptor in partitions:
        if not isinstance(descriptor, PartitionDescriptor):
            raise DiscoveryError(
                f"Store returned a malformed partition descriptor: {descriptor!r}"
            )
        if not descriptor.id:
            raise DiscoveryError("Store returned a partition without an id")
        if descriptor.id in seen:
            raise DiscoveryError(
                f"Store returned duplicate partition id: {descriptor.id}",
                context={"partition_id": descriptor.id},
            )
        seen.add(descriptor.id)
    return list(partitions)


async def discover_partitions(store: ChangefeedStore) -> list[PartitionDescriptor]:
    """List the store's current partitions.

    No caching or retry. Any failure, including a malformed response, is
    raised as DiscoveryError; an empty list is a valid result.
    """
    async with log_operation(logger, "discover_partitions", level=logging.INFO) as op:
        try:
            partitions = await store.list_partitions()
        except DiscoveryError:
            raise
        except Exception as e:
            raise DiscoveryError(f"Partition discovery failed: {e}", cause=e) from e

        result = _validate(partitions)
        op.add_context(partition_count=len(result))
        return result


__all__ = ["discover_partitions"]
