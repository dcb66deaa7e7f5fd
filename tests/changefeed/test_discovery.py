"""
Tests for partition discovery.
"""

import pytest

from changefeed.discovery import discover_partitions
from changefeed.store import PartitionDescriptor
from core.errors import AuthError, DiscoveryError, ErrorCategory


class TestDiscoverPartitions:
    @pytest.mark.asyncio
    async def test_returns_store_partitions(self, make_store, make_descriptor):
        store = make_store(partitions=[make_descriptor("0"), make_descriptor("1")])

        partitions = await discover_partitions(store)

        assert [p.id for p in partitions] == ["0", "1"]
        assert store.list_calls == 1

    @pytest.mark.asyncio
    async def test_empty_list_is_valid(self, make_store):
        assert await discover_partitions(make_store(partitions=[])) == []

    @pytest.mark.asyncio
    async def test_store_error_wrapped(self, make_store):
        store = make_store()

        async def unauthorized():
            raise AuthError("Unauthorized (401)")

        store.list_partitions = unauthorized

        with pytest.raises(DiscoveryError) as exc_info:
            await discover_partitions(store)

        assert isinstance(exc_info.value.cause, AuthError)
        assert exc_info.value.category == ErrorCategory.AUTH

    @pytest.mark.asyncio
    async def test_unclassified_error_wrapped(self, make_store):
        store = make_store()

        async def broken():
            raise RuntimeError("boom")

        store.list_partitions = broken

        with pytest.raises(DiscoveryError, match="boom") as exc_info:
            await discover_partitions(store)

        assert exc_info.value.category == ErrorCategory.UNKNOWN

    @pytest.mark.asyncio
    async def test_malformed_list_rejected(self, make_store):
        store = make_store()

        async def not_a_list():
            return {"0": "range"}

        store.list_partitions = not_a_list

        with pytest.raises(DiscoveryError, match="malformed partition list"):
            await discover_partitions(store)

    @pytest.mark.asyncio
    async def test_malformed_descriptor_rejected(self, make_store):
        store = make_store(partitions=[{"id": "0"}])

        with pytest.raises(DiscoveryError, match="malformed partition descriptor"):
            await discover_partitions(store)

    @pytest.mark.asyncio
    async def test_duplicate_ids_rejected(self, make_store):
        store = make_store(
            partitions=[
                PartitionDescriptor("0", "", "80"),
                PartitionDescriptor("0", "80", "FF"),
            ]
        )

        with pytest.raises(DiscoveryError, match="duplicate partition id"):
            await discover_partitions(store)
