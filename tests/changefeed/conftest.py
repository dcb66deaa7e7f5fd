"""Shared fixtures for change feed tests: an in-memory store."""

import pytest

from changefeed.store import ChangefeedPage, PartitionDescriptor


class FakeChangefeedStore:
    """In-memory ChangefeedStore.

    pages maps partition id to the pages returned by successive
    query_changefeed calls. A page may be an Exception instance, which is
    raised instead. Calls past the last page raise AssertionError.
    """

    def __init__(self, partitions=None, pages=None):
        self.partitions = list(partitions or [])
        self.pages = {pid: list(p) for pid, p in (pages or {}).items()}
        self.calls: list[tuple[str, str | None, int]] = []
        self.list_calls = 0
        self.closed = False

    async def list_partitions(self):
        self.list_calls += 1
        return list(self.partitions)

    async def query_changefeed(self, partition_id, continuation_token, max_item_count):
        self.calls.append((partition_id, continuation_token, max_item_count))
        remaining = self.pages.get(partition_id, [])
        if not remaining:
            raise AssertionError(f"Unexpected fetch for partition {partition_id}")
        page = remaining.pop(0)
        if isinstance(page, Exception):
            raise page
        return page

    async def close(self):
        self.closed = True

    def calls_for(self, partition_id):
        return [c for c in self.calls if c[0] == partition_id]


def page(items, token, has_more):
    return ChangefeedPage(items=list(items), continuation_token=token, has_more=has_more)


def full_range(partition_id="p1"):
    return PartitionDescriptor(id=partition_id, range_min_hex="", range_max_hex="FF")


@pytest.fixture
def make_store():
    return FakeChangefeedStore


@pytest.fixture
def make_page():
    return page


@pytest.fixture
def make_descriptor():
    return full_range
