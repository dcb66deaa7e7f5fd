"""
Tests for PartitionReader: resume point, paging, parsing and stopping policy.
"""

import logging

import pytest

from changefeed.config import BEGINNING, ProcessorConfig
from changefeed.position import INT64_MAX, ChangefeedPosition, PartitionPosition
from changefeed.reader import PartitionReader, strip_token_quotes
from changefeed.store import PartitionDescriptor
from core.errors import PositionParseError, TransientError


async def collect(reader):
    return [(items, position) async for items, position in reader.batches()]


def stop_at(partition_id, lsn):
    return ChangefeedPosition([PartitionPosition(partition_id, 0, INT64_MAX, lsn)])


class TestStripTokenQuotes:
    def test_strips_quotes(self):
        assert strip_token_quotes('"42"') == "42"

    def test_plain_token_unchanged(self):
        assert strip_token_quotes("42") == "42"

    def test_none(self):
        assert strip_token_quotes(None) is None


class TestResumeToken:
    def test_beginning_has_no_token(self, make_store, make_descriptor):
        reader = PartitionReader(make_store(), make_descriptor(), ProcessorConfig())
        assert reader.resume_token() is None

    def test_resumes_from_prior_position(self, make_store, make_descriptor):
        config = ProcessorConfig(starting_position=stop_at("p1", 12))
        reader = PartitionReader(make_store(), make_descriptor("p1"), config)
        assert reader.resume_token() == "12"

    def test_partition_missing_from_start_position(self, make_store, make_descriptor):
        config = ProcessorConfig(starting_position=stop_at("other", 12))
        reader = PartitionReader(make_store(), make_descriptor("p1"), config)
        assert reader.resume_token() is None


class TestBatches:
    @pytest.mark.asyncio
    async def test_two_pages_then_caught_up(self, make_store, make_page, make_descriptor):
        store = make_store(
            pages={
                "p1": [
                    make_page(range(5), "5", True),
                    make_page(range(3), "8", False),
                ]
            }
        )
        config = ProcessorConfig(batch_size=10, starting_position=BEGINNING)

        emitted = await collect(PartitionReader(store, make_descriptor("p1"), config))

        assert [len(items) for items, _ in emitted] == [5, 3]
        assert [pos.last_sequence_number for _, pos in emitted] == [5, 8]
        assert store.calls == [("p1", None, 10), ("p1", "5", 10)]

    @pytest.mark.asyncio
    async def test_position_carries_parsed_range(self, make_store, make_page):
        descriptor = PartitionDescriptor(id="3", range_min_hex="0a", range_max_hex="ff")
        store = make_store(pages={"3": [make_page(["e"], "1", False)]})

        [(_, position)] = await collect(PartitionReader(store, descriptor, ProcessorConfig()))

        assert position == PartitionPosition("3", 10, INT64_MAX, 1)

    @pytest.mark.asyncio
    async def test_upper_half_range_read_in_strict_mode(self, make_store, make_page):
        descriptor = PartitionDescriptor(id="p2", range_min_hex="8000000000000000", range_max_hex="FF")
        store = make_store(pages={"p2": [make_page(["e"], "4", False)]})

        [(items, position)] = await collect(PartitionReader(store, descriptor, ProcessorConfig()))

        assert items == ["e"]
        assert position.range_min == 2**63
        assert position.last_sequence_number == 4
        assert store.calls == [("p2", None, 100)]

    @pytest.mark.asyncio
    async def test_resumed_reader_sends_prior_token(self, make_store, make_page, make_descriptor):
        store = make_store(pages={"p1": [make_page([], "12", False)]})
        config = ProcessorConfig(starting_position=stop_at("p1", 12))

        await collect(PartitionReader(store, make_descriptor("p1"), config))

        assert store.calls == [("p1", "12", 100)]

    @pytest.mark.asyncio
    async def test_quoted_tokens(self, make_store, make_page, make_descriptor):
        store = make_store(
            pages={"p1": [make_page(["a"], '"17"', True), make_page([], '"17"', False)]}
        )

        emitted = await collect(PartitionReader(store, make_descriptor("p1"), ProcessorConfig()))

        assert [pos.last_sequence_number for _, pos in emitted] == [17, 17]
        assert store.calls[1][1] == '"17"'

    @pytest.mark.asyncio
    async def test_page_without_token_keeps_cursor(self, make_store, make_page, make_descriptor):
        store = make_store(
            pages={"p1": [make_page(["a"], "4", True), make_page([], None, False)]}
        )

        emitted = await collect(PartitionReader(store, make_descriptor("p1"), ProcessorConfig()))

        assert [pos.last_sequence_number for _, pos in emitted] == [4, 4]

    @pytest.mark.asyncio
    async def test_empty_partition_from_beginning(self, make_store, make_page, make_descriptor):
        store = make_store(pages={"p1": [make_page([], None, False)]})

        [(items, position)] = await collect(
            PartitionReader(store, make_descriptor("p1"), ProcessorConfig())
        )

        assert items == []
        assert position.last_sequence_number == 0

    @pytest.mark.asyncio
    async def test_fetch_error_propagates(self, make_store, make_page, make_descriptor):
        store = make_store(
            pages={"p1": [make_page(["a"], "1", True), TransientError("store unavailable")]}
        )
        reader = PartitionReader(store, make_descriptor("p1"), ProcessorConfig())
        emitted = []

        with pytest.raises(TransientError):
            async for batch in reader.batches():
                emitted.append(batch)

        assert len(emitted) == 1


class TestStoppingPolicy:
    @pytest.mark.asyncio
    async def test_stops_after_overshooting_stop_point(self, make_store, make_page, make_descriptor):
        store = make_store(
            pages={
                "p1": [
                    make_page(["a"], "5", True),
                    make_page(["b"], "9", True),
                    make_page(["c"], "12", True),
                ]
            }
        )
        config = ProcessorConfig(stopping_position=stop_at("p1", 8))

        emitted = await collect(PartitionReader(store, make_descriptor("p1"), config))

        assert [pos.last_sequence_number for _, pos in emitted] == [5, 9]
        assert len(store.calls) == 2

    @pytest.mark.asyncio
    async def test_continues_while_at_stop_point(self, make_store, make_page, make_descriptor):
        store = make_store(
            pages={"p1": [make_page(["a"], "8", True), make_page(["b"], "10", True)]}
        )
        config = ProcessorConfig(stopping_position=stop_at("p1", 8))

        emitted = await collect(PartitionReader(store, make_descriptor("p1"), config))

        assert [pos.last_sequence_number for _, pos in emitted] == [8, 10]

    @pytest.mark.asyncio
    async def test_partition_absent_from_stop_position_is_unconstrained(
        self, make_store, make_page, make_descriptor
    ):
        store = make_store(
            pages={
                "p1": [
                    make_page(["a"], "50", True),
                    make_page(["b"], "90", True),
                    make_page([], "90", False),
                ]
            }
        )
        config = ProcessorConfig(stopping_position=stop_at("other", 1))

        emitted = await collect(PartitionReader(store, make_descriptor("p1"), config))

        assert len(emitted) == 3

    @pytest.mark.asyncio
    async def test_has_more_false_ends_before_stop_point(
        self, make_store, make_page, make_descriptor
    ):
        store = make_store(pages={"p1": [make_page(["a"], "3", False)]})
        config = ProcessorConfig(stopping_position=stop_at("p1", 100))

        emitted = await collect(PartitionReader(store, make_descriptor("p1"), config))

        assert len(emitted) == 1


class TestPositionParsing:
    @pytest.mark.asyncio
    async def test_strict_rejects_bad_token(self, make_store, make_page, make_descriptor):
        store = make_store(pages={"p1": [make_page(["a"], "not-a-number", True)]})
        reader = PartitionReader(store, make_descriptor("p1"), ProcessorConfig())

        with pytest.raises(PositionParseError) as exc_info:
            await collect(reader)

        assert exc_info.value.field == "continuation_token"
        assert exc_info.value.partition_id == "p1"

    @pytest.mark.asyncio
    async def test_strict_rejects_bad_range_before_fetch(self, make_store):
        descriptor = PartitionDescriptor(id="p1", range_min_hex="xyz", range_max_hex="FF")
        store = make_store()
        reader = PartitionReader(store, descriptor, ProcessorConfig())

        with pytest.raises(PositionParseError, match="range_min"):
            await collect(reader)

        assert store.calls == []

    @pytest.mark.asyncio
    async def test_lenient_falls_back_to_zero(self, make_store, make_page, caplog):
        descriptor = PartitionDescriptor(id="p1", range_min_hex="xyz", range_max_hex="FF")
        store = make_store(pages={"p1": [make_page(["a"], "bad", False)]})
        config = ProcessorConfig(strict_position_parsing=False)

        with caplog.at_level(logging.WARNING, logger="changefeed.reader"):
            [(_, position)] = await collect(PartitionReader(store, descriptor, config))

        assert position.range_min == 0
        assert position.last_sequence_number == 0
        warnings = [r for r in caplog.records if "Unparsable position value" in r.getMessage()]
        assert len(warnings) == 2
