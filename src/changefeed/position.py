"""
Position and range algebra for change feed checkpoints.

A ChangefeedPosition is an immutable mapping from partition id to the last
sequence number processed in that partition, together with the key-hash
range the partition owned when the position was taken. Everything here is
pure: no I/O, no clocks, no shared state.

Functions:
    range_covers          - does one partition range contain another
    parse_range_bound     - store hex range bound -> int (0 on failure)
    parse_sequence_number - decimal sequence number -> int (0 on failure)
    succeeds / pick_latest - compare two checkpoints
    find_partition / merge - lookup and replace-by-id
"""

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import asdict, dataclass
from typing import Any

INT64_MAX = 2**63 - 1
"""Upper bound of the last partition's range ("ff" in store encoding)."""

_HEX_DIGITS = re.compile(r"^[0-9a-fA-F]+$")
_DECIMAL = re.compile(r"^[+-]?[0-9]+$")
_INT64_MIN = -(2**63)


@dataclass(frozen=True)
class PartitionRange:
    """A contiguous key-hash interval owned by one partition."""

    partition_id: str
    range_min: int
    range_max: int


@dataclass(frozen=True)
class PartitionPosition(PartitionRange):
    """A partition range plus the last sequence number processed in it.

    A last_sequence_number of 0 means "start of partition".
    """

    last_sequence_number: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PartitionPosition":
        return cls(
            partition_id=str(data["partition_id"]),
            range_min=int(data["range_min"]),
            range_max=int(data["range_max"]),
            last_sequence_number=int(data.get("last_sequence_number", 0)),
        )


class ChangefeedPosition(Mapping[str, PartitionPosition]):
    """Immutable checkpoint keyed by partition id.

    Partition ids are unique: constructing a position from entries that
    repeat an id raises ValueError, and merge() replaces rather than appends.
    A partition absent from the mapping is unconstrained (start of
    partition), never "fully consumed".
    """

    __slots__ = ("_partitions",)

    def __init__(self, positions: Iterable[PartitionPosition] = ()):
        partitions: dict[str, PartitionPosition] = {}
        for pp in positions:
            if pp.partition_id in partitions:
                raise ValueError(f"Duplicate partition id in position: {pp.partition_id!r}")
            partitions[pp.partition_id] = pp
        self._partitions = partitions

    @classmethod
    def _from_mapping(cls, partitions: dict[str, PartitionPosition]) -> "ChangefeedPosition":
        instance = cls.__new__(cls)
        instance._partitions = partitions
        return instance

    def __getitem__(self, partition_id: str) -> PartitionPosition:
        return self._partitions[partition_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._partitions)

    def __len__(self) -> int:
        return len(self._partitions)

    def __repr__(self) -> str:
        entries = ", ".join(
            f"{pp.partition_id}@{pp.last_sequence_number}" for pp in self.positions()
        )
        return f"ChangefeedPosition({entries})"

    def positions(self) -> list[PartitionPosition]:
        """Entries ordered by partition id."""
        return [self._partitions[pid] for pid in sorted(self._partitions)]

    def to_dict(self) -> dict[str, Any]:
        return {"partitions": [pp.to_dict() for pp in self.positions()]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChangefeedPosition":
        return cls(PartitionPosition.from_dict(item) for item in data.get("partitions", []))


EMPTY_POSITION = ChangefeedPosition()


def range_covers(x: PartitionRange, y: PartitionRange) -> bool:
    """True if x's range fully contains y's range."""
    return x.range_min <= y.range_min and x.range_max >= y.range_max


def try_parse_range_bound(value: str | None) -> int | None:
    """Parse a hex range bound, returning None when it is not parsable.

    The literal "ff" marks the open upper end of the last partition and maps
    to INT64_MAX. An empty string is the lower end of the first partition.
    Other bounds are plain hex of any width; bounds beyond 64 bits (hash-v2
    effective partition keys) parse to the full integer.
    """
    if value is None:
        return None
    text = value.strip()
    if text.lower() == "ff":
        return INT64_MAX
    if text == "":
        return 0
    if not _HEX_DIGITS.match(text):
        return None
    return int(text, 16)


def parse_range_bound(value: str | None) -> int:
    """Parse a hex range bound; unparsable input maps to 0."""
    parsed = try_parse_range_bound(value)
    return 0 if parsed is None else parsed


def try_parse_sequence_number(value: str | None) -> int | None:
    """Parse a decimal sequence number, returning None when not parsable."""
    if value is None:
        return None
    text = value.strip()
    if not _DECIMAL.match(text):
        return None
    parsed = int(text)
    if parsed > INT64_MAX or parsed < _INT64_MIN:
        return None
    return parsed


def parse_sequence_number(value: str | None) -> int:
    """Parse a decimal sequence number; unparsable input maps to 0."""
    parsed = try_parse_sequence_number(value)
    return 0 if parsed is None else parsed


def succeeds(a: ChangefeedPosition, b: ChangefeedPosition) -> bool:
    """True if no entry of a covers an entry of b with a larger sequence number.

    A covering pair (x in a, y in b) where x is further along than y counts
    as a violation. This polarity is kept as-is; callers comparing
    checkpoints should read it as "a is not ahead of b anywhere".
    """
    return not any(
        range_covers(x, y) and x.last_sequence_number > y.last_sequence_number
        for x in a.values()
        for y in b.values()
    )


def pick_latest(
    a: ChangefeedPosition, b: ChangefeedPosition
) -> ChangefeedPosition | None:
    """Return a if it succeeds b, else b if it succeeds a, else None."""
    if succeeds(a, b):
        return a
    if succeeds(b, a):
        return b
    return None


def find_partition(partition_id: str, cfp: ChangefeedPosition) -> PartitionPosition | None:
    return cfp.get(partition_id)


def merge(cfp: ChangefeedPosition, pp: PartitionPosition) -> ChangefeedPosition:
    """Return a new position with pp replacing any entry for its partition."""
    partitions = dict(cfp._partitions)
    partitions[pp.partition_id] = pp
    return ChangefeedPosition._from_mapping(partitions)


__all__ = [
    "INT64_MAX",
    "EMPTY_POSITION",
    "PartitionRange",
    "PartitionPosition",
    "ChangefeedPosition",
    "range_covers",
    "parse_range_bound",
    "try_parse_range_bound",
    "parse_sequence_number",
    "try_parse_sequence_number",
    "succeeds",
    "pick_latest",
    "find_partition",
    "merge",
]
