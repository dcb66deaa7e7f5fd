"""
Cosmos DB REST response schemas.

Only the fields the change feed binding reads are modelled; everything
else in the payloads is ignored.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from changefeed.store import PartitionDescriptor


class PartitionKeyRange(BaseModel):
    """One entry of a collection's pkranges feed."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    min_inclusive: str = Field(alias="minInclusive")
    max_exclusive: str = Field(alias="maxExclusive")

    def to_descriptor(self) -> PartitionDescriptor:
        return PartitionDescriptor(
            id=self.id,
            range_min_hex=self.min_inclusive,
            range_max_hex=self.max_exclusive,
        )


class PartitionKeyRangesResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    partition_key_ranges: list[PartitionKeyRange] = Field(
        default_factory=list, alias="PartitionKeyRanges"
    )


class DocumentFeedResponse(BaseModel):
    """Body of an incremental (change feed) read of a collection's docs."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    documents: list[dict[str, Any]] = Field(default_factory=list, alias="Documents")
    count: int | None = Field(default=None, alias="_count")


__all__ = ["PartitionKeyRange", "PartitionKeyRangesResponse", "DocumentFeedResponse"]
