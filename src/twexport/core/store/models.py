"""
Data models for the local capture store.

A Capture is the provenance entry "source S observed record R at position
P". Records themselves stay plain dicts (see twexport.core.records).
"""

from __future__ import annotations

from typing import Any, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from twexport.core.records import Record, RecordKind


def capture_id(source: str, record_id: str) -> str:
    """Composite capture key; one capture per (source, record) pair."""
    return f"{source}-{record_id}"


class Capture(BaseModel):
    """
    A single provenance entry.

    Example:
        >>> capture = Capture(
        ...     id="HomeTimelineModule-1",
        ...     source="HomeTimelineModule",
        ...     kind=RecordKind.POST,
        ...     record_id="1",
        ...     created_at=1700000000000,
        ... )
        >>> capture.sort_index is None
        True
    """

    id: str = Field(..., description="Composite key '{source}-{record_id}'")
    source: str = Field(..., min_length=1, description="Logical source that observed the record")
    kind: RecordKind = Field(..., description="Kind of the referenced record")
    record_id: str = Field(..., min_length=1, description="rest_id of the referenced record")
    created_at: int = Field(..., description="Capture time in epoch ms, biased by batch position")
    sort_index: Optional[Union[str, int]] = Field(
        default=None,
        description="Source-native ordering key, if the source provides one",
    )

    model_config = ConfigDict(
        frozen=True,
    )

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class CapturedItem(NamedTuple):
    """A record handed over by the interceptor plus its optional sort key."""

    record: Record
    sort_index: Optional[Union[str, int]] = None


class StoreCounts(BaseModel):
    """Row counts of the three tables."""

    posts: int = 0
    profiles: int = 0
    captures: int = 0
