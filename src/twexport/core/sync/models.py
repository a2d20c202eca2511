"""
Data models for vault sync.

Defines Pydantic models for the per-run summary and the persisted sync
state, plus the scheduler's state enum.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SchedulerState(str, Enum):
    """Lifecycle of the periodic sync trigger."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"


class SyncSummary(BaseModel):
    """
    Outcome of one sync run.

    Example:
        >>> summary = SyncSummary(total=3, synced=2, skipped=1, files=1)
        >>> summary.ok
        True
    """

    total: int = Field(default=0, description="Records considered in this run")
    synced: int = Field(default=0, description="Documents appended to the vault")
    skipped: int = Field(default=0, description="Documents already present remotely")
    files: int = Field(default=0, description="Bucket files written")
    errors: list[str] = Field(
        default_factory=list,
        description="One message per failed bucket read or write",
    )

    @property
    def ok(self) -> bool:
        return not self.errors


class SyncState(BaseModel):
    """
    Persistent sync state stored next to the capture database.

    Example:
        >>> state = SyncState(last_sync_at=1700000000000)
        >>> state.model_dump_json()
        '{"last_sync_at":1700000000000,"last_summary":null}'
    """

    last_sync_at: Optional[int] = Field(
        default=None,
        description="Epoch ms offset of the last successful sync",
    )
    last_summary: Optional[SyncSummary] = Field(
        default=None,
        description="Summary of the most recent completed run",
    )
