"""
Vault sync: the incremental export engine and its periodic scheduler.
"""

from twexport.core.sync.engine import (
    VaultSyncEngine,
    bucket_path,
    extract_existing_ids,
    merge_content,
)
from twexport.core.sync.models import SchedulerState, SyncState, SyncSummary
from twexport.core.sync.scheduler import (
    MAX_INTERVAL_MINUTES,
    MIN_INTERVAL_MINUTES,
    SyncScheduler,
    clamp_interval_minutes,
)
from twexport.core.sync.state import SyncStateStore

__all__ = [
    "MAX_INTERVAL_MINUTES",
    "MIN_INTERVAL_MINUTES",
    "SchedulerState",
    "SyncScheduler",
    "SyncState",
    "SyncStateStore",
    "SyncSummary",
    "VaultSyncEngine",
    "bucket_path",
    "clamp_interval_minutes",
    "extract_existing_ids",
    "merge_content",
]
