"""
Persistence for the last-sync offset.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from twexport.core.sync.models import SyncState, SyncSummary

logger = logging.getLogger(__name__)

STATE_FILE_NAME = "sync-state.json"


class SyncStateStore:
    """
    JSON-file backed SyncState.

    Reads are cached; writes go through a temp file and an atomic rename.

    Example:
        >>> store = SyncStateStore(tmp_path / "sync-state.json")
        >>> store.last_sync_at is None
        True
        >>> store.mark_synced(1700000000000)
        >>> store.last_sync_at
        1700000000000
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._state: SyncState | None = None

    @classmethod
    def beside(cls, db_path: Path | str) -> "SyncStateStore":
        """State file in the same directory as the database."""
        return cls(Path(db_path).parent / STATE_FILE_NAME)

    def load(self) -> SyncState:
        """Load sync state from file or return default state."""
        if self._state is not None:
            return self._state

        if self.path.exists():
            try:
                self._state = SyncState.model_validate_json(self.path.read_text(encoding="utf-8"))
                return self._state
            except (json.JSONDecodeError, ValidationError, OSError) as e:
                logger.warning("Failed to load sync state: %s", e)

        self._state = SyncState()
        return self._state

    def save(self, state: SyncState) -> None:
        """Save sync state to file atomically."""
        self._state = state
        self.path.parent.mkdir(parents=True, exist_ok=True)

        temp_path = self.path.with_suffix(".tmp")
        try:
            temp_path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
            temp_path.replace(self.path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise

    @property
    def last_sync_at(self) -> int | None:
        return self.load().last_sync_at

    def mark_synced(self, offset: int, summary: SyncSummary | None = None) -> None:
        """Advance the offset after a successful run."""
        state = self.load().model_copy(update={"last_sync_at": offset, "last_summary": summary})
        self.save(state)

    def record_summary(self, summary: SyncSummary) -> None:
        """Keep the latest summary without moving the offset."""
        state = self.load().model_copy(update={"last_summary": summary})
        self.save(state)
