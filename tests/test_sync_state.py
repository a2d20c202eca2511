"""Tests for SyncStateStore persistence."""

from twexport.core.sync.models import SyncState, SyncSummary
from twexport.core.sync.state import STATE_FILE_NAME, SyncStateStore


class TestSyncStateStore:
    """Tests for loading and saving the sync offset."""

    def test_default_state(self, tmp_path):
        store = SyncStateStore(tmp_path / STATE_FILE_NAME)
        assert store.load() == SyncState()
        assert store.last_sync_at is None

    def test_beside_database(self, tmp_path):
        store = SyncStateStore.beside(tmp_path / "data" / "twexport.db")
        assert store.path == tmp_path / "data" / STATE_FILE_NAME

    def test_mark_synced_persists(self, tmp_path):
        path = tmp_path / STATE_FILE_NAME
        summary = SyncSummary(total=2, synced=2, files=1)
        SyncStateStore(path).mark_synced(1700000000000, summary)

        reloaded = SyncStateStore(path)
        assert reloaded.last_sync_at == 1700000000000
        assert reloaded.load().last_summary == summary
        assert not path.with_suffix(".tmp").exists()

    def test_record_summary_keeps_offset(self, tmp_path):
        store = SyncStateStore(tmp_path / STATE_FILE_NAME)
        store.mark_synced(10)
        store.record_summary(SyncSummary(errors=["GET x failed (500)"]))

        assert store.last_sync_at == 10
        assert store.load().last_summary.errors == ["GET x failed (500)"]

    def test_corrupt_file_falls_back_to_default(self, tmp_path):
        path = tmp_path / STATE_FILE_NAME
        path.write_text("{ broken")
        assert SyncStateStore(path).last_sync_at is None


class TestSyncSummary:
    """Tests for SyncSummary."""

    def test_ok(self):
        assert SyncSummary().ok
        assert not SyncSummary(errors=["x"]).ok
