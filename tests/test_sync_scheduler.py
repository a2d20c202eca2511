"""
Tests for SyncScheduler.

Engines are AsyncMocks handed in through engine_factory; the capture
database and sync state are real.
"""

import asyncio
import logging
from unittest.mock import AsyncMock, patch

import pytest

from twexport.core.config.models import TwexportConfig
from twexport.core.records import RecordKind
from twexport.core.sync.models import SchedulerState, SyncSummary
from twexport.core.sync.scheduler import (
    MAX_INTERVAL_MINUTES,
    MIN_INTERVAL_MINUTES,
    SyncScheduler,
    clamp_interval_minutes,
)
from twexport.core.sync.state import SyncStateStore

SOURCE = "HomeTimelineModule"


def _config(enabled=True, token="t", interval=15, source_enabled=True):
    return TwexportConfig(
        vault={"token": token, "folder": "Tweets"},
        auto_sync={"enabled": enabled, "interval_minutes": interval},
        sources={SOURCE: source_enabled},
    )


def _engine(summary=None):
    engine = AsyncMock()
    engine.sync.return_value = summary or SyncSummary(total=1, synced=1, files=1)
    return engine


@pytest.fixture
def state_store(tmp_path):
    return SyncStateStore(tmp_path / "sync-state.json")


@pytest.fixture
def make_scheduler(db, state_store):
    def factory(engine=None, **kwargs):
        engine = engine or _engine()
        scheduler = SyncScheduler(db, state_store, engine_factory=lambda config: engine, **kwargs)
        scheduler.engine = engine
        return scheduler

    return factory


async def _settle(scheduler):
    """Let the timer fire its immediate tick and wait for it."""
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    await scheduler.drain()


class TestClampInterval:
    """Tests for clamp_interval_minutes()."""

    def test_bounds(self):
        assert clamp_interval_minutes(2) == MIN_INTERVAL_MINUTES == 5
        assert clamp_interval_minutes(500) == MAX_INTERVAL_MINUTES == 180
        assert clamp_interval_minutes(30) == 30

    def test_missing_uses_default(self):
        assert clamp_interval_minutes(None) == 15


class TestScheduling:
    """Tests for schedule evaluation on configuration events."""

    @pytest.mark.asyncio
    async def test_starts_idle(self, make_scheduler):
        assert make_scheduler().state == SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_enabled_config_schedules_and_ticks_immediately(self, make_scheduler):
        scheduler = make_scheduler()
        scheduler.apply_config(_config(interval=2))

        assert scheduler.state == SchedulerState.SCHEDULED
        assert scheduler.interval_minutes == 5

        await _settle(scheduler)
        scheduler.engine.sync.assert_awaited_once_with("Tweets", None)
        assert scheduler.state == SchedulerState.SCHEDULED
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_disabled_config_goes_idle(self, make_scheduler):
        scheduler = make_scheduler()
        scheduler.apply_config(_config())
        scheduler.apply_config(_config(enabled=False))

        assert scheduler.state == SchedulerState.IDLE
        assert scheduler.interval_minutes is None

    @pytest.mark.asyncio
    async def test_missing_token_warns_once(self, make_scheduler, caplog):
        scheduler = make_scheduler()
        with caplog.at_level(logging.WARNING):
            scheduler.apply_config(_config(token=None))
            scheduler.apply_config(_config(token=None, interval=30))

        assert scheduler.state == SchedulerState.IDLE
        assert caplog.text.count("vault API token not configured") == 1

    @pytest.mark.asyncio
    async def test_source_enablement_event(self, make_scheduler):
        scheduler = make_scheduler()
        scheduler.apply_config(_config(source_enabled=False))
        assert scheduler.state == SchedulerState.IDLE

        scheduler.set_source_enabled(SOURCE, True)
        assert scheduler.state == SchedulerState.SCHEDULED

        scheduler.set_source_enabled(SOURCE, False)
        assert scheduler.state == SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_source_event_before_config_is_ignored(self, make_scheduler):
        scheduler = make_scheduler()
        scheduler.set_source_enabled(SOURCE, True)
        assert scheduler.state == SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_timer_repeats_until_stopped(self, make_scheduler):
        """Test that ticks keep firing at the interval and stop afterwards."""
        probes = []

        def hidden():
            probes.append(1)
            return False

        scheduler = make_scheduler(is_visible=hidden, _seconds_per_minute=0.001)
        scheduler.apply_config(_config(interval=5))
        await asyncio.sleep(0.1)
        assert len(probes) >= 3

        scheduler.stop()
        await scheduler.drain()
        fired = len(probes)
        await asyncio.sleep(0.05)
        assert len(probes) == fired
        assert scheduler.state == SchedulerState.IDLE
        scheduler.engine.sync.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reschedule_replaces_timer(self, make_scheduler):
        scheduler = make_scheduler()
        scheduler.apply_config(_config(interval=30))
        first = scheduler._timer
        scheduler.apply_config(_config(interval=60))
        await asyncio.sleep(0)

        assert first.cancelled()
        assert scheduler.interval_minutes == 60
        await scheduler.aclose()


class TestTickGuards:
    """Tests for conditions that skip a tick."""

    @pytest.mark.asyncio
    async def test_hidden_host_skips(self, make_scheduler):
        scheduler = make_scheduler(is_visible=lambda: False)
        scheduler._config = _config()

        assert await scheduler.tick() is None
        scheduler.engine.sync.assert_not_awaited()
        assert scheduler.state == SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_offline_host_skips(self, make_scheduler):
        scheduler = make_scheduler(is_online=lambda: False)
        scheduler._config = _config()

        assert await scheduler.tick() is None
        scheduler.engine.sync.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_new_captures_skips(self, make_scheduler, state_store, db, make_post):
        with patch("twexport.core.store.database.now_ms", return_value=1000):
            db.add_captured(SOURCE, RecordKind.POST, [(make_post("1"), None)])
        state_store.mark_synced(2000)

        scheduler = make_scheduler()
        scheduler._config = _config()
        assert await scheduler.tick() is None
        scheduler.engine.sync.assert_not_awaited()
        assert not scheduler.in_flight

    @pytest.mark.asyncio
    async def test_new_captures_since_offset_run(self, make_scheduler, state_store, db, make_post):
        state_store.mark_synced(2000)
        with patch("twexport.core.store.database.now_ms", return_value=3000):
            db.add_captured(SOURCE, RecordKind.POST, [(make_post("1"), None)])

        scheduler = make_scheduler()
        scheduler._config = _config()
        assert await scheduler.tick() is not None
        scheduler.engine.sync.assert_awaited_once_with("Tweets", 2000)

    @pytest.mark.asyncio
    async def test_overlapping_ticks_run_once(self, make_scheduler):
        """Test that two ticks during an in-flight sync give one run and one completion."""
        release = asyncio.Event()

        async def slow_sync(folder, since):
            await release.wait()
            return SyncSummary(total=1, synced=1, files=1)

        engine = _engine()
        engine.sync.side_effect = slow_sync
        scheduler = make_scheduler(engine)
        events = []
        scheduler.subscribe(events.append)

        scheduler.apply_config(_config())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert scheduler.in_flight
        assert scheduler.state == SchedulerState.RUNNING

        assert await scheduler.tick() is None
        assert await scheduler.tick() is None

        release.set()
        await scheduler.drain()

        engine.sync.assert_awaited_once()
        assert scheduler.runs_completed == 1
        assert events == [
            SchedulerState.SCHEDULED,
            SchedulerState.RUNNING,
            SchedulerState.SCHEDULED,
        ]
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_config_change_during_run(self, make_scheduler):
        """Test that a started run finishes after the schedule is dropped."""
        release = asyncio.Event()

        async def slow_sync(folder, since):
            await release.wait()
            return SyncSummary()

        engine = _engine()
        engine.sync.side_effect = slow_sync
        scheduler = make_scheduler(engine)

        scheduler.apply_config(_config())
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        scheduler.apply_config(_config(enabled=False))
        assert scheduler.state == SchedulerState.RUNNING

        release.set()
        await scheduler.drain()
        assert scheduler.state == SchedulerState.IDLE
        assert scheduler.runs_completed == 1


class TestOffsetBookkeeping:
    """Tests for advancing the last-sync offset."""

    @pytest.mark.asyncio
    async def test_success_advances_offset_to_run_start(self, make_scheduler, state_store):
        scheduler = make_scheduler()
        scheduler._config = _config()

        with patch("twexport.core.sync.scheduler.now_ms", return_value=5000):
            summary = await scheduler.tick()

        assert summary.synced == 1
        assert state_store.last_sync_at == 5000
        assert state_store.load().last_summary == summary
        scheduler.engine.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_bucket_errors_keep_offset(self, make_scheduler, state_store, db, make_post, caplog):
        state_store.mark_synced(1000)
        db.add_captured(SOURCE, RecordKind.POST, [(make_post("1"), None)])
        failed = SyncSummary(total=2, synced=1, files=1, errors=["PUT x failed (500)"])
        scheduler = make_scheduler(_engine(failed))
        scheduler._config = _config()

        with caplog.at_level(logging.WARNING):
            assert await scheduler.tick() == failed

        assert state_store.last_sync_at == 1000
        assert state_store.load().last_summary == failed
        assert "Auto-sync had 1 errors" in caplog.text

    @pytest.mark.asyncio
    async def test_engine_exception_keeps_offset(self, make_scheduler, state_store, caplog):
        engine = _engine()
        engine.sync.side_effect = RuntimeError("vault exploded")
        scheduler = make_scheduler(engine)
        scheduler._config = _config()

        with caplog.at_level(logging.ERROR):
            assert await scheduler.tick() is None

        assert state_store.last_sync_at is None
        assert "Auto-sync failed: vault exploded" in caplog.text
        assert scheduler.state == SchedulerState.IDLE
        assert not scheduler.in_flight
        engine.aclose.assert_awaited_once()


class TestListeners:
    """Tests for state listeners."""

    @pytest.mark.asyncio
    async def test_unsubscribe(self, make_scheduler):
        scheduler = make_scheduler()
        events = []
        unsubscribe = scheduler.subscribe(events.append)
        scheduler.apply_config(_config())
        unsubscribe()
        scheduler.stop()

        assert events == [SchedulerState.SCHEDULED]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_scheduler(self, make_scheduler, caplog):
        scheduler = make_scheduler()

        def broken(state):
            raise ValueError("listener bug")

        scheduler.subscribe(broken)
        with caplog.at_level(logging.ERROR):
            scheduler.apply_config(_config())

        assert scheduler.state == SchedulerState.SCHEDULED
        assert "Scheduler state listener failed" in caplog.text
        await scheduler.aclose()
