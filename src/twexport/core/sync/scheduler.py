"""
Self-scheduling trigger for vault sync.

SyncScheduler turns configuration snapshots into a periodic sync:

    IDLE ──apply_config (should run)──> SCHEDULED ──tick──> RUNNING
      ^                                     ^                  │
      └──apply_config (should not run)──────┴──── run done ────┘

Every configuration or source-enablement change re-evaluates the schedule
from the latest snapshot only. When sync should run, the interval is
clamped, any existing timer is cancelled, one tick fires immediately and a
repeating timer is armed.

A tick is a guarded attempt. It is skipped, without changing state, when a
run is already in flight, the host is hidden or offline, or nothing was
captured since the last successful sync. The in-flight flag is the only
mutual exclusion: it is set before the first suspension point and cleared
in a ``finally`` block, so overlapping ticks collapse into one run.

Example:
    >>> scheduler = SyncScheduler(db, SyncStateStore.beside(db_path))
    >>> scheduler.apply_config(load_config())   # inside a running event loop
    >>> scheduler.state
    <SchedulerState.SCHEDULED: 'scheduled'>
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from twexport.core.config.models import TwexportConfig
from twexport.core.ordering import now_ms
from twexport.core.store.database import CaptureDatabase
from twexport.core.sync.engine import VaultSyncEngine
from twexport.core.sync.models import SchedulerState, SyncSummary
from twexport.core.sync.state import SyncStateStore
from twexport.core.vault.client import VaultClient

logger = logging.getLogger(__name__)

MIN_INTERVAL_MINUTES = 5
MAX_INTERVAL_MINUTES = 180
DEFAULT_INTERVAL_MINUTES = 15

EngineFactory = Callable[[TwexportConfig], VaultSyncEngine]
StateListener = Callable[[SchedulerState], None]


def clamp_interval_minutes(minutes: int | None) -> int:
    """
    Clamp a configured interval to the supported range.

    Example:
        >>> clamp_interval_minutes(2), clamp_interval_minutes(500)
        (5, 180)
    """
    if minutes is None:
        minutes = DEFAULT_INTERVAL_MINUTES
    return max(MIN_INTERVAL_MINUTES, min(MAX_INTERVAL_MINUTES, int(minutes)))


class SyncScheduler:
    """
    Periodic, single-flight vault sync driven by configuration snapshots.

    Must be used from inside a running asyncio event loop.

    Attributes:
        state: Current SchedulerState
        runs_completed: Number of runs that reached completion (either outcome)
    """

    def __init__(
        self,
        database: CaptureDatabase,
        state_store: SyncStateStore,
        *,
        engine_factory: EngineFactory | None = None,
        is_visible: Callable[[], bool] | None = None,
        is_online: Callable[[], bool] | None = None,
        _seconds_per_minute: float = 60.0,
    ) -> None:
        """
        Initialize the scheduler in the IDLE state.

        Args:
            database: Capture store queried for new captures
            state_store: Persisted last-sync offset
            engine_factory: Builds an engine from a config snapshot
                (defaults to a VaultSyncEngine over a VaultClient)
            is_visible: Host visibility probe; hidden hosts skip ticks
            is_online: Connectivity probe; offline hosts skip ticks
            _seconds_per_minute: Timer scale (testing only)
        """
        self.database = database
        self.state_store = state_store
        self._engine_factory = engine_factory or self._default_engine
        self._is_visible = is_visible or (lambda: True)
        self._is_online = is_online or (lambda: True)
        self._seconds_per_minute = _seconds_per_minute

        self._config: TwexportConfig | None = None
        self._timer: asyncio.Task[None] | None = None
        self._tick_tasks: set[asyncio.Task[None]] = set()
        self._in_flight = False
        self._token_warning_logged = False
        self._listeners: list[StateListener] = []

        self.state = SchedulerState.IDLE
        self.runs_completed = 0

    # ------------------------------------------------------------------
    # Configuration events
    # ------------------------------------------------------------------

    def apply_config(self, config: TwexportConfig) -> None:
        """Adopt a new configuration snapshot and reschedule."""
        self._config = config
        self.reschedule()

    def set_source_enabled(self, source: str, enabled: bool) -> None:
        """Record a source being switched on or off and reschedule."""
        if self._config is None:
            return
        sources = {**self._config.sources, source: enabled}
        self._config = self._config.model_copy(update={"sources": sources})
        self.reschedule()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a state-change listener.

        Returns:
            A callable that unsubscribes the listener
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def interval_minutes(self) -> int | None:
        """Clamped interval of the active schedule, None when idle."""
        if self._timer is None or self._config is None:
            return None
        return clamp_interval_minutes(self._config.auto_sync.interval_minutes)

    def should_run(self) -> bool:
        """Whether the current snapshot allows periodic sync."""
        config = self._config
        if config is None or not config.auto_sync.enabled:
            return False

        if not config.vault.has_token:
            if not self._token_warning_logged:
                logger.warning("Auto-sync disabled: vault API token not configured")
                self._token_warning_logged = True
            return False
        self._token_warning_logged = False

        if not config.is_source_enabled(config.auto_sync.source):
            return False

        return True

    def reschedule(self) -> None:
        """Recompute the schedule from the current snapshot."""
        self._cancel_timer()

        if not self.should_run():
            logger.debug("Auto-sync not active (conditions not met)")
            if not self._in_flight:
                self._set_state(SchedulerState.IDLE)
            return

        assert self._config is not None
        minutes = clamp_interval_minutes(self._config.auto_sync.interval_minutes)
        logger.info("Auto-sync scheduled: every %d minutes", minutes)

        loop = asyncio.get_running_loop()
        self._timer = loop.create_task(self._run_timer(minutes * self._seconds_per_minute))
        if not self._in_flight:
            self._set_state(SchedulerState.SCHEDULED)

    def stop(self) -> None:
        """Cancel the timer. A run already in flight finishes on its own."""
        self._cancel_timer()
        if not self._in_flight:
            self._set_state(SchedulerState.IDLE)
        logger.debug("Auto-sync stopped")

    async def aclose(self) -> None:
        """Stop and wait for in-flight ticks to finish."""
        self.stop()
        await self.drain()

    async def drain(self) -> None:
        """Wait until every spawned tick has finished."""
        while self._tick_tasks:
            await asyncio.gather(*list(self._tick_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def tick(self) -> SyncSummary | None:
        """
        One guarded sync attempt.

        Returns:
            The run's summary, or None if the attempt was skipped or failed
        """
        if self._in_flight:
            logger.debug("Auto-sync skipped: sync already in flight")
            return None

        if not self._is_visible():
            logger.debug("Auto-sync skipped: host not visible")
            return None

        if not self._is_online():
            logger.debug("Auto-sync skipped: host offline")
            return None

        config = self._config
        if config is None:
            logger.debug("Auto-sync skipped: no configuration")
            return None

        self._in_flight = True
        try:
            source = config.auto_sync.source
            last_sync_at = self.state_store.last_sync_at
            if last_sync_at is not None:
                new_captures = self.database.get_captures_for_source_since(source, last_sync_at)
                if not new_captures:
                    logger.debug("Auto-sync skipped: no new captures since last sync")
                    return None

            return await self._run(config, last_sync_at)
        finally:
            self._in_flight = False

    async def _run(self, config: TwexportConfig, last_sync_at: int | None) -> SyncSummary | None:
        started_at = now_ms()
        self._set_state(SchedulerState.RUNNING)
        summary: SyncSummary | None = None
        try:
            logger.info("Auto-sync started")
            engine = self._engine_factory(config)
            try:
                summary = await engine.sync(config.vault.folder, last_sync_at)
            finally:
                await engine.aclose()

            if summary.synced > 0 or summary.skipped > 0:
                logger.info(
                    "Auto-sync complete: synced=%d, skipped=%d, files=%d",
                    summary.synced,
                    summary.skipped,
                    summary.files,
                )
            else:
                logger.debug("Auto-sync complete: nothing to sync")

            if summary.ok:
                self.state_store.mark_synced(started_at, summary)
            else:
                logger.warning(
                    "Auto-sync had %d errors: %s", len(summary.errors), "; ".join(summary.errors)
                )
                self.state_store.record_summary(summary)
        except Exception as e:
            logger.error("Auto-sync failed: %s", e)
            summary = None
        finally:
            self.runs_completed += 1
            self._set_state(
                SchedulerState.SCHEDULED if self._timer is not None else SchedulerState.IDLE
            )
        return summary

    async def _safe_tick(self) -> None:
        try:
            await self.tick()
        except Exception:
            logger.exception("Unexpected error during auto-sync tick")

    def _spawn_tick(self) -> None:
        task = asyncio.get_running_loop().create_task(self._safe_tick())
        self._tick_tasks.add(task)
        task.add_done_callback(self._tick_tasks.discard)

    async def _run_timer(self, interval_seconds: float) -> None:
        self._spawn_tick()
        while True:
            await asyncio.sleep(interval_seconds)
            self._spawn_tick()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set_state(self, state: SchedulerState) -> None:
        if state == self.state:
            return
        self.state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Scheduler state listener failed")

    def _default_engine(self, config: TwexportConfig) -> VaultSyncEngine:
        return VaultSyncEngine(
            self.database,
            VaultClient.from_config(config.vault),
            source=config.auto_sync.source,
        )
