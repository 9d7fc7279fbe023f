"""Scheduler driving the resolve → update cycle.

The timer delay is ``interval + random(0, jitter)`` seconds, recomputed for
every tick. Each tick launches the cycle as a background task; if the
previous cycle is still running when the next tick fires, that tick is
skipped rather than queued. The scheduler alone owns the persisted state.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from self_updater.config import UpdaterConfig
from self_updater.errors import FATAL_ERRORS, ConcurrentUpdateError, UpdaterError
from self_updater.logging import get_logger
from self_updater.models import StatusReport, UpdateResult, UpdaterState
from self_updater.resolver import CommitResolver
from self_updater.state import StateStore
from self_updater.updater import UpdateManager


class UpdateScheduler:
    """Runs update cycles on a jittered timer with an in-flight guard."""

    def __init__(
        self,
        config: UpdaterConfig,
        *,
        manager: UpdateManager,
        resolver: CommitResolver,
        state_store: StateStore,
        logger: structlog.stdlib.BoundLogger | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._config = config
        self._manager = manager
        self._resolver = resolver
        self._store = state_store
        self._log = logger or get_logger("self_updater.scheduler")
        self._rng = rng
        self._state = state_store.load()
        self._running = False
        self._stop_event = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()
        self._fatal: BaseException | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def state(self) -> UpdaterState:
        return self._state

    def compute_delay(self) -> float:
        """Seconds until the next tick, in ``[interval, interval + jitter]``."""
        schedule = self._config.schedule
        jitter = schedule.jitter_seconds * self._rng() if schedule.jitter_seconds else 0.0
        return schedule.interval_seconds + jitter

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_cycle(self, trigger: str = "scheduled") -> UpdateResult | None:
        """Run one cycle, logging (not raising) non-fatal failures.

        Returns None when the cycle was skipped or failed.
        """
        if self._running:
            self._log.warning("cycle_skipped_in_flight", trigger=trigger)
            return None

        self._running = True
        try:
            self._log.info("cycle_started", trigger=trigger)
            return await self._execute()
        except ConcurrentUpdateError as exc:
            self._log.warning("cycle_skipped_locked", trigger=trigger, error=str(exc))
            return None
        except FATAL_ERRORS:
            raise
        except UpdaterError as exc:
            self._log.error(
                "cycle_failed",
                trigger=trigger,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None
        except Exception:
            self._log.exception("cycle_crashed", trigger=trigger)
            return None
        finally:
            self._running = False

    async def run_once(self) -> UpdateResult:
        """Run exactly one cycle; every error propagates to the caller."""
        self._running = True
        try:
            await self._manager.ensure_repository()
            return await self._execute()
        finally:
            self._running = False

    async def _execute(self) -> UpdateResult:
        remote_commit = await self._resolver.resolve_latest_commit()
        result = await self._manager.update_to_commit(remote_commit)
        self._persist(result)
        self._log.info(
            "cycle_completed",
            updated=result.updated,
            previous_commit=result.previous_commit,
            current_commit=result.current_commit,
        )
        return result

    def _persist(self, result: UpdateResult) -> None:
        if result.updated and result.current_commit:
            self._state = UpdaterState(
                last_commit=result.current_commit,
                updated_at=datetime.now(UTC).isoformat(),
            )
        elif not self._state.last_commit and (result.current_commit or result.previous_commit):
            # First run: seed the known commit without claiming an update.
            self._state = UpdaterState(
                last_commit=result.current_commit or result.previous_commit,
                updated_at=self._state.updated_at,
            )
        else:
            return

        try:
            self._store.save(self._state)
        except OSError:
            self._log.exception("state_save_failed", path=str(self._store.path))

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run_forever(self, immediate: bool = False) -> None:
        """Run until :meth:`stop` is called or a fatal error occurs."""
        await self._manager.ensure_repository()
        if immediate:
            await self.run_cycle("initial")

        self._log.info(
            "scheduler_started",
            interval_seconds=self._config.schedule.interval_seconds,
            jitter_seconds=self._config.schedule.jitter_seconds,
        )

        while not self._stop_event.is_set():
            delay = self.compute_delay()
            self._log.debug("next_cycle_scheduled", delay_seconds=round(delay, 2))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except TimeoutError:
                self._trigger("scheduled")

        if self._tasks:
            await asyncio.gather(*self._tasks)
        self._log.info("scheduler_stopped")

        if self._fatal is not None:
            raise self._fatal

    def stop(self) -> None:
        self._stop_event.set()

    def _trigger(self, trigger: str) -> None:
        if self._running:
            self._log.warning("cycle_skipped_in_flight", trigger=trigger)
            return
        task = asyncio.create_task(self._guarded_cycle(trigger))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guarded_cycle(self, trigger: str) -> None:
        try:
            await self.run_cycle(trigger)
        except FATAL_ERRORS as exc:
            self._log.error("cycle_fatal", trigger=trigger, error=str(exc))
            self._fatal = exc
            self.stop()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def collect_status(self) -> StatusReport:
        """Compare the workspace HEAD with the remote tip."""
        await self._manager.ensure_repository()
        local_commit = await self._manager.get_current_commit()
        remote_commit = await self._resolver.resolve_latest_commit()
        return StatusReport(
            local_commit=local_commit,
            remote_commit=remote_commit,
            last_update=self._state.updated_at,
        )
