"""Periodic, gated execution of sync cycles.

The scheduler owns the asyncio side: a timer task that fires every
``interval_minutes`` and at most one cycle task at a time. Cycles run the
synchronous :class:`~listingmirror.services.sync.SyncEngine` in a worker
thread via :func:`asyncio.to_thread`. Cycle tasks are separate from the timer
task, so rescheduling the timer never interrupts a running cycle.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from listingmirror.infrastructure.db import format_timestamp
from listingmirror.infrastructure.observability import get_logger, log_exception
from listingmirror.services.sync import (ConfigurationError, CycleStats, SyncConfig,
                                         SyncEngine, SyncInProgressError)
from listingmirror.services.sync.reconciler import Clock, utcnow


class CycleState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class GateDecision:
    """Outcome of the pre-cycle checks."""

    should_run: bool
    reason: str
    recent_percent: float | None = None
    hours_remaining: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def evaluate_gate(
    config: SyncConfig,
    *,
    active_total: int,
    recent_total: int,
    last_success_at: datetime | None,
    now: datetime,
) -> GateDecision:
    """Decide whether a scheduled cycle should run.

    The recent-data check and the minimum-interval check are independent;
    either one skips the cycle.
    """
    if not config.enabled:
        return GateDecision(False, "sync is disabled")

    recent_percent: float | None = None
    if active_total > 0:
        recent_percent = recent_total / active_total * 100
    if (
        config.skip_if_recent_data
        and recent_percent is not None
        and recent_percent >= config.recent_threshold_percent
    ):
        return GateDecision(
            False,
            f"{recent_percent:.1f}% of active records were fetched in the last "
            f"{config.recent_window_hours:g}h",
            recent_percent=recent_percent,
        )

    if last_success_at is not None and config.min_sync_interval_hours > 0:
        elapsed_hours = (now - last_success_at).total_seconds() / 3600
        if elapsed_hours < config.min_sync_interval_hours:
            remaining = config.min_sync_interval_hours - elapsed_hours
            return GateDecision(
                False,
                f"last successful cycle was {elapsed_hours:.1f}h ago; "
                f"{remaining:.1f}h until the minimum interval passes",
                recent_percent=recent_percent,
                hours_remaining=remaining,
            )

    return GateDecision(True, "sync is due", recent_percent=recent_percent)


@dataclass
class SchedulerState:
    """Mutable scheduler status, owned by whoever constructs the scheduler."""

    cycle_state: CycleState = CycleState.IDLE
    cycle_started_at: datetime | None = None
    last_stats: CycleStats | None = None
    last_success_at: datetime | None = None
    last_gate: GateDecision | None = None
    last_error: str | None = None
    next_cycle_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        def _ts(value: datetime | None) -> str | None:
            return format_timestamp(value) if value else None

        return {
            "cycle_state": self.cycle_state.value,
            "cycle_started_at": _ts(self.cycle_started_at),
            "last_stats": self.last_stats.to_dict() if self.last_stats else None,
            "last_success_at": _ts(self.last_success_at),
            "last_gate": self.last_gate.to_dict() if self.last_gate else None,
            "last_error": self.last_error,
            "next_cycle_at": _ts(self.next_cycle_at),
        }


class Scheduler:
    """Run gated sync cycles on an interval, one cycle at a time."""

    def __init__(
        self,
        engine: SyncEngine,
        state: SchedulerState | None = None,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.engine = engine
        self.state = state if state is not None else SchedulerState()
        self._clock = clock
        self._logger = get_logger(__name__)
        self._timer_task: asyncio.Task | None = None
        self._cycle_task: asyncio.Task | None = None
        self._cancel_event: threading.Event | None = None

    @property
    def started(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def cycle_running(self) -> bool:
        return self.state.cycle_state is CycleState.RUNNING

    # -------------------- lifecycle --------------------
    async def start(self) -> None:
        """Start the periodic timer. The first gated cycle runs immediately."""
        if not self.engine.config.enabled:
            self._logger.info("Sync is disabled; scheduler not started")
            return
        if self.started:
            return
        self._timer_task = asyncio.create_task(self._timer_loop(0.0))
        self._logger.info(
            "Scheduler started (interval=%d min)", self.engine.config.interval_minutes
        )

    async def stop(self) -> None:
        """Stop the timer and ask any in-flight cycle to cancel."""
        timer, self._timer_task = self._timer_task, None
        if timer is not None:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        self.state.next_cycle_at = None

        if self._cancel_event is not None:
            self._cancel_event.set()
        cycle = self._cycle_task
        if cycle is not None and not cycle.done():
            try:
                await cycle
            except Exception as exc:
                log_exception(self._logger, "Cycle failed while stopping", exc)
        self._logger.info("Scheduler stopped")

    async def restart_timer(self) -> None:
        """Reschedule the next tick one full interval from now.

        A running cycle is left alone.
        """
        if not self.started:
            return
        timer = self._timer_task
        timer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await timer
        self._timer_task = asyncio.create_task(
            self._timer_loop(self._interval_seconds())
        )
        self._logger.info(
            "Scheduler timer restarted (interval=%d min)",
            self.engine.config.interval_minutes,
        )

    # -------------------- cycles --------------------
    async def should_run(self) -> GateDecision:
        now = self._clock()
        snapshot = await asyncio.to_thread(self.engine.snapshot, now)
        decision = evaluate_gate(
            self.engine.config,
            active_total=snapshot.active_total,
            recent_total=snapshot.recent_total,
            last_success_at=snapshot.last_success_at,
            now=now,
        )
        self.state.last_gate = decision
        if snapshot.last_success_at is not None:
            self.state.last_success_at = snapshot.last_success_at
        return decision

    async def run_gated_cycle(self) -> CycleStats | None:
        """Run a cycle if the gate allows it; return None when skipped."""
        if self.cycle_running:
            self._logger.warning("Sync cycle already running; skipping scheduled start")
            return None
        decision = await self.should_run()
        if not decision.should_run:
            self._logger.info("Skipping sync cycle: %s", decision.reason)
            return None
        try:
            task = self._start_cycle()
        except SyncInProgressError:
            self._logger.warning("Sync cycle already running; skipping scheduled start")
            return None
        return await asyncio.shield(task)

    async def trigger_manual_sync(self) -> CycleStats:
        """Run a cycle now, bypassing the gate.

        Raises:
            SyncInProgressError: A cycle is already running.
            ConfigurationError: Upstream credentials are missing.
        """
        task = self._start_cycle()
        return await asyncio.shield(task)

    def _start_cycle(self) -> asyncio.Task:
        if self.cycle_running:
            raise SyncInProgressError("A sync cycle is already running")
        self.state.cycle_state = CycleState.RUNNING
        self.state.cycle_started_at = self._clock()
        self._cancel_event = threading.Event()
        self._cycle_task = asyncio.create_task(
            self._execute_cycle(self.engine, self._cancel_event)
        )
        return self._cycle_task

    async def _execute_cycle(
        self, engine: SyncEngine, cancel_event: threading.Event
    ) -> CycleStats:
        try:
            stats = await asyncio.to_thread(engine.run_cycle, cancel_event)
        except Exception as exc:
            self.state.last_error = str(exc)
            raise
        else:
            self.state.last_stats = stats
            self.state.last_error = stats.error
            if stats.status == "success":
                self.state.last_success_at = stats.finished_at
            return stats
        finally:
            self.state.cycle_state = CycleState.IDLE
            self.state.cycle_started_at = None
            self._cancel_event = None

    # -------------------- timer --------------------
    def _interval_seconds(self) -> float:
        return max(1, self.engine.config.interval_minutes) * 60.0

    async def _timer_loop(self, initial_delay: float) -> None:
        delay = initial_delay
        while True:
            self.state.next_cycle_at = self._clock() + timedelta(seconds=delay)
            if delay > 0:
                await asyncio.sleep(delay)
            try:
                await self.run_gated_cycle()
            except ConfigurationError as exc:
                self._logger.error("Scheduled sync cycle not started: %s", exc)
                self.state.last_error = str(exc)
            except Exception as exc:  # pragma: no cover - keep the timer alive
                log_exception(self._logger, "Scheduled sync cycle failed", exc)
            delay = self._interval_seconds()


__all__ = [
    "CycleState",
    "GateDecision",
    "Scheduler",
    "SchedulerState",
    "evaluate_gate",
]
