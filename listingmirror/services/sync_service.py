from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Mapping

from listingmirror.infrastructure.db import format_timestamp, get_path_config
from listingmirror.infrastructure.observability import get_logger
from listingmirror.services.scheduler import (GateDecision, Scheduler,
                                              SchedulerState)
from listingmirror.services.sync import (CleanupResult, CycleStats, SyncConfig,
                                         SyncEngine, UpstreamSettings)


class SyncService:
    """Handle the API and CLI hold on to: one engine, one scheduler.

    Configuration is immutable; :meth:`update_config` swaps in a new engine
    built from the new config. A cycle already running keeps the engine it
    started with.
    """

    def __init__(
        self,
        *,
        db_path: str | Path | None = None,
        upstream: UpstreamSettings | None = None,
        config: SyncConfig | None = None,
        engine: SyncEngine | None = None,
        state: SchedulerState | None = None,
    ) -> None:
        if engine is None:
            engine = SyncEngine(
                db_path or get_path_config()["db_path"],
                upstream or UpstreamSettings(),
                config or SyncConfig(),
            )
        self._scheduler = Scheduler(engine, state)
        self._logger = get_logger(__name__)

    @property
    def engine(self) -> SyncEngine:
        return self._scheduler.engine

    @property
    def config(self) -> SyncConfig:
        return self._scheduler.engine.config

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def state(self) -> SchedulerState:
        return self._scheduler.state

    async def start(self) -> None:
        await self._scheduler.start()

    async def stop(self) -> None:
        await self._scheduler.stop()

    async def trigger_manual_sync(self) -> CycleStats:
        self._logger.info("Manual sync triggered")
        return await self._scheduler.trigger_manual_sync()

    async def run_gated_cycle(self) -> CycleStats | None:
        return await self._scheduler.run_gated_cycle()

    async def should_run(self) -> GateDecision:
        return await self._scheduler.should_run()

    async def cleanup(self) -> CleanupResult:
        return await asyncio.to_thread(self.engine.cleanup)

    async def check_upstream(self) -> bool:
        """Probe the upstream API once; False when unconfigured or unreachable."""
        if not self.engine.upstream.is_configured:
            return False
        client = self.engine.build_client()
        try:
            return await asyncio.to_thread(client.check_connection)
        finally:
            self.engine.release_client(client)

    async def get_status(self) -> dict[str, Any]:
        snapshot = await asyncio.to_thread(self.engine.snapshot)
        state = self.state.to_dict()
        last_success = self.state.last_success_at or snapshot.last_success_at
        return {
            "running": self._scheduler.started,
            "cycle_state": state["cycle_state"],
            "config": self.config.to_dict(),
            "has_base_url": bool(self.engine.upstream.base_url.strip()),
            "has_api_key": bool(self.engine.upstream.api_key.strip()),
            "last_cycle_info": {
                "last_stats": state["last_stats"],
                "last_success_at": format_timestamp(last_success) if last_success else None,
                "last_error": state["last_error"],
                "last_gate": state["last_gate"],
                "active_records": snapshot.active_total,
                "recently_fetched_records": snapshot.recent_total,
                "cycle_started_at": state["cycle_started_at"],
                "next_cycle_at": state["next_cycle_at"],
            },
        }

    async def update_config(self, changes: Mapping[str, Any]) -> SyncConfig:
        """Apply a partial config update.

        Raises:
            ValueError: Empty update, unknown key or out-of-range value.
        """
        if not changes:
            raise ValueError("No configuration changes supplied")
        current = self.config
        updated = current.updated(changes)
        self._scheduler.engine = self.engine.with_config(updated)
        self._logger.info("Sync config updated: %s", ", ".join(sorted(changes)))

        if not updated.enabled and self._scheduler.started:
            await self._scheduler.stop()
        elif updated.interval_minutes != current.interval_minutes:
            await self._scheduler.restart_timer()
        return updated
