"""Orchestration of one sync cycle: walk, reconcile in batches, sweep."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable

from ...domain.models import LifecycleState
from ...infrastructure.db import get_connection, parse_timestamp
from ...infrastructure.db.repositories import (RecordFilter, RecordRepository,
                                               SyncRunRepository)
from ...infrastructure.http import (CycleCancelled, RetryPolicy, UpstreamClient,
                                    UpstreamError, UpstreamUnavailable)
from ...infrastructure.observability import (get_logger, log_context, record_cleanup,
                                             record_sync_cycle)
from .config import SyncConfig, UpstreamSettings
from .errors import ConfigurationError
from .pagination import PaginationWalker
from .reconciler import Clock, Reconciler, utcnow
from .signals import SignalRules
from .stats import CleanupResult, CycleStats

logger = get_logger(__name__)

Sleep = Callable[[float], object]


@dataclass(frozen=True)
class StoreSnapshot:
    """Counts the scheduler gate needs, read in one go."""

    active_total: int
    recent_total: int
    last_success_at: datetime | None


def _batches(ids: list[int], size: int) -> list[list[int]]:
    size = max(1, size)
    return [ids[start:start + size] for start in range(0, len(ids), size)]


class SyncEngine:
    """Run sync cycles against one record store.

    The engine is synchronous; the scheduler moves it off the event loop. A
    cycle-scoped :class:`threading.Event` requests cancellation, which is
    honoured between batches and before every retry attempt.
    """

    def __init__(
        self,
        db_path: str | Path,
        upstream: UpstreamSettings,
        config: SyncConfig | None = None,
        *,
        client: UpstreamClient | None = None,
        sleep: Sleep | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.db_path = db_path
        self.upstream = upstream
        self.config = config or SyncConfig()
        self._client = client
        self._sleep = sleep
        self._clock = clock

    def with_config(self, config: SyncConfig) -> "SyncEngine":
        return SyncEngine(
            self.db_path,
            self.upstream,
            config,
            client=self._client,
            sleep=self._sleep,
            clock=self._clock,
        )

    # -------------------- helpers --------------------
    def _require_upstream(self) -> None:
        if not self.upstream.base_url.strip():
            raise ConfigurationError("Upstream base URL is not configured")
        if not self.upstream.api_key.strip():
            raise ConfigurationError("Upstream API key is not configured")

    def _retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.config.max_retries,
            base_delay=self.config.retry_base_delay_seconds,
            max_delay=self.config.retry_max_delay_seconds,
        )

    def build_client(self, sleep: Sleep | None = None) -> UpstreamClient:
        if self._client is not None:
            return self._client
        return UpstreamClient(
            self.upstream.base_url,
            self.upstream.api_key,
            timeout_seconds=self.config.request_timeout_seconds,
            retry_policy=self._retry_policy(),
            sleep=sleep or self._sleep or time.sleep,
        )

    def release_client(self, client: UpstreamClient) -> None:
        """Close a client from :meth:`build_client`; an injected one stays open."""
        if client is not self._client:
            client.close()

    def snapshot(self, now: datetime | None = None) -> StoreSnapshot:
        now = now or self._clock()
        window_start = now - timedelta(hours=self.config.recent_window_hours)
        with get_connection(self.db_path) as conn:
            records = RecordRepository(conn)
            runs = SyncRunRepository(conn)
            active = RecordFilter(upstream_present=True, lifecycle_state=LifecycleState.ACTIVE)
            recent = RecordFilter(
                upstream_present=True,
                lifecycle_state=LifecycleState.ACTIVE,
                fetched_since=window_start,
            )
            last = runs.last_successful()
            return StoreSnapshot(
                active_total=records.count_where(active),
                recent_total=records.count_where(recent),
                last_success_at=parse_timestamp(last["finished_at"]) if last else None,
            )

    # -------------------- cycle --------------------
    def run_cycle(self, cancel_event: threading.Event | None = None) -> CycleStats:
        """Run one full cycle and return its statistics.

        Raises:
            ConfigurationError: Upstream credentials are missing. Raised
                before any network or database work.
        """
        self._require_upstream()
        cancel_event = cancel_event or threading.Event()
        sleep: Sleep = self._sleep or cancel_event.wait
        stats = CycleStats(started_at=self._clock())

        with get_connection(self.db_path) as conn:
            records = RecordRepository(conn)
            runs = SyncRunRepository(conn)
            stats.run_id = runs.start(stats.started_at)
            with log_context(sync_run_id=stats.run_id):
                logger.info("Sync cycle started")
                client = self.build_client(sleep)
                try:
                    self._run(client, records, stats, cancel_event, sleep)
                    status = "success"
                except CycleCancelled:
                    logger.warning("Sync cycle cancelled")
                    status = "cancelled"
                except UpstreamUnavailable as exc:
                    logger.error("Sync cycle aborted: %s", exc)
                    stats.error = str(exc)
                    status = "failed"
                except UpstreamError as exc:
                    logger.error("Sync cycle aborted by upstream error: %s", exc)
                    stats.error = str(exc)
                    status = "failed"
                except Exception as exc:
                    stats.error = str(exc)
                    stats.finish(self._clock(), "failed")
                    runs.finish(stats.run_id, stats)
                    record_sync_cycle("failed", stats.duration_seconds, stats.total_processed, stats.errors)
                    raise
                finally:
                    self.release_client(client)

                stats.finish(self._clock(), status)
                runs.finish(stats.run_id, stats)
                record_sync_cycle(status, stats.duration_seconds, stats.total_processed, stats.errors)
                logger.info(
                    "Sync cycle %s: processed=%d new=%d updated=%d skipped=%d inactive=%d errors=%d",
                    stats.status,
                    stats.total_processed,
                    stats.new_records,
                    stats.updated_records,
                    stats.skipped_duplicates,
                    stats.marked_inactive,
                    stats.errors,
                )
        return stats

    def _run(
        self,
        client: UpstreamClient,
        records: RecordRepository,
        stats: CycleStats,
        cancel_event: threading.Event,
        sleep: Sleep,
    ) -> None:
        delay = self.config.delay_between_requests_seconds
        walker = PaginationWalker(
            client,
            delay_between_requests=delay,
            sleep=sleep,
            cancel_event=cancel_event,
        )
        walk = walker.walk()
        logger.info(
            "Listing walk found %d ids across %d pages (complete=%s)",
            len(walk.ids),
            walk.pages_fetched,
            walk.complete,
        )

        reconciler = Reconciler(
            client,
            records,
            ttl_hours=self.config.cache_ttl_hours,
            signal_rules=SignalRules.from_config(self.config),
            clock=self._clock,
            cancel_event=cancel_event,
        )
        batches = _batches(walk.ids, self.config.batch_size)
        for index, batch in enumerate(batches):
            if cancel_event.is_set():
                raise CycleCancelled("cancelled between batches")
            for external_id in batch:
                reconciler.reconcile(external_id, stats)
                if delay:
                    sleep(delay / 2)
            if delay and index < len(batches) - 1:
                sleep(delay)

        if cancel_event.is_set():
            raise CycleCancelled("cancelled before staleness sweep")
        if not walk.complete:
            logger.warning("Skipping staleness sweep: listing walk was incomplete")
            return
        stats.marked_inactive = self.sweep_absent(records, walk.ids)
        stats.sweep_performed = True

    def sweep_absent(self, repository: RecordRepository, ids: list[int]) -> int:
        """Flag every present record missing from ``ids`` as absent upstream."""
        listed = set(ids)
        stored = repository.list_external_ids(RecordFilter(upstream_present=True))
        missing = [external_id for external_id in stored if external_id not in listed]
        if not missing:
            return 0
        changed = repository.mark_absent(missing, self._clock())
        logger.info("Staleness sweep marked %d records as absent upstream", changed)
        return changed

    # -------------------- cleanup --------------------
    def cleanup(self, now: datetime | None = None) -> CleanupResult:
        now = now or self._clock()
        stale_before = now - timedelta(hours=self.config.review_grace_hours)
        delete_before = now - timedelta(days=self.config.hard_delete_after_days)
        with get_connection(self.db_path) as conn:
            records = RecordRepository(conn)
            expired = records.mark_review_pending(RecordFilter(expires_before=stale_before))
            deleted = records.delete_where(
                RecordFilter(
                    upstream_present=False,
                    lifecycle_state=LifecycleState.DISABLED,
                    absent_before=delete_before,
                )
            )
        record_cleanup(expired, deleted)
        logger.info("Cleanup flagged %d expired records and deleted %d", expired, deleted)
        return CleanupResult(expired_marked=expired, hard_deleted=deleted)
