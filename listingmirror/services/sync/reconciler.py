"""Bring one upstream identifier in line with the local record store."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable

from ...domain.models import CachedRecord
from ...domain.models.record import DEFAULT_CACHE_TTL_HOURS
from ...infrastructure.db.repositories import RecordRepository
from ...infrastructure.http import CycleCancelled, NotFound, UpstreamClient, UpstreamError
from ...infrastructure.observability import get_logger, log_exception
from .errors import RecordProcessingError
from .signals import SignalRules, compute_feature_signals
from .stats import CycleStats

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Reconciler:
    """Fetch, merge and persist a single record.

    ``reconcile`` never raises for a bad record: failures are logged and
    counted in ``stats.errors``. Only cancellation escapes.
    """

    def __init__(
        self,
        client: UpstreamClient,
        repository: RecordRepository,
        *,
        ttl_hours: float = DEFAULT_CACHE_TTL_HOURS,
        signal_rules: SignalRules | None = None,
        clock: Clock = utcnow,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.client = client
        self.repository = repository
        self.ttl_hours = ttl_hours
        self.signal_rules = signal_rules or SignalRules()
        self.clock = clock
        self.cancel_event = cancel_event

    def reconcile(self, external_id: int, stats: CycleStats) -> None:
        stats.total_processed += 1
        try:
            self._reconcile(external_id, stats)
        except CycleCancelled:
            raise
        except Exception as exc:
            error = RecordProcessingError(external_id, exc)
            log_exception(logger, "Record reconciliation failed", error, external_id=external_id)
            stats.errors += 1

    def _reconcile(self, external_id: int, stats: CycleStats) -> None:
        existing = self.repository.find_by_external_id(external_id)
        now = self.clock()

        if existing is not None and not existing.is_stale(now):
            stats.skipped_duplicates += 1
            if not existing.upstream_present:
                existing.mark_seen(now)
                self.repository.upsert(existing)
                logger.info("Record %s reappeared upstream", external_id)
            return

        try:
            detail = self.client.fetch_detail(external_id, cancel_event=self.cancel_event)
        except NotFound:
            logger.info("Record %s no longer exists upstream; skipping", external_id)
            return
        except CycleCancelled:
            raise
        except UpstreamError as exc:
            logger.warning("Detail fetch for record %s failed: %s", external_id, exc)
            stats.errors += 1
            return

        signals = compute_feature_signals(detail, self.signal_rules)
        now = self.clock()
        if existing is None:
            record = CachedRecord.from_detail(
                external_id, detail, now=now, ttl_hours=self.ttl_hours, signals=signals
            )
            self.repository.upsert(record)
            stats.new_records += 1
            logger.debug("Created record %s", external_id)
            return

        existing.apply_detail(detail, now=now, ttl_hours=self.ttl_hours, signals=signals)
        self.repository.upsert(existing)
        stats.updated_records += 1
        logger.debug("Refreshed record %s", external_id)
