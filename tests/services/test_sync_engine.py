from __future__ import annotations

import sqlite3
import threading
from datetime import timedelta
from pathlib import Path

import pytest

from listingmirror.domain.models import CachedRecord, LifecycleState
from listingmirror.infrastructure.db import get_connection
from listingmirror.infrastructure.db.repositories import RecordRepository
from listingmirror.infrastructure.http import AuthError, TransientUpstreamError
from listingmirror.infrastructure.observability import get_metrics_summary
from listingmirror.services.sync import (ConfigurationError, SyncConfig, SyncEngine,
                                         UpstreamSettings)

UPSTREAM = UpstreamSettings(base_url="https://api.example.com", api_key="secret")


def _engine(db_path: Path, upstream, clock, *, sleeps=None, **config) -> SyncEngine:
    config.setdefault("delay_between_requests_seconds", 0.0)
    return SyncEngine(
        db_path,
        UPSTREAM,
        SyncConfig(**config),
        client=upstream,
        sleep=(sleeps.append if sleeps is not None else (lambda _d: None)),
        clock=clock,
    )


def _seed(db_path: Path, clock, *ids: int) -> None:
    with get_connection(db_path) as conn:
        repo = RecordRepository(conn)
        for external_id in ids:
            repo.upsert(CachedRecord.from_detail(external_id, {"id": external_id}, now=clock()))


def _load(db_path: Path, external_id: int):
    with get_connection(db_path) as conn:
        return RecordRepository(conn).find_by_external_id(external_id)


def test_missing_configuration_fails_before_any_io(tmp_path: Path, clock, fake_upstream_cls) -> None:
    upstream = fake_upstream_cls([[1]])
    engine = SyncEngine(
        tmp_path / "cfg.db", UpstreamSettings(base_url="https://x", api_key=""), client=upstream
    )

    with pytest.raises(ConfigurationError):
        engine.run_cycle()
    assert upstream.list_calls == []
    assert not (tmp_path / "cfg.db").exists()


def test_cycle_creates_records_and_reports_stats(tmp_path: Path, clock, fake_upstream_cls) -> None:
    db_path = tmp_path / "cycle.db"
    upstream = fake_upstream_cls([[1, 2], [3]])

    stats = _engine(db_path, upstream, clock).run_cycle()

    assert stats.status == "success"
    assert stats.total_processed == 3
    assert stats.new_records == 3
    assert stats.errors == 0
    assert stats.sweep_performed is True
    assert stats.run_id is not None
    with sqlite3.connect(db_path) as conn:
        row = conn.execute(
            "SELECT status, total_processed, new_records FROM sync_runs WHERE id = ?",
            (stats.run_id,),
        ).fetchone()
    assert row == ("success", 3, 3)
    assert "sync_cycles_total" in get_metrics_summary()["counters"]


def test_sweep_flags_only_missing_ids(tmp_path: Path, clock, fake_upstream_cls) -> None:
    db_path = tmp_path / "sweep.db"
    _seed(db_path, clock, 1, 2, 3)

    stats = _engine(db_path, fake_upstream_cls([[1, 3]]), clock).run_cycle()

    assert stats.marked_inactive == 1
    assert stats.skipped_duplicates == 2
    assert _load(db_path, 2).upstream_present is False
    assert _load(db_path, 2).absent_since == clock()
    assert _load(db_path, 1).upstream_present is True
    assert _load(db_path, 3).upstream_present is True


def test_sweep_skipped_when_walk_incomplete(tmp_path: Path, clock, fake_upstream_cls) -> None:
    db_path = tmp_path / "partial.db"
    _seed(db_path, clock, 1, 2, 3)
    upstream = fake_upstream_cls(
        [[1], [2], [3]], page_errors={2: TransientUpstreamError("timeout")}
    )

    stats = _engine(db_path, upstream, clock).run_cycle()

    assert stats.status == "success"
    assert stats.sweep_performed is False
    assert stats.marked_inactive == 0
    assert _load(db_path, 3).upstream_present is True


def test_first_page_failure_marks_cycle_failed(tmp_path: Path, clock, fake_upstream_cls) -> None:
    db_path = tmp_path / "failed.db"
    _seed(db_path, clock, 1)
    upstream = fake_upstream_cls([[1]], page_errors={1: TransientUpstreamError("down")})

    stats = _engine(db_path, upstream, clock).run_cycle()

    assert stats.status == "failed"
    assert "first listing page" in stats.error
    assert _load(db_path, 1).upstream_present is True


def test_auth_error_fails_cycle(tmp_path: Path, clock, fake_upstream_cls) -> None:
    upstream = fake_upstream_cls([[1]], page_errors={1: AuthError("bad key", status=401)})

    stats = _engine(tmp_path / "auth.db", upstream, clock).run_cycle()

    assert stats.status == "failed"
    assert upstream.detail_calls == []


def test_per_record_errors_do_not_abort(tmp_path: Path, clock, fake_upstream_cls, not_found) -> None:
    upstream = fake_upstream_cls(
        [[1, 2, 3]], {2: TransientUpstreamError("502"), 3: not_found}
    )

    stats = _engine(tmp_path / "errors.db", upstream, clock).run_cycle()

    assert stats.status == "success"
    assert stats.new_records == 1
    assert stats.errors == 1
    assert stats.total_processed == 3


def test_batch_delays(tmp_path: Path, clock, fake_upstream_cls) -> None:
    sleeps: list[float] = []
    upstream = fake_upstream_cls([[1, 2, 3]])

    _engine(
        tmp_path / "delays.db",
        upstream,
        clock,
        sleeps=sleeps,
        batch_size=2,
        delay_between_requests_seconds=1.0,
    ).run_cycle()

    # one page delay, then per-item half delays with a full delay between batches
    assert sleeps == [1.0, 0.5, 0.5, 1.0, 0.5]


def test_cancellation_between_batches(tmp_path: Path, clock, fake_upstream_cls) -> None:
    db_path = tmp_path / "cancel.db"
    _seed(db_path, clock, 99)
    cancel = threading.Event()
    upstream = fake_upstream_cls([[1, 2, 3, 4]])

    def sleep(delay: float) -> None:
        if delay == 1.0 and upstream.detail_calls:
            cancel.set()

    engine = SyncEngine(
        db_path,
        UPSTREAM,
        SyncConfig(batch_size=2, delay_between_requests_seconds=1.0),
        client=upstream,
        sleep=sleep,
        clock=clock,
    )
    stats = engine.run_cycle(cancel)

    assert stats.status == "cancelled"
    assert upstream.detail_calls == [1, 2]
    assert stats.sweep_performed is False
    assert _load(db_path, 99).upstream_present is True


def test_with_config_returns_new_engine(tmp_path: Path, clock, fake_upstream_cls) -> None:
    engine = _engine(tmp_path / "cfg.db", fake_upstream_cls([]), clock)

    updated = engine.with_config(SyncConfig(batch_size=25))

    assert updated is not engine
    assert updated.config.batch_size == 25
    assert engine.config.batch_size == 10


def test_cleanup_flags_expired_and_deletes_long_gone_disabled(tmp_path: Path, clock) -> None:
    db_path = tmp_path / "cleanup.db"
    now = clock()
    with get_connection(db_path) as conn:
        repo = RecordRepository(conn)
        repo.upsert(CachedRecord.from_detail(1, {"id": 1}, now=now))
        repo.upsert(CachedRecord.from_detail(2, {"id": 2}, now=now - timedelta(days=2)))

        gone = CachedRecord.from_detail(3, {"id": 3}, now=now - timedelta(days=40))
        gone.upstream_present = False
        gone.absent_since = now - timedelta(days=31)
        gone.lifecycle_state = LifecycleState.DISABLED
        repo.upsert(gone)

        recently_gone = CachedRecord.from_detail(4, {"id": 4}, now=now - timedelta(days=40))
        recently_gone.upstream_present = False
        recently_gone.absent_since = now - timedelta(days=3)
        recently_gone.lifecycle_state = LifecycleState.DISABLED
        repo.upsert(recently_gone)

    result = SyncEngine(db_path, UPSTREAM, clock=clock).cleanup()

    assert result.hard_deleted == 1
    assert result.expired_marked == 3
    assert _load(db_path, 3) is None
    assert _load(db_path, 1).review_pending is False
    assert _load(db_path, 2).review_pending is True
    assert _load(db_path, 4).review_pending is True

    again = SyncEngine(db_path, UPSTREAM, clock=clock).cleanup()
    assert again.expired_marked == 0


def test_snapshot_feeds_gate(tmp_path: Path, clock, fake_upstream_cls) -> None:
    db_path = tmp_path / "snapshot.db"
    engine = _engine(db_path, fake_upstream_cls([[1, 2]]), clock)
    engine.run_cycle()
    clock.advance(hours=30)
    _seed(db_path, clock, 3)

    snapshot = engine.snapshot()

    assert snapshot.active_total == 3
    assert snapshot.recent_total == 1
    assert snapshot.last_success_at == clock() - timedelta(hours=30)


def test_record_missing_twice_then_back_needs_no_fetch(tmp_path: Path, clock, fake_upstream_cls) -> None:
    db_path = tmp_path / "reappear.db"
    upstream = fake_upstream_cls([[1, 2, 3]])
    engine = _engine(db_path, upstream, clock)
    assert engine.run_cycle().new_records == 3

    upstream.pages = [[1, 3]]
    first_gone = engine.run_cycle()
    clock.advance(hours=1)
    second_gone = engine.run_cycle()

    assert first_gone.marked_inactive == 1
    assert second_gone.marked_inactive == 0
    gone = _load(db_path, 2)
    assert gone.upstream_present is False
    assert gone.absent_since == clock() - timedelta(hours=1)

    upstream.pages = [[1, 2, 3]]
    upstream.detail_calls.clear()
    back = engine.run_cycle()

    assert back.skipped_duplicates == 3
    assert upstream.detail_calls == []
    returned = _load(db_path, 2)
    assert returned.upstream_present is True
    assert returned.absent_since is None
