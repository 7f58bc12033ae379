from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

from listingmirror.domain.models import CachedRecord, LifecycleState
from listingmirror.infrastructure.db import get_connection
from listingmirror.infrastructure.db.repositories import (RecordFilter, RecordRepository,
                                                           SyncRunRepository)
from listingmirror.services.sync import CycleStats

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _record(external_id: int, **overrides) -> CachedRecord:
    record = CachedRecord.from_detail(
        external_id, {"id": external_id, "name": f"P{external_id}"}, now=overrides.pop("now", NOW)
    )
    for key, value in overrides.items():
        setattr(record, key, value)
    return record


def test_upsert_round_trips_and_updates_in_place(tmp_path: Path) -> None:
    with get_connection(tmp_path / "store.db") as conn:
        repo = RecordRepository(conn)
        record = _record(1, feature_signals={"premium_location"})
        record.raw_detail = {"id": 1, "name": "P1", "facilities": ["gym"]}
        repo.upsert(record)

        record.core = record.core.merged_with(type(record.core)(name="Renamed"))
        repo.upsert(record)

        loaded = repo.find_by_external_id(1)
        assert repo.count_where() == 1

    assert loaded is not None
    assert loaded.core.name == "Renamed"
    assert loaded.raw_detail["facilities"] == ["gym"]
    assert loaded.feature_signals == {"premium_location"}
    assert loaded.fetched_at == NOW
    assert loaded.lifecycle_state is LifecycleState.ACTIVE


def test_missing_record_returns_none(tmp_path: Path) -> None:
    with get_connection(tmp_path / "store.db") as conn:
        assert RecordRepository(conn).find_by_external_id(42) is None


def test_filters_combine(tmp_path: Path) -> None:
    with get_connection(tmp_path / "store.db") as conn:
        repo = RecordRepository(conn)
        repo.upsert(_record(1))
        repo.upsert(_record(2, upstream_present=False))
        repo.upsert(_record(3, lifecycle_state=LifecycleState.DISABLED))
        repo.upsert(_record(4, now=NOW - timedelta(days=3)))

        present_active = RecordFilter(upstream_present=True, lifecycle_state=LifecycleState.ACTIVE)
        assert repo.list_external_ids(present_active) == [1, 4]
        assert repo.count_where(
            RecordFilter(upstream_present=True, fetched_since=NOW - timedelta(hours=24))
        ) == 2
        assert repo.list_external_ids(RecordFilter(expires_before=NOW)) == [4]
        assert repo.list_external_ids(RecordFilter(external_ids=(2, 3))) == [2, 3]
        assert repo.list_external_ids(RecordFilter(external_ids=())) == []

        disabled = repo.find_where(RecordFilter(lifecycle_state=LifecycleState.DISABLED))
        assert [record.external_id for record in disabled] == [3]
        assert disabled[0].core.name == "P3"


def test_mark_absent_keeps_first_absence_time(tmp_path: Path) -> None:
    with get_connection(tmp_path / "store.db") as conn:
        repo = RecordRepository(conn)
        for external_id in (1, 2):
            repo.upsert(_record(external_id))

        assert repo.mark_absent([2], NOW) == 1
        assert repo.mark_absent([2], NOW + timedelta(days=1)) == 0

        absent = repo.find_by_external_id(2)
        assert absent.upstream_present is False
        assert absent.absent_since == NOW
        assert repo.find_by_external_id(1).upstream_present is True


def test_mark_review_pending_counts_only_new_flags(tmp_path: Path) -> None:
    with get_connection(tmp_path / "store.db") as conn:
        repo = RecordRepository(conn)
        repo.upsert(_record(1, now=NOW - timedelta(days=2)))
        repo.upsert(_record(2, now=NOW - timedelta(days=2), review_pending=True))

        assert repo.mark_review_pending(RecordFilter(expires_before=NOW)) == 1
        assert repo.count_where(RecordFilter(review_pending=True)) == 2


def test_delete_where(tmp_path: Path) -> None:
    with get_connection(tmp_path / "store.db") as conn:
        repo = RecordRepository(conn)
        repo.upsert(_record(1))
        repo.upsert(_record(2, lifecycle_state=LifecycleState.DISABLED))

        assert repo.delete_where(RecordFilter(lifecycle_state=LifecycleState.DISABLED)) == 1
        assert repo.list_external_ids() == [1]


def test_sync_runs_track_last_success(tmp_path: Path) -> None:
    with get_connection(tmp_path / "store.db") as conn:
        runs = SyncRunRepository(conn)
        first = runs.start(NOW)
        runs.finish(
            first,
            CycleStats(started_at=NOW, finished_at=NOW + timedelta(minutes=5), status="success"),
        )
        second = runs.start(NOW + timedelta(hours=1))
        runs.finish(
            second,
            CycleStats(
                started_at=NOW, finished_at=NOW + timedelta(hours=2), status="failed", error="boom"
            ),
        )

        last = runs.last_successful()
        recent = runs.recent(5)

    assert last["id"] == first
    assert last["finished_at"] == "2024-05-01T12:05:00.000000Z"
    assert [row["id"] for row in recent] == [second, first]
    assert recent[0]["notes"] == "boom"
