"""SQLite-backed store for mirrored listing records."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Iterable

from ....domain.models import CachedRecord, CoreFields, LifecycleState
from ..connection import format_timestamp, parse_timestamp
from ..schema import ensure_schema
from .base import BaseRepository

# Stays well below SQLite's bound-parameter limit.
_ID_CHUNK_SIZE = 500

_CORE_COLUMNS = tuple(item.name for item in fields(CoreFields))

_RECORD_COLUMNS = (
    ("external_id",)
    + _CORE_COLUMNS
    + (
        "raw_detail",
        "upstream_present",
        "lifecycle_state",
        "review_pending",
        "feature_signals",
        "fetched_at",
        "expires_at",
        "absent_since",
    )
)


@dataclass(frozen=True)
class RecordFilter:
    """Optional criteria combined with AND. An empty filter matches everything."""

    upstream_present: bool | None = None
    lifecycle_state: LifecycleState | None = None
    review_pending: bool | None = None
    fetched_since: datetime | None = None
    expires_before: datetime | None = None
    absent_before: datetime | None = None
    external_ids: tuple[int, ...] | None = None

    def to_sql(self) -> tuple[str, list[Any]]:
        """Compile to a ``WHERE`` clause (possibly empty) and its parameters."""
        conditions: list[str] = []
        params: list[Any] = []
        if self.upstream_present is not None:
            conditions.append("upstream_present = ?")
            params.append(1 if self.upstream_present else 0)
        if self.lifecycle_state is not None:
            conditions.append("lifecycle_state = ?")
            params.append(LifecycleState(self.lifecycle_state).value)
        if self.review_pending is not None:
            conditions.append("review_pending = ?")
            params.append(1 if self.review_pending else 0)
        if self.fetched_since is not None:
            conditions.append("fetched_at >= ?")
            params.append(format_timestamp(self.fetched_since))
        if self.expires_before is not None:
            conditions.append("expires_at < ?")
            params.append(format_timestamp(self.expires_before))
        if self.absent_before is not None:
            conditions.append("absent_since IS NOT NULL AND absent_since < ?")
            params.append(format_timestamp(self.absent_before))
        if self.external_ids is not None:
            if not self.external_ids:
                conditions.append("0")
            else:
                placeholders = ", ".join("?" for _ in self.external_ids)
                conditions.append(f"external_id IN ({placeholders})")
                params.extend(int(i) for i in self.external_ids)
        if not conditions:
            return "", params
        return " WHERE " + " AND ".join(conditions), params


def _record_to_row(record: CachedRecord) -> tuple[Any, ...]:
    core = record.core.to_dict()
    return (
        (int(record.external_id),)
        + tuple(core[name] for name in _CORE_COLUMNS)
        + (
            json.dumps(record.raw_detail, ensure_ascii=False),
            1 if record.upstream_present else 0,
            LifecycleState(record.lifecycle_state).value,
            1 if record.review_pending else 0,
            json.dumps(sorted(record.feature_signals)),
            format_timestamp(record.fetched_at),
            format_timestamp(record.expires_at),
            format_timestamp(record.absent_since) if record.absent_since else None,
        )
    )


def _row_to_record(row: dict[str, Any]) -> CachedRecord:
    try:
        raw_detail = json.loads(row.get("raw_detail") or "{}")
    except json.JSONDecodeError:
        raw_detail = {}
    try:
        signals = json.loads(row.get("feature_signals") or "[]")
    except json.JSONDecodeError:
        signals = []
    return CachedRecord(
        external_id=int(row["external_id"]),
        fetched_at=parse_timestamp(row["fetched_at"]),
        expires_at=parse_timestamp(row["expires_at"]),
        core=CoreFields(**{name: row.get(name) for name in _CORE_COLUMNS}),
        raw_detail=raw_detail if isinstance(raw_detail, dict) else {},
        upstream_present=bool(row["upstream_present"]),
        lifecycle_state=LifecycleState.from_string(row.get("lifecycle_state")),
        review_pending=bool(row["review_pending"]),
        feature_signals=set(signals),
        absent_since=parse_timestamp(row.get("absent_since")),
    )


class RecordRepository(BaseRepository):
    """Record store keyed on ``external_id``.

    Every write commits immediately, so a failure while processing one record
    never rolls back records persisted before it.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn)
        ensure_schema(self.conn)

    def find_by_external_id(self, external_id: int) -> CachedRecord | None:
        row = self._fetch_one_as_dict(
            f"SELECT {', '.join(_RECORD_COLUMNS)} FROM records WHERE external_id = ?",
            (int(external_id),),
        )
        return _row_to_record(row) if row else None

    def upsert(self, record: CachedRecord) -> None:
        columns = ", ".join(_RECORD_COLUMNS)
        placeholders = ", ".join("?" for _ in _RECORD_COLUMNS)
        updates = ", ".join(
            f"{name} = excluded.{name}" for name in _RECORD_COLUMNS if name != "external_id"
        )
        self._execute(
            f"""
            INSERT INTO records ({columns}) VALUES ({placeholders})
            ON CONFLICT(external_id) DO UPDATE SET {updates}
            """,
            _record_to_row(record),
        )
        self.conn.commit()

    def find_where(self, criteria: RecordFilter | None = None) -> list[CachedRecord]:
        where, params = (criteria or RecordFilter()).to_sql()
        rows = self._fetch_all_as_dicts(
            f"SELECT {', '.join(_RECORD_COLUMNS)} FROM records{where} ORDER BY external_id",
            tuple(params),
        )
        return [_row_to_record(row) for row in rows]

    def count_where(self, criteria: RecordFilter | None = None) -> int:
        where, params = (criteria or RecordFilter()).to_sql()
        return int(self._fetch_scalar(f"SELECT COUNT(*) FROM records{where}", tuple(params)) or 0)

    def list_external_ids(self, criteria: RecordFilter | None = None) -> list[int]:
        where, params = (criteria or RecordFilter()).to_sql()
        cur = self._execute(
            f"SELECT external_id FROM records{where} ORDER BY external_id", tuple(params)
        )
        return [int(row[0]) for row in cur.fetchall()]

    def delete_where(self, criteria: RecordFilter) -> int:
        where, params = criteria.to_sql()
        cur = self._execute(f"DELETE FROM records{where}", tuple(params))
        self.conn.commit()
        return cur.rowcount

    def mark_absent(self, external_ids: Iterable[int], now: datetime) -> int:
        """Flip ``upstream_present`` to false for the given ids.

        Records already absent keep their original ``absent_since``.
        """
        ids = [int(i) for i in external_ids]
        stamp = format_timestamp(now)
        changed = 0
        for start in range(0, len(ids), _ID_CHUNK_SIZE):
            chunk = ids[start:start + _ID_CHUNK_SIZE]
            placeholders = ", ".join("?" for _ in chunk)
            cur = self._execute(
                f"""
                UPDATE records
                SET upstream_present = 0,
                    absent_since = COALESCE(absent_since, ?)
                WHERE upstream_present = 1 AND external_id IN ({placeholders})
                """,
                (stamp, *chunk),
            )
            changed += cur.rowcount
        self.conn.commit()
        return changed

    def mark_review_pending(self, criteria: RecordFilter) -> int:
        """Flag matching records for review; returns how many were newly flagged."""
        where, params = criteria.to_sql()
        clause = f"{where} AND review_pending = 0" if where else " WHERE review_pending = 0"
        cur = self._execute(f"UPDATE records SET review_pending = 1{clause}", tuple(params))
        self.conn.commit()
        return cur.rowcount
