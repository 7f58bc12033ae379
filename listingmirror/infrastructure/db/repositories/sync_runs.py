from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Protocol

from ..connection import format_timestamp, iso_utcnow
from ..schema import ensure_schema
from .base import BaseRepository


class _RunStats(Protocol):
    status: str
    total_processed: int
    new_records: int
    updated_records: int
    skipped_duplicates: int
    marked_inactive: int
    errors: int
    sweep_performed: bool
    finished_at: datetime | None
    error: str | None


class SyncRunRepository(BaseRepository):
    """Persistence for one row per sync cycle."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn)
        ensure_schema(self.conn)

    def start(self, started_at: datetime | None = None) -> int:
        run_id = self._execute_insert(
            "INSERT INTO sync_runs (started_at, status) VALUES (?, 'running')",
            (format_timestamp(started_at) if started_at else iso_utcnow(),),
        )
        self.conn.commit()
        return run_id

    def finish(self, run_id: int, stats: _RunStats) -> None:
        finished = format_timestamp(stats.finished_at) if stats.finished_at else iso_utcnow()
        self._execute(
            """
            UPDATE sync_runs
            SET finished_at = ?, status = ?, total_processed = ?, new_records = ?,
                updated_records = ?, skipped_duplicates = ?, marked_inactive = ?,
                error_count = ?, sweep_performed = ?, notes = ?
            WHERE id = ?
            """,
            (
                finished,
                stats.status,
                stats.total_processed,
                stats.new_records,
                stats.updated_records,
                stats.skipped_duplicates,
                stats.marked_inactive,
                stats.errors,
                1 if stats.sweep_performed else 0,
                stats.error,
                run_id,
            ),
        )
        self.conn.commit()

    def last_successful(self) -> dict[str, Any] | None:
        return self._fetch_one_as_dict(
            """
            SELECT * FROM sync_runs
            WHERE status = 'success'
            ORDER BY finished_at DESC, id DESC
            LIMIT 1
            """
        )

    def recent(self, limit: int = 10) -> list[dict[str, Any]]:
        return self._fetch_all_as_dicts(
            "SELECT * FROM sync_runs ORDER BY id DESC LIMIT ?", (int(limit),)
        )
