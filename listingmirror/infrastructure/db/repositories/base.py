"""Row-mapping helpers shared by the record store repositories."""

from __future__ import annotations

import sqlite3
from typing import Any, Sequence

Params = Sequence[Any]


def _as_dict(cur: sqlite3.Cursor, row: Sequence[Any]) -> dict[str, Any]:
    return {column[0]: value for column, value in zip(cur.description, row)}


class BaseRepository:
    """Hold one connection; subclasses write SQL and map rows to models."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def _execute(self, query: str, params: Params = ()) -> sqlite3.Cursor:
        return self.conn.execute(query, tuple(params))

    def _fetch_all_as_dicts(self, query: str, params: Params = ()) -> list[dict[str, Any]]:
        cur = self._execute(query, params)
        return [_as_dict(cur, row) for row in cur.fetchall()]

    def _fetch_one_as_dict(self, query: str, params: Params = ()) -> dict[str, Any] | None:
        cur = self._execute(query, params)
        row = cur.fetchone()
        return _as_dict(cur, row) if row else None

    def _fetch_scalar(self, query: str, params: Params = ()) -> Any:
        row = self._execute(query, params).fetchone()
        return row[0] if row else None

    def _execute_insert(self, query: str, params: Params = ()) -> int:
        """Run an INSERT and return the new row id."""
        return self._execute(query, params).lastrowid or 0
