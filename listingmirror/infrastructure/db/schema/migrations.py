from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Callable

from ..connection import iso_utcnow
from .tables import SCHEMA_MIGRATIONS_SQL, SCHEMA_VERSION_SQL


@dataclass(frozen=True)
class Migration:
    """One named, ordered change to an existing record store."""

    version: int
    name: str
    apply: Callable[[sqlite3.Connection], bool]
    notes: str | None = None


def _record_columns(conn: sqlite3.Connection) -> set[str]:
    return {row[1] for row in conn.execute("PRAGMA table_info(records)").fetchall()}


def _add_absent_since(conn: sqlite3.Connection) -> bool:
    # Stores created before absence tracking only had the presence flag.
    if "absent_since" in _record_columns(conn):
        return False
    conn.execute("ALTER TABLE records ADD COLUMN absent_since TEXT")
    return True


MIGRATIONS: tuple[Migration, ...] = (
    Migration(2, "add_records_absent_since_v2", _add_absent_since, "records.absent_since"),
)

CURRENT_SCHEMA_VERSION = max((m.version for m in MIGRATIONS), default=1)


class SchemaMigrator:
    """Apply :data:`MIGRATIONS` once each and keep ``schema_version`` in step.

    ``schema_migrations`` holds one row per applied migration name;
    ``schema_version`` holds a single row with the highest applied version.
    """

    def __init__(self, conn: sqlite3.Connection, migrations: tuple[Migration, ...] = MIGRATIONS) -> None:
        self.conn = conn
        self.migrations = tuple(sorted(migrations, key=lambda m: m.version))

    def prepare(self) -> None:
        self.conn.executescript(SCHEMA_VERSION_SQL)
        self.conn.executescript(SCHEMA_MIGRATIONS_SQL)

    def get_version(self) -> int | None:
        row = self.conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row else None

    def applied_names(self) -> set[str]:
        return {row[0] for row in self.conn.execute("SELECT name FROM schema_migrations")}

    def run_pending(self) -> list[str]:
        """Run every migration not yet recorded.

        Each one is recorded either way; only those that changed the store
        are returned.
        """
        self.prepare()
        done = self.applied_names()
        applied: list[str] = []
        for migration in self.migrations:
            if migration.name in done:
                continue
            changed = migration.apply(self.conn)
            self.conn.execute(
                "INSERT INTO schema_migrations (name, applied_at, notes) VALUES (?, ?, ?)",
                (migration.name, iso_utcnow(), migration.notes if changed else "present in base schema"),
            )
            if changed:
                applied.append(migration.name)

        current = self.get_version()
        if current is None or current < CURRENT_SCHEMA_VERSION:
            self.conn.execute("DELETE FROM schema_version")
            self.conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (CURRENT_SCHEMA_VERSION, iso_utcnow()),
            )
        return applied
