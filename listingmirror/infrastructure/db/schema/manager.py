from __future__ import annotations

import sqlite3

from ...observability import get_logger
from .migrations import SchemaMigrator
from .tables import SCHEMA_RECORDS_SQL, SCHEMA_SYNC_RUNS_SQL

logger = get_logger(__name__)


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create the record store tables and run pending migrations.

    Idempotent; every repository calls it on construction.
    """
    conn.executescript(SCHEMA_RECORDS_SQL)
    conn.executescript(SCHEMA_SYNC_RUNS_SQL)
    applied = SchemaMigrator(conn).run_pending()
    conn.commit()
    if applied:
        logger.info("Applied schema migrations: %s", ", ".join(applied))
