from __future__ import annotations

SCHEMA_VERSION_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);
"""

SCHEMA_MIGRATIONS_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    applied_at TEXT NOT NULL,
    notes TEXT
);
"""

SCHEMA_RECORDS_SQL = """
CREATE TABLE IF NOT EXISTS records (
    external_id INTEGER PRIMARY KEY,
    name TEXT,
    location TEXT,
    developer TEXT,
    min_price REAL,
    max_price REAL,
    price_currency TEXT,
    sale_status TEXT,
    completion_date TEXT,
    coordinates TEXT,
    cover_image_url TEXT,
    area_unit TEXT,
    description TEXT,
    raw_detail TEXT NOT NULL DEFAULT '{}',
    upstream_present INTEGER NOT NULL DEFAULT 1,
    lifecycle_state TEXT NOT NULL DEFAULT 'active',
    review_pending INTEGER NOT NULL DEFAULT 0,
    feature_signals TEXT NOT NULL DEFAULT '[]',
    fetched_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    absent_since TEXT
);
CREATE INDEX IF NOT EXISTS idx_records_presence ON records (upstream_present, lifecycle_state);
CREATE INDEX IF NOT EXISTS idx_records_fetched_at ON records (fetched_at);
CREATE INDEX IF NOT EXISTS idx_records_expires_at ON records (expires_at);
"""

SCHEMA_SYNC_RUNS_SQL = """
CREATE TABLE IF NOT EXISTS sync_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    status TEXT NOT NULL DEFAULT 'running',
    total_processed INTEGER DEFAULT 0,
    new_records INTEGER DEFAULT 0,
    updated_records INTEGER DEFAULT 0,
    skipped_duplicates INTEGER DEFAULT 0,
    marked_inactive INTEGER DEFAULT 0,
    error_count INTEGER DEFAULT 0,
    sweep_performed INTEGER DEFAULT 0,
    notes TEXT
);
CREATE INDEX IF NOT EXISTS idx_sync_runs_status ON sync_runs (status, finished_at);
"""
