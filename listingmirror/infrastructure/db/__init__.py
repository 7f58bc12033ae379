from .config import (DB_FILENAME, DEFAULT_DB_TIMEOUT, get_default_timeout, get_path_config,
                     load_config, wal_enabled)
from .connection import (DatabaseError, apply_pragmas, format_timestamp,
                         get_connection, iso_utcnow, parse_timestamp)
from .schema import SchemaMigrator, ensure_schema

__all__ = [
    "DB_FILENAME",
    "DEFAULT_DB_TIMEOUT",
    "DatabaseError",
    "apply_pragmas",
    "format_timestamp",
    "get_connection",
    "get_default_timeout",
    "get_path_config",
    "iso_utcnow",
    "load_config",
    "parse_timestamp",
    "wal_enabled",
    "SchemaMigrator",
    "ensure_schema",
]
