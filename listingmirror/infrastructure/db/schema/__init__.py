"""Record store schema: table DDL, migrations and :func:`ensure_schema`."""

from .manager import ensure_schema
from .migrations import CURRENT_SCHEMA_VERSION, MIGRATIONS, Migration, SchemaMigrator

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "MIGRATIONS",
    "Migration",
    "SchemaMigrator",
    "ensure_schema",
]
