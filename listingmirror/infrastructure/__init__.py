"""Infrastructure layer for listingmirror.

Holds adapters for the upstream HTTP API, SQLite persistence and
observability.
"""

from . import db, http, observability

__all__ = ["db", "http", "observability"]
