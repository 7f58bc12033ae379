from .records import RecordFilter, RecordRepository
from .sync_runs import SyncRunRepository

__all__ = [
    "RecordFilter",
    "RecordRepository",
    "SyncRunRepository",
]
