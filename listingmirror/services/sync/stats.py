from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Literal

from ...infrastructure.db import format_timestamp

CycleStatus = Literal["running", "success", "failed", "cancelled"]


@dataclass
class CycleStats:
    """Counters accumulated over one sync cycle."""

    total_processed: int = 0
    new_records: int = 0
    updated_records: int = 0
    skipped_duplicates: int = 0
    marked_inactive: int = 0
    errors: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_seconds: float = 0.0
    status: CycleStatus = "running"
    sweep_performed: bool = False
    run_id: int | None = None
    error: str | None = None

    def finish(self, finished_at: datetime, status: CycleStatus) -> None:
        self.finished_at = finished_at
        self.status = status
        if self.started_at is not None:
            self.duration_seconds = max(
                0.0, (finished_at - self.started_at).total_seconds()
            )

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for key in ("started_at", "finished_at"):
            value = payload[key]
            payload[key] = format_timestamp(value) if value else None
        return payload


@dataclass(frozen=True)
class CleanupResult:
    expired_marked: int = 0
    hard_deleted: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)
