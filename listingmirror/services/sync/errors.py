from __future__ import annotations

from ...infrastructure.http.errors import CycleCancelled


class ConfigurationError(Exception):
    """Upstream base URL or API key is missing; no cycle can start."""


class SyncInProgressError(RuntimeError):
    """A cycle is already running; triggers are rejected, not queued."""


class RecordProcessingError(Exception):
    """Unexpected failure while reconciling a single identifier."""

    def __init__(self, external_id: int, cause: BaseException) -> None:
        super().__init__(f"Failed to reconcile record {external_id}: {cause}")
        self.external_id = external_id
        self.cause = cause


__all__ = [
    "ConfigurationError",
    "CycleCancelled",
    "RecordProcessingError",
    "SyncInProgressError",
]
