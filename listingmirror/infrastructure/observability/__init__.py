"""Observability and logging facades."""

from .logging import (
    configure_logging,
    get_logger,
    log_context,
    log_exception,
)
from .metrics import (
    format_prometheus,
    get_metrics_summary,
    increment_counter,
    observe_histogram,
    record_cleanup,
    record_sync_cycle,
    record_upstream_request,
    reset_metrics,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "log_context",
    "log_exception",
    # Metrics
    "format_prometheus",
    "get_metrics_summary",
    "increment_counter",
    "observe_histogram",
    "record_cleanup",
    "record_sync_cycle",
    "record_upstream_request",
    "reset_metrics",
]
