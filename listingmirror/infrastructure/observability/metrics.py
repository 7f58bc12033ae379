"""In-process sync metrics.

Counters and count/sum summaries live in a module-level registry guarded by
locks, because cycles update them from a worker thread while the API reads
them. ``GET /metrics`` renders the registry in Prometheus text format.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Mapping

Labels = Mapping[str, str | None]
LabelKey = tuple[tuple[str, str | None], ...]


def _labels_to_key(labels: Labels | None) -> LabelKey:
    return tuple(sorted(labels.items())) if labels else ()


@dataclass
class Counter:
    """Monotonic total per label set."""

    name: str
    help_text: str = ""
    _values: dict[LabelKey, float] = field(default_factory=lambda: defaultdict(float))
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def inc(self, value: float = 1.0, labels: Labels | None = None) -> None:
        with self._lock:
            self._values[_labels_to_key(labels)] += value

    def get(self, labels: Labels | None = None) -> float:
        with self._lock:
            return self._values.get(_labels_to_key(labels), 0.0)

    def snapshot(self) -> dict[LabelKey, float]:
        with self._lock:
            return dict(self._values)


@dataclass
class Histogram:
    """Running count and sum per label set.

    Individual observations are not kept; a scheduler left running for
    months would otherwise grow without bound.
    """

    name: str
    help_text: str = ""
    _totals: dict[LabelKey, list[float]] = field(default_factory=lambda: defaultdict(lambda: [0, 0.0]))
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def observe(self, value: float, labels: Labels | None = None) -> None:
        with self._lock:
            totals = self._totals[_labels_to_key(labels)]
            totals[0] += 1
            totals[1] += value

    def get_stats(self, labels: Labels | None = None) -> dict[str, float]:
        with self._lock:
            count, total = self._totals.get(_labels_to_key(labels), (0, 0.0))
        return {"count": count, "sum": total, "avg": total / count if count else 0.0}

    def label_keys(self) -> list[LabelKey]:
        with self._lock:
            return list(self._totals)


class MetricRegistry:
    def __init__(self) -> None:
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, help_text: str = "") -> Counter:
        with self._lock:
            return self._counters.setdefault(name, Counter(name=name, help_text=help_text))

    def histogram(self, name: str, help_text: str = "") -> Histogram:
        with self._lock:
            return self._histograms.setdefault(name, Histogram(name=name, help_text=help_text))

    def all_counters(self) -> dict[str, Counter]:
        with self._lock:
            return dict(self._counters)

    def all_histograms(self) -> dict[str, Histogram]:
        with self._lock:
            return dict(self._histograms)

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()


_registry = MetricRegistry()


def increment_counter(
    name: str,
    value: float = 1.0,
    labels: Labels | None = None,
    help_text: str = "",
) -> None:
    _registry.counter(name, help_text).inc(value, labels)


def observe_histogram(
    name: str,
    value: float,
    labels: Labels | None = None,
    help_text: str = "",
) -> None:
    _registry.histogram(name, help_text).observe(value, labels)


def reset_metrics() -> None:
    """Drop every registered metric. Used by tests."""
    _registry.clear()


# ---------------------------------------------------------------------------
# Predefined metrics
# ---------------------------------------------------------------------------

SYNC_CYCLES = "sync_cycles_total"
SYNC_CYCLE_DURATION = "sync_cycle_duration_seconds"
SYNC_RECORDS_PROCESSED = "sync_records_processed_total"
SYNC_RECORD_ERRORS = "sync_record_errors_total"
UPSTREAM_REQUESTS = "upstream_requests_total"
UPSTREAM_REQUEST_DURATION = "upstream_request_duration_seconds"
CLEANUP_RECORDS = "cleanup_records_total"


def record_sync_cycle(
    status: str, duration: float, processed: int, errors: int = 0
) -> None:
    """Record a finished sync cycle."""
    increment_counter(
        SYNC_CYCLES, labels={"status": status}, help_text="Total sync cycles"
    )
    observe_histogram(
        SYNC_CYCLE_DURATION,
        duration,
        labels={"status": status},
        help_text="Sync cycle duration in seconds",
    )
    increment_counter(
        SYNC_RECORDS_PROCESSED,
        value=float(processed),
        help_text="Total record identifiers reconciled",
    )
    if errors:
        increment_counter(
            SYNC_RECORD_ERRORS,
            value=float(errors),
            help_text="Total records that failed to reconcile",
        )


def record_upstream_request(
    endpoint: str, outcome: str, duration: float | None = None
) -> None:
    """Record one upstream HTTP attempt.

    Args:
        endpoint: 'list' or 'detail'
        outcome: 'ok', 'transient', 'not_found', 'auth_error' or 'failed'
        duration: Request time in seconds, when measured
    """
    increment_counter(
        UPSTREAM_REQUESTS,
        labels={"endpoint": endpoint, "outcome": outcome},
        help_text="Total upstream API requests",
    )
    if duration is not None:
        observe_histogram(
            UPSTREAM_REQUEST_DURATION,
            duration,
            labels={"endpoint": endpoint},
            help_text="Upstream request duration in seconds",
        )


def record_cleanup(expired_marked: int, hard_deleted: int) -> None:
    increment_counter(
        CLEANUP_RECORDS,
        value=float(expired_marked),
        labels={"action": "review_pending"},
        help_text="Records touched by cleanup",
    )
    increment_counter(
        CLEANUP_RECORDS,
        value=float(hard_deleted),
        labels={"action": "deleted"},
        help_text="Records touched by cleanup",
    )


# ---------------------------------------------------------------------------
# Export utilities
# ---------------------------------------------------------------------------


def _label_str(key: LabelKey, quoted: bool = False) -> str:
    if quoted:
        return ",".join(f'{k}="{v}"' for k, v in key)
    return ",".join(f"{k}={v}" for k, v in key)


def get_metrics_summary() -> dict[str, object]:
    """Return a summary of all metrics for logging or API response."""
    counters: dict[str, dict[str, float]] = {}
    histograms: dict[str, dict[str, dict[str, float]]] = {}

    for name, counter in _registry.all_counters().items():
        counters[name] = {
            (_label_str(key) or "default"): value
            for key, value in counter.snapshot().items()
        }

    for name, histogram in _registry.all_histograms().items():
        histograms[name] = {
            (_label_str(key) or "default"): histogram.get_stats(dict(key) or None)
            for key in histogram.label_keys()
        }

    return {"counters": counters, "histograms": histograms}


def format_prometheus() -> str:
    """Format metrics in Prometheus text exposition format."""
    lines: list[str] = []

    for name, counter in _registry.all_counters().items():
        if counter.help_text:
            lines.append(f"# HELP {name} {counter.help_text}")
        lines.append(f"# TYPE {name} counter")
        for key, value in counter.snapshot().items():
            if key:
                lines.append(f"{name}{{{_label_str(key, quoted=True)}}} {value}")
            else:
                lines.append(f"{name} {value}")

    for name, histogram in _registry.all_histograms().items():
        if histogram.help_text:
            lines.append(f"# HELP {name} {histogram.help_text}")
        lines.append(f"# TYPE {name} summary")
        for key in histogram.label_keys():
            stats = histogram.get_stats(dict(key) or None)
            suffix = f"{{{_label_str(key, quoted=True)}}}" if key else ""
            lines.append(f"{name}_count{suffix} {stats['count']}")
            lines.append(f"{name}_sum{suffix} {stats['sum']}")

    return "\n".join(lines)
