"""Immutable settings for the sync engine and scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping

DEFAULT_PREMIUM_LOCATIONS: tuple[str, ...] = (
    "Downtown Dubai",
    "Dubai Marina",
    "Palm Jumeirah",
    "Business Bay",
    "DIFC",
)

_POSITIVE = {
    "interval_minutes",
    "max_retries",
    "request_timeout_seconds",
    "batch_size",
    "cache_ttl_hours",
    "facility_threshold",
    "image_threshold",
}
_NON_NEGATIVE = {
    "delay_between_requests_seconds",
    "min_sync_interval_hours",
    "recent_window_hours",
    "retry_base_delay_seconds",
    "retry_max_delay_seconds",
    "review_grace_hours",
    "hard_delete_after_days",
}


@dataclass(frozen=True)
class UpstreamSettings:
    base_url: str = ""
    api_key: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url.strip()) and bool(self.api_key.strip())


@dataclass(frozen=True)
class SyncConfig:
    """Sync tuning knobs. Replace wholesale via :meth:`updated`; never mutate."""

    enabled: bool = True
    interval_minutes: int = 1440
    max_retries: int = 3
    request_timeout_seconds: float = 30.0
    batch_size: int = 10
    delay_between_requests_seconds: float = 1.0
    min_sync_interval_hours: float = 24.0
    skip_if_recent_data: bool = True
    recent_window_hours: float = 24.0
    recent_threshold_percent: float = 80.0
    cache_ttl_hours: float = 24.0
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0
    review_grace_hours: float = 0.0
    hard_delete_after_days: float = 30.0
    premium_locations: tuple[str, ...] = field(default=DEFAULT_PREMIUM_LOCATIONS)
    facility_threshold: int = 10
    image_threshold: int = 5

    @classmethod
    def field_names(cls) -> set[str]:
        return {item.name for item in fields(cls)}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "SyncConfig":
        """Build a config from a (possibly partial) mapping, validating values."""
        return cls().updated(dict(data or {}))

    def updated(self, changes: Mapping[str, Any]) -> "SyncConfig":
        """Return a copy with ``changes`` applied.

        Raises:
            ValueError: Unknown key or out-of-range value.
        """
        unknown = set(changes) - self.field_names()
        if unknown:
            raise ValueError(f"Unknown sync config keys: {', '.join(sorted(unknown))}")
        coerced = {key: _coerce(key, value) for key, value in changes.items()}
        return replace(self, **coerced)

    def to_dict(self) -> dict[str, Any]:
        payload = {item.name: getattr(self, item.name) for item in fields(self)}
        payload["premium_locations"] = list(self.premium_locations)
        return payload


def _coerce(key: str, value: Any) -> Any:
    if key in ("enabled", "skip_if_recent_data"):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if key == "premium_locations":
        if isinstance(value, str):
            value = [part.strip() for part in value.split(",")]
        if not isinstance(value, (list, tuple)):
            raise ValueError("premium_locations must be a list of strings")
        return tuple(str(part) for part in value if str(part).strip())
    if isinstance(value, bool):
        raise ValueError(f"{key} must be a number")
    default = getattr(SyncConfig, key)
    try:
        number = int(value) if isinstance(default, int) else float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be a number") from exc
    if key in _POSITIVE and number <= 0:
        raise ValueError(f"{key} must be positive")
    if key in _NON_NEGATIVE and number < 0:
        raise ValueError(f"{key} must not be negative")
    if key == "recent_threshold_percent" and not 0 <= number <= 100:
        raise ValueError("recent_threshold_percent must be between 0 and 100")
    return number
