"""Cached listing record domain model."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

DEFAULT_CACHE_TTL_HOURS = 24.0


class LifecycleState(str, Enum):
    """Administrative visibility of a record, independent of upstream presence."""

    ACTIVE = "active"
    DISABLED = "disabled"
    DRAFT = "draft"

    @classmethod
    def from_string(cls, value: str | None) -> "LifecycleState":
        """Convert a stored string to a LifecycleState, defaulting to ACTIVE."""
        if not value:
            return cls.ACTIVE
        try:
            return cls(value.lower().strip())
        except ValueError:
            return cls.ACTIVE


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class CoreFields:
    """Scalar listing fields lifted out of the upstream detail payload.

    Every field is nullable because upstream may omit any of them.
    """

    name: str | None = None
    location: str | None = None
    developer: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    price_currency: str | None = None
    sale_status: str | None = None
    completion_date: str | None = None
    coordinates: str | None = None
    cover_image_url: str | None = None
    area_unit: str | None = None
    description: str | None = None

    @classmethod
    def from_detail(cls, detail: dict[str, Any]) -> "CoreFields":
        """Build core fields from an upstream detail payload."""
        return cls(
            name=_as_text(detail.get("name")),
            location=_as_text(detail.get("area")),
            developer=_as_text(detail.get("developer")),
            min_price=_as_float(detail.get("min_price")),
            max_price=_as_float(detail.get("max_price")),
            price_currency=_as_text(detail.get("price_currency")),
            sale_status=_as_text(
                _first_present(detail.get("sale_status"), detail.get("status"))
            ),
            completion_date=_as_text(detail.get("completion_datetime")),
            coordinates=_as_text(detail.get("coordinates")),
            cover_image_url=_as_text(detail.get("cover_image_url")),
            area_unit=_as_text(detail.get("area_unit")),
            description=_as_text(
                _first_present(detail.get("description"), detail.get("overview"))
            ),
        )

    def merged_with(self, incoming: "CoreFields") -> "CoreFields":
        """Return a copy where incoming values win unless they are missing.

        A ``None`` or blank incoming value never overwrites a known value.
        """
        updates = {}
        for item in fields(self):
            new_value = getattr(incoming, item.name)
            updates[item.name] = _first_present(new_value, getattr(self, item.name))
        return replace(self, **updates)

    def to_dict(self) -> dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


@dataclass
class CachedRecord:
    """A listing mirrored from upstream, keyed by its upstream identifier.

    ``raw_detail`` holds the verbatim upstream detail response so the record
    can be reconstructed later without coupling to the upstream schema.
    """

    external_id: int
    fetched_at: datetime
    expires_at: datetime
    core: CoreFields = field(default_factory=CoreFields)
    raw_detail: dict[str, Any] = field(default_factory=dict)
    upstream_present: bool = True
    lifecycle_state: LifecycleState = LifecycleState.ACTIVE
    review_pending: bool = False
    feature_signals: set[str] = field(default_factory=set)
    absent_since: datetime | None = None

    def __post_init__(self) -> None:
        if self.expires_at <= self.fetched_at:
            raise ValueError(
                f"expires_at must be after fetched_at for record {self.external_id}"
            )

    @classmethod
    def from_detail(
        cls,
        external_id: int,
        detail: dict[str, Any],
        *,
        now: datetime,
        ttl_hours: float = DEFAULT_CACHE_TTL_HOURS,
        signals: set[str] | frozenset[str] = frozenset(),
    ) -> "CachedRecord":
        """Create a fresh, active record from a first successful detail fetch."""
        return cls(
            external_id=external_id,
            fetched_at=now,
            expires_at=now + timedelta(hours=ttl_hours),
            core=CoreFields.from_detail(detail),
            raw_detail=dict(detail),
            upstream_present=True,
            lifecycle_state=LifecycleState.ACTIVE,
            review_pending=False,
            feature_signals=set(signals),
        )

    def is_stale(self, now: datetime) -> bool:
        """A record is stale once its cache TTL has passed."""
        return now > self.expires_at

    def refresh_cache(self, now: datetime, ttl_hours: float = DEFAULT_CACHE_TTL_HOURS) -> None:
        self.fetched_at = now
        self.expires_at = now + timedelta(hours=ttl_hours)

    def mark_seen(self, now: datetime) -> None:
        """Record that upstream listed this record again without re-fetching it."""
        self.upstream_present = True
        self.absent_since = None
        if now < self.expires_at:
            self.fetched_at = now

    def apply_detail(
        self,
        detail: dict[str, Any],
        *,
        now: datetime,
        ttl_hours: float = DEFAULT_CACHE_TTL_HOURS,
        signals: set[str] | frozenset[str] = frozenset(),
    ) -> None:
        """Merge a freshly fetched detail payload into this record."""
        self.core = self.core.merged_with(CoreFields.from_detail(detail))
        self.raw_detail = dict(detail)
        self.upstream_present = True
        self.absent_since = None
        self.feature_signals = self.feature_signals | set(signals)
        self.refresh_cache(now, ttl_hours)
