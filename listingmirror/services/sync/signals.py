"""Advisory feature signals derived from a detail payload.

Signals only hint that a record might deserve promotion; nothing here ever
changes a record's lifecycle state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .config import DEFAULT_PREMIUM_LOCATIONS, SyncConfig

PARTNER_PROJECT = "is_partner_project"
PREMIUM_LOCATION = "premium_location"


@dataclass(frozen=True)
class SignalRules:
    premium_locations: tuple[str, ...] = DEFAULT_PREMIUM_LOCATIONS
    facility_threshold: int = 10
    image_threshold: int = 5

    @classmethod
    def from_config(cls, config: SyncConfig) -> "SignalRules":
        return cls(
            premium_locations=tuple(config.premium_locations),
            facility_threshold=config.facility_threshold,
            image_threshold=config.image_threshold,
        )


def _count(value: Any) -> int:
    return len(value) if isinstance(value, (list, tuple)) else 0


def compute_feature_signals(
    detail: dict[str, Any], rules: SignalRules | None = None
) -> frozenset[str]:
    rules = rules or SignalRules()
    signals: set[str] = set()
    if detail.get("is_partner_project"):
        signals.add(PARTNER_PROJECT)
    if _count(detail.get("facilities")) >= rules.facility_threshold:
        signals.add(f"facilities>={rules.facility_threshold}")
    if _count(detail.get("architecture")) >= rules.image_threshold:
        signals.add(f"images>={rules.image_threshold}")
    area = detail.get("area")
    if isinstance(area, str):
        lowered = area.lower()
        if any(loc.lower() in lowered for loc in rules.premium_locations if loc):
            signals.add(PREMIUM_LOCATION)
    return frozenset(signals)
