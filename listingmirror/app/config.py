"""Application settings for listingmirror.

Settings come from ``config.json`` (sections ``upstream``, ``sync``, ``paths``
and ``db``) and may be overridden by ``LISTINGMIRROR_*`` environment
variables. Every ``SyncConfig`` field can be set through
``LISTINGMIRROR_SYNC_<FIELD>``, e.g. ``LISTINGMIRROR_SYNC_BATCH_SIZE=20``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from listingmirror.infrastructure.db import get_path_config, load_config
from listingmirror.services.sync import SyncConfig, UpstreamSettings

ENV_PREFIX = "LISTINGMIRROR_"
_SYNC_PREFIX = f"{ENV_PREFIX}SYNC_"


@dataclass(frozen=True)
class AppSettings:
    upstream: UpstreamSettings = field(default_factory=UpstreamSettings)
    sync: SyncConfig = field(default_factory=SyncConfig)
    db_path: Path = field(default_factory=lambda: get_path_config()["db_path"])
    autostart: bool = True
    log_level: str = "INFO"


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _section(cfg: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = cfg.get(name, {})
    return dict(value) if isinstance(value, dict) else {}


def load_settings(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppSettings:
    """Load settings from ``config.json`` and the environment.

    Raises:
        ValueError: A sync setting is unknown or out of range.
    """
    env = os.environ if environ is None else environ
    cfg = load_config(config_path)

    upstream_cfg = _section(cfg, "upstream")
    upstream = UpstreamSettings(
        base_url=env.get(f"{ENV_PREFIX}API_BASE_URL", upstream_cfg.get("base_url", "")),
        api_key=env.get(f"{ENV_PREFIX}API_KEY", upstream_cfg.get("api_key", "")),
    )

    sync_values = _section(cfg, "sync")
    known = SyncConfig.field_names()
    for key, value in env.items():
        if not key.startswith(_SYNC_PREFIX):
            continue
        name = key[len(_SYNC_PREFIX):].lower()
        if name in known:
            sync_values[name] = value
    sync = SyncConfig.from_mapping(sync_values)

    db_path = Path(env[f"{ENV_PREFIX}DB_PATH"]) if env.get(f"{ENV_PREFIX}DB_PATH") else (
        get_path_config(config_path)["db_path"]
    )

    server_cfg = _section(cfg, "server")
    autostart = server_cfg.get("autostart", True)
    if f"{ENV_PREFIX}AUTOSTART" in env:
        autostart = _truthy(env[f"{ENV_PREFIX}AUTOSTART"])

    return AppSettings(
        upstream=upstream,
        sync=sync,
        db_path=db_path,
        autostart=bool(autostart),
        log_level=env.get(f"{ENV_PREFIX}LOG_LEVEL", str(cfg.get("log_level", "INFO"))).upper(),
    )


__all__ = ["AppSettings", "ENV_PREFIX", "load_settings"]
