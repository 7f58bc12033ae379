"""Read the database related parts of ``config.json``.

Only the ``paths.db_path``, ``db_timeout_seconds`` and ``db.enable_wal`` keys
matter here; the rest of the file belongs to :mod:`listingmirror.app.config`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

DEFAULT_DB_TIMEOUT = 30.0
DB_FILENAME = "listingmirror.db"

_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_CONFIG_FILE = _PROJECT_ROOT / "config.json"


def _config_file(config_path: Path | str | None) -> Path:
    return Path(config_path) if config_path is not None else _CONFIG_FILE


def load_config(config_path: Path | str | None = None) -> Dict[str, Any]:
    """Return the parsed config file, or ``{}`` when it does not exist."""

    path = _config_file(config_path)
    if not path.exists():
        return {}
    data = json.loads(path.read_text(encoding="utf-8"))
    return data if isinstance(data, dict) else {}


def get_path_config(config_path: Path | str | None = None) -> Dict[str, Path]:
    """Return ``{"db_path": Path}``.

    A relative ``paths.db_path`` is taken relative to the config file's
    directory, so a store configured next to its config moves with it.
    """

    path = _config_file(config_path)
    paths_cfg = load_config(config_path).get("paths")
    raw = paths_cfg.get("db_path") if isinstance(paths_cfg, dict) else None
    db_path = Path(raw) if raw else path.parent / DB_FILENAME
    if not db_path.is_absolute():
        db_path = (path.parent / db_path).resolve()
    return {"db_path": db_path}


def get_default_timeout(config_path: Path | str | None = None) -> float:
    try:
        return float(load_config(config_path).get("db_timeout_seconds", DEFAULT_DB_TIMEOUT))
    except (TypeError, ValueError):
        return DEFAULT_DB_TIMEOUT


def wal_enabled(config_path: Path | str | None = None) -> bool:
    db_cfg = load_config(config_path).get("db")
    return bool(db_cfg.get("enable_wal", True)) if isinstance(db_cfg, dict) else True
