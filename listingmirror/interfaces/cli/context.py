"""Shared helpers for composing CLI command contexts."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

import click

from listingmirror.app.config import AppSettings, load_settings
from listingmirror.services.sync_service import SyncService


@dataclass(frozen=True)
class CLIContext:
    """Settings resolved once per invocation, plus the service built from them."""

    settings: AppSettings

    @property
    def db_path(self) -> Path:
        return self.settings.db_path

    def build_service(self) -> SyncService:
        return SyncService(
            db_path=self.settings.db_path,
            upstream=self.settings.upstream,
            config=self.settings.sync,
        )


def build_cli_context(config_path: str | None, db_path: str | None) -> CLIContext:
    try:
        settings = load_settings(config_path)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="config") from exc
    if db_path:
        settings = replace(settings, db_path=Path(db_path))
    return CLIContext(settings=settings)


pass_cli_context = click.make_pass_decorator(CLIContext)
