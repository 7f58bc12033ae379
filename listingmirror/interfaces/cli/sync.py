"""Sync commands: manual runs, gate checks, cleanup, status and watch mode."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from listingmirror.interfaces.cli.context import CLIContext, pass_cli_context
from listingmirror.services.sync import ConfigurationError, CycleStats
from listingmirror.services.sync_service import SyncService


def _stats_table(stats: CycleStats) -> Table:
    table = Table(title=f"Sync run #{stats.run_id}" if stats.run_id else "Sync run")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key in (
        "total_processed",
        "new_records",
        "updated_records",
        "skipped_duplicates",
        "marked_inactive",
        "errors",
    ):
        table.add_row(key.replace("_", " "), str(getattr(stats, key)))
    table.add_row("duration", f"{stats.duration_seconds:.1f}s")
    table.add_row("staleness sweep", "yes" if stats.sweep_performed else "skipped")
    return table


def _print_stats(console: Console, stats: CycleStats) -> None:
    colour = {"success": "green", "cancelled": "yellow"}.get(stats.status, "red")
    console.print(f"[{colour}]Sync {stats.status}[/{colour}]")
    console.print(_stats_table(stats))
    if stats.error:
        console.print(f"[red]Error: {stats.error}[/red]")


@click.command(name="run")
@click.option(
    "--smart",
    is_flag=True,
    default=False,
    help="Apply the recent-data and minimum-interval checks before running.",
)
@pass_cli_context
def run(cli_ctx: CLIContext, smart: bool) -> None:
    """Run one sync cycle now."""
    console = Console()
    service = cli_ctx.build_service()
    try:
        with console.status("Running sync..."):
            if smart:
                stats = asyncio.run(service.run_gated_cycle())
            else:
                stats = asyncio.run(service.trigger_manual_sync())
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        raise SystemExit(2) from exc

    if stats is None:
        gate = service.state.last_gate
        reason = gate.reason if gate else "scheduler declined to run"
        console.print(f"[yellow]Sync skipped: {reason}[/yellow]")
        return
    _print_stats(console, stats)
    if stats.status == "failed":
        raise SystemExit(1)


@click.command(name="check")
@pass_cli_context
def check(cli_ctx: CLIContext) -> None:
    """Show whether a scheduled cycle would run right now."""
    console = Console()
    decision = asyncio.run(cli_ctx.build_service().should_run())
    if decision.should_run:
        console.print(f"[green]Sync would run:[/green] {decision.reason}")
    else:
        console.print(f"[yellow]Sync would be skipped:[/yellow] {decision.reason}")
    if decision.recent_percent is not None:
        console.print(f"Recently fetched active records: {decision.recent_percent:.1f}%")


@click.command(name="cleanup")
@pass_cli_context
def cleanup(cli_ctx: CLIContext) -> None:
    """Flag expired records for review and delete long-gone disabled ones."""
    console = Console()
    result = asyncio.run(cli_ctx.build_service().cleanup())
    console.print(
        f"[green]Cleanup finished[/green]: {result.expired_marked} flagged for review, "
        f"{result.hard_deleted} deleted"
    )


@click.command(name="status")
@click.option(
    "--check-upstream/--no-check-upstream",
    default=False,
    help="Also probe the upstream API with a single request.",
)
@pass_cli_context
def status(cli_ctx: CLIContext, check_upstream: bool) -> None:
    """Print configuration, record totals and the last successful cycle."""
    console = Console()
    service = cli_ctx.build_service()
    info = asyncio.run(service.get_status())
    cycle = info["last_cycle_info"]

    table = Table(title="listingmirror status")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("database", str(cli_ctx.db_path))
    table.add_row("sync enabled", str(info["config"]["enabled"]))
    table.add_row("interval", f"{info['config']['interval_minutes']} min")
    table.add_row("base URL configured", str(info["has_base_url"]))
    table.add_row("API key configured", str(info["has_api_key"]))
    table.add_row("active records", str(cycle["active_records"]))
    table.add_row("recently fetched", str(cycle["recently_fetched_records"]))
    table.add_row("last successful cycle", cycle["last_success_at"] or "never")
    console.print(table)

    if check_upstream:
        reachable = asyncio.run(service.check_upstream())
        label = "[green]reachable[/green]" if reachable else "[red]unreachable[/red]"
        console.print(f"Upstream API: {label}")


async def _watch(service: SyncService, stop_event: asyncio.Event) -> None:
    await service.start()
    try:
        await stop_event.wait()
    finally:
        await service.stop()


@click.command(name="watch")
@pass_cli_context
def watch(cli_ctx: CLIContext) -> None:
    """Run the scheduler in the foreground until interrupted."""
    console = Console()
    service = cli_ctx.build_service()
    if not service.config.enabled:
        console.print("[yellow]Sync is disabled in configuration; nothing to do.[/yellow]")
        return
    console.print(
        f"[bold]Watching[/bold]: one gated cycle every {service.config.interval_minutes} min "
        "(Ctrl+C to stop)"
    )
    try:
        asyncio.run(_watch(service, asyncio.Event()))
    except KeyboardInterrupt:
        console.print("Stopped.")
