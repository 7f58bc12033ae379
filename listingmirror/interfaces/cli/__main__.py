"""Entry point for the listingmirror CLI.

Executing ``python -m listingmirror.interfaces.cli`` (or the ``listingmirror``
console script) invokes the group below.
"""

import click

from listingmirror.infrastructure.observability import configure_logging

from .context import build_cli_context
from .sync import check, cleanup, run, status, watch


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.json (defaults to the project root).",
)
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to the SQLite database file. Overrides configuration.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
@click.option("--log-json", is_flag=True, default=False, help="Emit log lines as JSON objects.")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    db_path: str | None,
    verbose: bool,
    log_json: bool,
) -> None:
    """listingmirror command-line interface."""
    cli_ctx = build_cli_context(config_path, db_path)
    configure_logging("DEBUG" if verbose else cli_ctx.settings.log_level, use_json=log_json)
    ctx.obj = cli_ctx


cli.add_command(run)
cli.add_command(check)
cli.add_command(cleanup)
cli.add_command(status)
cli.add_command(watch)


if __name__ == "__main__":
    cli()
