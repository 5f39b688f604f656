"""Command line entry point."""

from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console

from claude_tracker import __version__
from claude_tracker.cli.commands import accounts
from claude_tracker.config.settings import get_settings
from claude_tracker.core.logging import setup_logging


app = typer.Typer(
    name="claude-tracker",
    help="Track usage of several Claude Code accounts and switch between them",
    no_args_is_help=True,
)

console = Console(stderr=True)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"claude-tracker {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Annotated[
        Path | None,
        typer.Option("--config-dir", help="Directory holding config.json"),
    ] = None,
    log_level: Annotated[
        str | None, typer.Option("--log-level", help="Log level (default: WARNING)")
    ] = None,
    version: Annotated[
        bool | None,
        typer.Option("--version", callback=version_callback, is_eager=True),
    ] = None,
) -> None:
    """Claude account tracker."""
    overrides: dict[str, object] = {}
    if config_dir is not None:
        overrides["config_dir"] = config_dir
    if log_level is not None:
        overrides["log_level"] = log_level

    try:
        settings = get_settings(**overrides)
    except ValidationError as e:
        console.print(f"[red]Invalid settings:[/red] {e}")
        raise typer.Exit(1) from e

    setup_logging(settings.log_level, settings.log_file)
    ctx.obj = settings


app.command(name="list")(accounts.list_accounts)
app.command(name="import")(accounts.import_account)
app.command(name="refresh")(accounts.refresh)
app.command(name="swap")(accounts.swap)
app.command(name="activate")(accounts.activate)
app.command(name="add")(accounts.add)
app.command(name="edit")(accounts.edit)
app.command(name="delete")(accounts.delete)
app.command(name="watch")(accounts.watch)


if __name__ == "__main__":
    app()
