# src/claude_tracker/cli/commands/accounts.py
"""Account commands: list, import, refresh, swap and manual management."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Annotated, TypeVar

import typer
from rich.console import Console
from rich.live import Live
from structlog import get_logger

from claude_tracker.accounts.models import AuthMethod
from claude_tracker.cli.render import build_accounts_table
from claude_tracker.config.settings import TrackerSettings, get_settings
from claude_tracker.engine import TrackerEngine
from claude_tracker.exceptions import FetchError, TrackerError
from claude_tracker.services.importer import ImportStatus


console = Console()
logger = get_logger(__name__)

T = TypeVar("T")


def create_engine(settings: TrackerSettings) -> TrackerEngine:
    """Build the engine for one command invocation."""
    return TrackerEngine(settings)


def _settings(ctx: typer.Context) -> TrackerSettings:
    if isinstance(ctx.obj, TrackerSettings):
        return ctx.obj
    return get_settings()


def run_with_engine(
    ctx: typer.Context, action: Callable[[TrackerEngine], Awaitable[T]]
) -> T:
    """Load the engine, run ``action`` and shut down.

    Tracker errors are printed and turned into exit code 1.
    """

    async def runner() -> T:
        async with create_engine(_settings(ctx)) as engine:
            await engine.load()
            return await action(engine)

    try:
        return asyncio.run(runner())
    except TrackerError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from e


AccountId = Annotated[int, typer.Argument(help="Account number as shown by list")]


def list_accounts(
    ctx: typer.Context,
    refresh: Annotated[
        bool,
        typer.Option(
            "--refresh/--no-refresh",
            help="Fetch usage before listing (default) or show the saved accounts only",
        ),
    ] = True,
) -> None:
    """Show tracked accounts and their usage."""

    async def action(engine: TrackerEngine) -> None:
        if refresh:
            await engine.refresh_all()
        views = engine.views()
        if not views:
            console.print("[yellow]No accounts tracked.[/yellow]")
            console.print("Log into Claude Code, then run [cyan]claude-tracker import[/cyan].")
            return
        console.print(build_accounts_table(views))

    run_with_engine(ctx, action)


def import_account(ctx: typer.Context) -> None:
    """Import the account Claude Code is currently logged into."""

    async def action(engine: TrackerEngine) -> None:
        outcome = await engine.import_account()
        if outcome.status == ImportStatus.CREATED:
            console.print(f"[green]Imported {outcome.name} as account {outcome.account_id}.[/green]")
        elif outcome.status == ImportStatus.UPDATED:
            console.print(
                f"[green]Updated credentials for {outcome.name} "
                f"(account {outcome.account_id}).[/green]"
            )
        else:
            console.print(
                f"{outcome.name} is already tracked as account {outcome.account_id}."
            )

    run_with_engine(ctx, action)


def refresh(
    ctx: typer.Context,
    account_id: Annotated[
        int | None, typer.Argument(help="Account to refresh (default: all)")
    ] = None,
) -> None:
    """Fetch usage now."""

    async def action(engine: TrackerEngine) -> int:
        if account_id is None:
            results = await engine.refresh_all()
            failures = [r for r in results.values() if isinstance(r, BaseException)]
        else:
            try:
                await engine.refresh_one(account_id)
                failures = []
            except FetchError as e:
                failures = [e]
        console.print(build_accounts_table(engine.views()))
        return len(failures)

    failed = run_with_engine(ctx, action)
    if failed:
        raise typer.Exit(1)


def swap(ctx: typer.Context, account_id: AccountId) -> None:
    """Log Claude Code into a tracked OAuth account."""

    async def action(engine: TrackerEngine) -> None:
        outcome = await engine.swap(account_id)
        name = engine.registry.get(outcome.account_id).name
        console.print(f"[green]Claude Code now uses {name}.[/green]")
        if outcome.wrote_back:
            console.print("[dim]Saved refreshed tokens of the previous account.[/dim]")

    run_with_engine(ctx, action)


def activate(ctx: typer.Context, account_id: AccountId) -> None:
    """Mark an account as the one you are working with."""

    async def action(engine: TrackerEngine) -> None:
        await engine.mark_active(account_id)
        console.print(f"Account {account_id} marked active.")

    run_with_engine(ctx, action)


def add(
    ctx: typer.Context,
    name: Annotated[str, typer.Option("--name", "-n", prompt=True, help="Display name")],
    org_id: Annotated[
        str, typer.Option("--org-id", "-o", prompt="Organization id", help="Organization id")
    ],
    session_key: Annotated[
        str,
        typer.Option(
            "--session-key",
            prompt="Session key",
            hide_input=True,
            help="claude.ai sessionKey cookie",
        ),
    ],
) -> None:
    """Track an account by its claude.ai session key."""

    async def action(engine: TrackerEngine) -> int:
        return await engine.add_manual(name, org_id, session_key)

    try:
        account_id = run_with_engine(ctx, action)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    console.print(f"[green]Added {name} as account {account_id}.[/green]")


def edit(
    ctx: typer.Context,
    account_id: AccountId,
    name: Annotated[str | None, typer.Option("--name", "-n", help="New display name")] = None,
    org_id: Annotated[
        str | None, typer.Option("--org-id", "-o", help="New organization id")
    ] = None,
    session_key: Annotated[
        str | None,
        typer.Option("--session-key", help="Replace the stored session key"),
    ] = None,
) -> None:
    """Change an account's name, organization or session key."""

    async def action(engine: TrackerEngine) -> bool:
        account = engine.registry.get(account_id)
        if session_key is not None and account.auth_method != AuthMethod.SESSION_KEY:
            console.print(
                "[red]Error:[/red] OAuth accounts get new tokens via "
                "[cyan]claude-tracker import[/cyan]."
            )
            return False
        await engine.edit(account_id, name=name, org_id=org_id, secret=session_key)
        return True

    if not run_with_engine(ctx, action):
        raise typer.Exit(1)
    console.print(f"[green]Account {account_id} updated.[/green]")


def delete(
    ctx: typer.Context,
    account_id: AccountId,
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation")] = False,
) -> None:
    """Stop tracking an account and delete its stored credential."""
    if not force:
        confirm = typer.confirm(f"Delete account {account_id} and its stored credential?")
        if not confirm:
            raise typer.Abort()

    async def action(engine: TrackerEngine) -> str:
        return (await engine.delete(account_id)).name

    name = run_with_engine(ctx, action)
    console.print(f"[green]Deleted {name}.[/green]")


def watch(ctx: typer.Context) -> None:
    """Live usage table; press Ctrl-C to quit."""
    settings = _settings(ctx)

    async def runner() -> None:
        async with create_engine(settings) as engine:
            await engine.start(poll=False)
            with Live(
                build_accounts_table(engine.views()),
                console=console,
                auto_refresh=False,
                transient=False,
            ) as live:
                engine.start_ticker(
                    lambda views: live.update(build_accounts_table(views), refresh=True)
                )
                await engine.poller.poll_all()
                await asyncio.Event().wait()

    try:
        asyncio.run(runner())
    except KeyboardInterrupt:
        logger.debug("watch_interrupted")
    except TrackerError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from e
