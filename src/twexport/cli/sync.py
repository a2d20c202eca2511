"""
twexport CLI - Vault sync commands.

Provides a one-shot export, a long-running periodic export and a status
view over the persisted sync offset.
"""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from twexport.cli.context import get_config, open_database
from twexport.cli.errors import ExitCode, print_error, print_missing_token_error
from twexport.core.config import get_database_path
from twexport.core.config.models import TwexportConfig
from twexport.core.ordering import format_iso, from_epoch_ms, now_ms
from twexport.core.store.database import CaptureDatabase
from twexport.core.sync import (
    SchedulerState,
    SyncScheduler,
    SyncStateStore,
    SyncSummary,
    VaultSyncEngine,
    clamp_interval_minutes,
)
from twexport.core.vault import VaultClient

console = Console()
app = typer.Typer(
    name="sync",
    help="Export captured posts to the vault",
    no_args_is_help=True,
)


def _print_summary(summary: SyncSummary) -> None:
    if summary.synced or summary.skipped:
        console.print(
            f"[green]✓[/green] Synced {summary.synced} posts "
            f"({summary.skipped} already in vault, {summary.files} files written)"
        )
    else:
        console.print("[blue]Nothing to sync[/blue]")

    for error in summary.errors:
        console.print(f"[red]✗[/red] {error}")


async def _sync_once(
    db: CaptureDatabase, config: TwexportConfig, folder: str, since: int | None
) -> SyncSummary:
    async with VaultClient.from_config(config.vault) as client:
        engine = VaultSyncEngine(db, client, source=config.auto_sync.source)
        return await engine.sync(folder, since)


@app.command()
def run(
    ctx: typer.Context,
    folder: str | None = typer.Option(
        None,
        "--folder",
        "-f",
        help="Vault folder (defaults to vault.folder)",
    ),
    full: bool = typer.Option(
        False,
        "--full",
        help="Ignore the last sync offset and consider every capture",
    ),
) -> None:
    """
    Export new captures to the vault once.

    The sync offset only advances when every bucket file was written.

    Examples:
        twexport sync run
        twexport sync run --full --folder Archive/Tweets
    """
    config = get_config(ctx)
    if not config.vault.has_token:
        print_missing_token_error()
        raise typer.Exit(ExitCode.USER_ERROR)

    db = open_database(config)
    state_store = SyncStateStore.beside(get_database_path(config))
    since = None if full else state_store.last_sync_at

    started_at = now_ms()
    try:
        summary = asyncio.run(_sync_once(db, config, folder or config.vault.folder, since))
    finally:
        db.close()

    _print_summary(summary)

    if not summary.ok:
        state_store.record_summary(summary)
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    state_store.mark_synced(started_at, summary)


async def _watch(scheduler: SyncScheduler, config: TwexportConfig) -> None:
    scheduler.apply_config(config)
    if scheduler.state == SchedulerState.IDLE:
        return

    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.aclose()


@app.command()
def watch(
    ctx: typer.Context,
    interval: int | None = typer.Option(
        None,
        "--interval",
        "-i",
        help="Minutes between syncs (clamped to 5-180)",
    ),
) -> None:
    """
    Export new captures periodically until interrupted.

    Runs one sync immediately, then one per interval. Ticks with nothing
    captured since the last successful sync are skipped.
    """
    config = get_config(ctx)
    if not config.vault.has_token:
        print_missing_token_error()
        raise typer.Exit(ExitCode.USER_ERROR)

    auto_sync = config.auto_sync.model_copy(update={"enabled": True})
    if interval is not None:
        auto_sync = auto_sync.model_copy(update={"interval_minutes": interval})
    config = config.model_copy(update={"auto_sync": auto_sync})

    if not config.is_source_enabled(auto_sync.source):
        print_error(
            f"Source {auto_sync.source} is disabled",
            solution=f'set "sources": {{"{auto_sync.source}": true}} in config.json',
        )
        raise typer.Exit(ExitCode.USER_ERROR)

    db = open_database(config)
    scheduler = SyncScheduler(db, SyncStateStore.beside(get_database_path(config)))
    scheduler.subscribe(lambda state: console.print(f"[dim]auto-sync: {state.value}[/dim]"))

    console.print(
        f"Watching: syncing every {clamp_interval_minutes(auto_sync.interval_minutes)} "
        "minutes (Ctrl+C to stop)"
    )
    try:
        asyncio.run(_watch(scheduler, config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")
        raise typer.Exit(ExitCode.SIGINT)
    finally:
        db.close()


@app.command()
def status(ctx: typer.Context) -> None:
    """Show sync settings, the last sync time and pending captures."""
    config = get_config(ctx)
    state_store = SyncStateStore.beside(get_database_path(config))
    state = state_store.load()
    source = config.auto_sync.source

    db = open_database(config)
    try:
        total = db.get_capture_count_for_source(source)
        pending = (
            db.get_captures_for_source_since(source, state.last_sync_at)
            if state.last_sync_at is not None
            else db.get_captures_for_source(source)
        )
    finally:
        db.close()

    table = Table(title="Vault Sync", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Vault", config.vault.base_url)
    table.add_row("Folder", config.vault.folder)
    table.add_row("Token", "configured" if config.vault.has_token else "[red]missing[/red]")
    table.add_row("Auto-sync", "enabled" if config.auto_sync.enabled else "disabled")
    table.add_row(
        "Interval", f"{clamp_interval_minutes(config.auto_sync.interval_minutes)} minutes"
    )
    table.add_row(
        "Source",
        f"{source} ({'enabled' if config.is_source_enabled(source) else 'disabled'})",
    )
    table.add_row("Captures", str(total) if total is not None else "[red]unavailable[/red]")
    table.add_row(
        "Pending", str(len(pending)) if pending is not None else "[red]unavailable[/red]"
    )

    if state.last_sync_at is not None:
        table.add_row("Last synced", format_iso(from_epoch_ms(state.last_sync_at)))
    else:
        table.add_row("Last synced", "[dim]Never[/dim]")

    if state.last_summary is not None:
        summary = state.last_summary
        table.add_row(
            "Last run",
            f"synced={summary.synced} skipped={summary.skipped} errors={len(summary.errors)}",
        )

    console.print(table)
