"""
twexport CLI - Database maintenance commands.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from twexport.cli.context import get_config, open_database
from twexport.cli.errors import ExitCode, print_error
from twexport.core.config import get_database_path

console = Console()
app = typer.Typer(
    name="db",
    help="Inspect, back up and clear the capture database",
    no_args_is_help=True,
)


@app.command()
def count(ctx: typer.Context) -> None:
    """Show how many posts, profiles and captures are stored."""
    config = get_config(ctx)
    db = open_database(config)
    try:
        counts = db.count()
        version = db.schema_version
    finally:
        db.close()

    if counts is None:
        print_error("Failed to count database rows", solution="twexport --debug db count")
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    table = Table(title="Capture Database", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Path", str(get_database_path(config)))
    table.add_row("Schema version", str(version))
    table.add_row("Posts", str(counts.posts))
    table.add_row("Profiles", str(counts.profiles))
    table.add_row("Captures", str(counts.captures))
    console.print(table)


@app.command(name="export")
def export_cmd(
    ctx: typer.Context,
    output: Path = typer.Argument(..., dir_okay=False, help="File to write the export to"),
) -> None:
    """
    Write every table to a JSON export file.

    Examples:
        twexport db export backup.json
    """
    db = open_database(get_config(ctx))
    try:
        blob = db.export_all()
    finally:
        db.close()

    if blob is None:
        print_error("Export failed", solution="twexport --debug db export ...")
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    output.write_bytes(blob)
    console.print(f"[green]✓[/green] Exported database to {output}")


@app.command(name="import")
def import_cmd(
    ctx: typer.Context,
    input_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="Export file to merge in"
    ),
) -> None:
    """
    Merge a JSON export into the database.

    Rows are upserted by key; nothing is written if the export is invalid.
    """
    db = open_database(get_config(ctx))
    try:
        ok = db.import_all(input_file.read_bytes())
    finally:
        db.close()

    if not ok:
        print_error(
            f"Import of {input_file} failed",
            reason="The file is not a valid twexport export",
        )
        raise typer.Exit(ExitCode.USER_ERROR)

    console.print(f"[green]✓[/green] Imported {input_file}")


@app.command()
def clear(
    ctx: typer.Context,
    source: str | None = typer.Option(
        None,
        "--source",
        "-s",
        help="Only delete captures of this source (records are kept)",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """
    Delete stored data.

    Without --source, every capture, post and profile is deleted.

    Examples:
        twexport db clear --source HomeTimelineModule
        twexport db clear --yes
    """
    target = f"captures of {source}" if source else "ALL captured data"
    if not yes and not typer.confirm(f"Delete {target}?"):
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(ExitCode.SUCCESS)

    db = open_database(get_config(ctx))
    try:
        ok = db.clear_source(source) if source else db.clear_all()
    finally:
        db.close()

    if not ok:
        print_error(f"Failed to delete {target}")
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    console.print(f"[green]✓[/green] Deleted {target}")
