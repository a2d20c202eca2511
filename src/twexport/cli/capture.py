"""
twexport CLI - Capture command.

Stores a batch of intercepted records (as written by the browser-side
interceptor) with provenance for one source.
"""

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from twexport.cli.context import get_config, open_database
from twexport.cli.errors import ExitCode, print_error
from twexport.core.config.models import HOME_TIMELINE_SOURCE
from twexport.core.records import RecordKind
from twexport.core.store.models import CapturedItem

console = Console()


def parse_batch(data: Any) -> list[CapturedItem]:
    """
    Turn a decoded batch file into captured items.

    Accepts a list of records, or a list of ``{"record": ..., "sort_index": ...}``
    objects. Both shapes may be mixed.
    """
    if not isinstance(data, list):
        raise ValueError("batch must be a JSON list")

    items: list[CapturedItem] = []
    for entry in data:
        if isinstance(entry, dict) and isinstance(entry.get("record"), dict):
            items.append(CapturedItem(entry["record"], entry.get("sort_index")))
        else:
            items.append(CapturedItem(entry))
    return items


def capture(
    ctx: typer.Context,
    batch_file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        help="JSON file with the captured batch",
    ),
    source: str = typer.Option(
        HOME_TIMELINE_SOURCE,
        "--source",
        "-s",
        help="Capture source that observed the batch",
    ),
    kind: RecordKind = typer.Option(
        RecordKind.POST,
        "--kind",
        "-k",
        help="Kind of records in the batch",
    ),
) -> None:
    """
    Store a captured batch.

    Examples:
        twexport capture timeline.json
        twexport capture users.json --kind profile --source Followers
    """
    try:
        items = parse_batch(json.loads(batch_file.read_text(encoding="utf-8")))
    except ValueError as e:
        print_error(f"Cannot read batch {batch_file}", reason=str(e))
        raise typer.Exit(ExitCode.USER_ERROR)

    config = get_config(ctx)
    db = open_database(config)
    try:
        ok = db.add_captured(source, kind, items)
    finally:
        db.close()

    if not ok:
        print_error("Failed to store the batch", solution="twexport --debug capture ...")
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    console.print(f"[green]✓[/green] Captured {len(items)} {kind.value}s from {source}")
