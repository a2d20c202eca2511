"""
Command line interface for twexport: capture, db and sync command groups.
"""

import logging
import sys
from pathlib import Path

import typer
from rich.console import Console

from twexport import __version__
from twexport.cli import capture, db, sync
from twexport.core.config.env import load_layered_env

app = typer.Typer(
    name="twexport",
    help="Capture timeline posts locally and export them to a note vault",
    no_args_is_help=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


def setup_logging(debug: bool = False) -> None:
    """Log to stderr; WARNING and above unless --debug is given."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Log debug output to stderr",
    ),
    config_path: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Explicit config file (overrides the user config)",
    ),
) -> None:
    """
    twexport - timeline capture and vault export.

    Captured posts are kept in a local database and exported to the vault
    as one JSONL file per day, without duplicates.

    Common Workflows:
        twexport capture batch.json          # Store a captured batch
        twexport db count                    # What is stored
        twexport sync run                    # Export new posts once
        twexport sync watch                  # Export periodically
        twexport sync status                 # Settings and last sync
    """
    # Precedence: OS env > working directory .env > user .env
    load_layered_env()
    setup_logging(debug)

    ctx.obj = {"debug": debug, "config_path": config_path}


app.command(name="capture")(capture.capture)
app.add_typer(db.app, name="db")
app.add_typer(sync.app, name="sync")


@app.command()
def version() -> None:
    """Print the installed version."""
    console.print(f"twexport version {__version__}")
    raise typer.Exit(0)


def cli_main() -> None:
    app()


__all__ = ["app", "cli_main"]
