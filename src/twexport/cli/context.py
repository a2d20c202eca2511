"""
Shared helpers for resolving configuration and the database in commands.
"""

from pathlib import Path

import typer
from pydantic import ValidationError

from twexport.cli.errors import ExitCode, print_database_error, print_error
from twexport.core.config import get_database_path, load_config
from twexport.core.config.models import TwexportConfig
from twexport.core.exceptions import StorageError
from twexport.core.store.database import CaptureDatabase


def get_config(ctx: typer.Context) -> TwexportConfig:
    """
    Load configuration fresh, honouring the global --config option.

    Exits with USER_ERROR when the merged settings do not validate.
    """
    obj = ctx.find_root().obj or {}
    try:
        return load_config(obj.get("config_path"), use_cache=False)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()
        )
        print_error(
            "Invalid twexport configuration",
            reason=problems,
            solution="fix config.json or the TWEXPORT_* variables",
        )
        raise typer.Exit(ExitCode.USER_ERROR)


def open_database(config: TwexportConfig) -> CaptureDatabase:
    """
    Open the capture database for a configuration.

    Exits with USER_ERROR when the store cannot be opened or upgraded.
    """
    path: Path = get_database_path(config)
    path.parent.mkdir(parents=True, exist_ok=True)

    db = CaptureDatabase(path)
    try:
        db.open()
    except StorageError:
        print_database_error(path)
        raise typer.Exit(ExitCode.USER_ERROR)
    return db
