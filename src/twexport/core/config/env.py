"""
.env support for twexport settings.

The vault token and other TWEXPORT_* settings can be kept in .env files
instead of the shell. Two files are read, later ones winning:

    $XDG_CONFIG_HOME/twexport/.env   (per user)
    ./.env                           (working directory)

Variables already exported in the shell always win over both files.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from dotenv import dotenv_values

logger = logging.getLogger(__name__)


def user_env_file() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(config_home) / "twexport" / ".env"


def read_env_file(path: Path) -> dict[str, str]:
    """Key/value pairs of a .env file; valueless keys are dropped."""
    if not path.is_file():
        return {}
    return {key: value for key, value in dotenv_values(path).items() if key and value is not None}


def load_layered_env(
    *,
    cwd: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    local_env_paths: Iterable[Path] | None = None,
) -> list[str]:
    """
    Merge .env files into os.environ without touching pre-set variables.

    Args:
        cwd: Directory holding the local .env (defaults to the working directory)
        user_env_paths: Override for the per-user files
        local_env_paths: Override for the working-directory files

    Returns:
        Names of the variables that were set
    """
    users = list(user_env_paths) if user_env_paths is not None else [user_env_file()]
    locals_ = (
        list(local_env_paths) if local_env_paths is not None else [(cwd or Path.cwd()) / ".env"]
    )

    merged: dict[str, str] = {}
    for path in [*users, *locals_]:
        merged.update(read_env_file(Path(path)))

    applied = [key for key in merged if key not in os.environ]
    for key in applied:
        os.environ[key] = merged[key]

    if applied:
        logger.debug("Loaded %d variables from .env files", len(applied))
    return applied
