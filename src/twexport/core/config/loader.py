"""
Layered configuration for twexport.

Sources are merged in order, later ones winning:

    built-in defaults
    $XDG_CONFIG_HOME/twexport/config.json
    the file passed with --config
    TWEXPORT_* environment variables
"""

import json
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .models import TwexportConfig

logger = logging.getLogger(__name__)

_cached: TwexportConfig | None = None

DEFAULTS: dict[str, Any] = {
    "vault": {"folder": "Tweets"},
    "auto_sync": {"enabled": False, "interval_minutes": 15},
}


def _as_flag(raw: str) -> bool:
    return raw.strip().lower() not in {"", "0", "false", "no", "off"}


# (variable, section, field, parser)
ENV_OVERRIDES: list[tuple[str, str, str, Callable[[str], Any]]] = [
    ("TWEXPORT_VAULT_URL", "vault", "base_url", str),
    ("TWEXPORT_VAULT_TOKEN", "vault", "token", str),
    ("TWEXPORT_VAULT_FOLDER", "vault", "folder", str),
    ("TWEXPORT_AUTO_SYNC", "auto_sync", "enabled", _as_flag),
    ("TWEXPORT_SYNC_INTERVAL", "auto_sync", "interval_minutes", int),
    ("TWEXPORT_DB_PATH", "database", "path", str),
]


def _xdg_dir(variable: str, fallback: Path) -> Path:
    value = os.environ.get(variable)
    return Path(value) if value else fallback


def get_xdg_config_home() -> Path:
    return _xdg_dir("XDG_CONFIG_HOME", Path.home() / ".config")


def get_xdg_data_home() -> Path:
    return _xdg_dir("XDG_DATA_HOME", Path.home() / ".local" / "share")


def get_user_config_path() -> Path:
    """Per-user config.json under the XDG config directory."""
    return get_xdg_config_home() / "twexport" / "config.json"


def get_database_path(config: TwexportConfig) -> Path:
    """
    Capture database file for a configuration.

    ``database.path`` is used as given; without it the file goes under
    $XDG_DATA_HOME/twexport/.
    """
    if config.database.path:
        return Path(config.database.path).expanduser()
    return get_xdg_data_home() / "twexport" / config.database.file_name()


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively overlay ``override`` onto a copy of ``base``.

    Nested mappings are merged key by key; any other value replaces the
    one underneath.

        >>> deep_merge({"vault": {"folder": "A", "token": "t"}}, {"vault": {"folder": "B"}})
        {'vault': {'folder': 'B', 'token': 't'}}
    """
    merged = dict(base)
    for key, value in override.items():
        below = merged.get(key)
        if isinstance(below, dict) and isinstance(value, dict):
            merged[key] = deep_merge(below, value)
        else:
            merged[key] = value
    return merged


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Read a JSON object from ``path``.

    Missing files, unreadable files, malformed JSON and non-object
    documents all yield None; the latter three are logged.
    """
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring config file %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level is not an object", path)
        return None
    return data


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Return a copy of ``config_dict`` with TWEXPORT_* variables applied.

    Empty values are ignored except for TWEXPORT_AUTO_SYNC, where an empty
    string means off. A TWEXPORT_SYNC_INTERVAL that is not an integer is
    logged and skipped.
    """
    overrides: dict[str, dict[str, Any]] = {}
    for variable, section, field, parse in ENV_OVERRIDES:
        raw = os.environ.get(variable)
        if raw is None or (raw == "" and parse is not _as_flag):
            continue
        try:
            value = parse(raw)
        except ValueError:
            logger.warning("Ignoring %s=%r: not a valid value", variable, raw)
            continue
        overrides.setdefault(section, {})[field] = value

    result = dict(config_dict)
    for section, fields in overrides.items():
        current = result.get(section)
        result[section] = {**(current if isinstance(current, dict) else {}), **fields}
    return result


def load_config(config_path: Path | None = None, use_cache: bool = True) -> TwexportConfig:
    """
    Build the effective configuration.

    Args:
        config_path: Extra JSON file layered above the user config
        use_cache: Reuse the result of an earlier call when available

    Raises:
        ValidationError: If the merged values do not validate
    """
    global _cached

    if use_cache and _cached is not None:
        return _cached

    layers = [load_json_file(get_user_config_path())]
    if config_path is not None:
        layers.append(load_json_file(Path(config_path)))

    merged = DEFAULTS
    for layer in layers:
        if layer:
            merged = deep_merge(merged, layer)

    _cached = TwexportConfig(**apply_env_overrides(merged))
    return _cached


def clear_cache() -> None:
    """Forget the cached configuration so the next load re-reads everything."""
    global _cached
    _cached = None
