"""
Configuration models and loading.

This module provides Pydantic models for twexport configuration
with multi-layer merging: defaults < user < explicit file < env vars.
"""

from .loader import (
    clear_cache,
    get_database_path,
    get_user_config_path,
    get_xdg_config_home,
    get_xdg_data_home,
    load_config,
)
from .models import (
    DEFAULT_VAULT_FOLDER,
    DEFAULT_VAULT_URL,
    HOME_TIMELINE_SOURCE,
    AutoSyncConfig,
    DatabaseConfig,
    TwexportConfig,
    VaultConfig,
)

__all__ = [
    # Models
    "AutoSyncConfig",
    "DatabaseConfig",
    "TwexportConfig",
    "VaultConfig",
    "DEFAULT_VAULT_FOLDER",
    "DEFAULT_VAULT_URL",
    "HOME_TIMELINE_SOURCE",
    # Loader functions
    "clear_cache",
    "get_database_path",
    "get_user_config_path",
    "get_xdg_config_home",
    "get_xdg_data_home",
    "load_config",
]
