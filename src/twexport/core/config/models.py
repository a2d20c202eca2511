"""
Configuration data models for twexport.

These models define the structure of ~/.config/twexport/config.json and of
any explicit config file, with validation and type safety via Pydantic.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_VAULT_URL = "http://127.0.0.1:27123"
DEFAULT_VAULT_FOLDER = "Tweets"
HOME_TIMELINE_SOURCE = "HomeTimelineModule"


class VaultConfig(BaseModel):
    """
    Connection settings for the note vault's REST API.

    The vault is addressed as a flat file tree; every request carries the
    token as a bearer credential.
    """
    base_url: str = Field(
        default=DEFAULT_VAULT_URL,
        description="Base URL of the vault REST API"
    )
    token: Optional[str] = Field(
        default=None,
        description="Bearer token for the vault API"
    )
    folder: str = Field(
        default=DEFAULT_VAULT_FOLDER,
        min_length=1,
        description="Vault folder that receives the daily .jsonl bucket files"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Per-request transport timeout"
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries on transient transport failures"
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended directly."""
        return v.rstrip("/")

    @property
    def has_token(self) -> bool:
        return bool(self.token)


class AutoSyncConfig(BaseModel):
    """
    Periodic export settings.

    The interval is clamped by the scheduler rather than validated here, so
    out-of-range values from older config files keep working.
    """
    enabled: bool = Field(
        default=False,
        description="Run the periodic vault export"
    )
    interval_minutes: int = Field(
        default=15,
        description="Minutes between sync attempts (clamped to 5-180)"
    )
    source: str = Field(
        default=HOME_TIMELINE_SOURCE,
        description="Capture source whose records are exported"
    )


class DatabaseConfig(BaseModel):
    """Location and naming of the local capture database."""
    path: Optional[str] = Field(
        default=None,
        description="Explicit database file (defaults to the XDG data dir)"
    )
    name: str = Field(
        default="twexport",
        min_length=1,
        description="Database base name"
    )
    dedicated_per_account: bool = Field(
        default=False,
        description="Use a separate database file per logged-in account"
    )
    account_id: Optional[str] = Field(
        default=None,
        description="Account id appended to the name when dedicated_per_account is set"
    )

    def file_name(self) -> str:
        """Database file name, suffixed with the account id if configured."""
        suffix = ""
        if self.dedicated_per_account:
            suffix = f"_{self.account_id or 'unknown'}"
        return f"{self.name}{suffix}.db"


class TwexportConfig(BaseModel):
    """
    Top-level configuration.

    Example:
        >>> config = TwexportConfig(vault={"token": "secret"})
        >>> config.vault.has_token
        True
        >>> config.auto_sync.interval_minutes
        15
    """
    vault: VaultConfig = Field(default_factory=VaultConfig)
    auto_sync: AutoSyncConfig = Field(default_factory=AutoSyncConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    sources: dict[str, bool] = Field(
        default_factory=lambda: {HOME_TIMELINE_SOURCE: True},
        description="Capture sources and whether each is enabled"
    )

    model_config = ConfigDict(
        extra="ignore",
    )

    def is_source_enabled(self, name: str) -> bool:
        return self.sources.get(name, False)
