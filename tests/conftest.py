"""
Pytest configuration and shared fixtures.

Provides fixtures for isolated config/data directories, sample posts and
profiles, an opened capture database, and an in-memory vault served through
httpx.MockTransport.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import unquote

import httpx
import pytest

from twexport.core.config import clear_cache
from twexport.core.store.database import CaptureDatabase
from twexport.core.vault.client import VaultClient
from twexport.core.vault.retry import RetryConfig

SOURCE = "HomeTimelineModule"
TOKEN = "test-token"

# ==============================================================================
# Environment Fixtures
# ==============================================================================


@pytest.fixture
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> dict[str, Path]:
    """
    Point XDG dirs at tmp_path and drop any TWEXPORT_* variables.

    Returns the config dir, data dir and working directory in use.
    """
    config_home = tmp_path / "config"
    data_home = tmp_path / "data"
    workdir = tmp_path / "work"
    for path in (config_home, data_home, workdir):
        path.mkdir()

    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setenv("XDG_DATA_HOME", str(data_home))
    monkeypatch.chdir(workdir)
    for name in (
        "TWEXPORT_VAULT_URL",
        "TWEXPORT_VAULT_TOKEN",
        "TWEXPORT_VAULT_FOLDER",
        "TWEXPORT_AUTO_SYNC",
        "TWEXPORT_SYNC_INTERVAL",
        "TWEXPORT_DB_PATH",
    ):
        monkeypatch.delenv(name, raising=False)

    clear_cache()
    yield {
        "config_dir": config_home / "twexport",
        "data_dir": data_home / "twexport",
        "workdir": workdir,
    }
    clear_cache()


# ==============================================================================
# Sample Data Fixtures
# ==============================================================================


def build_post(
    rest_id: str,
    created_at: str | None = "Mon Jan 01 12:00:00 +0000 2024",
    text: str = "hello world",
    screen_name: str = "alice",
    **legacy: Any,
) -> dict[str, Any]:
    """A timeline post shaped like the GraphQL TweetResults payload."""
    post_legacy: dict[str, Any] = {
        "full_text": text,
        "favorite_count": 1,
        "retweet_count": 2,
        "reply_count": 3,
        "quote_count": 4,
        "bookmark_count": 5,
    }
    if created_at is not None:
        post_legacy["created_at"] = created_at
    post_legacy.update(legacy)
    return {
        "__typename": "Tweet",
        "rest_id": rest_id,
        "core": {
            "user_results": {
                "result": {
                    "rest_id": "42",
                    "core": {"screen_name": screen_name, "name": screen_name.title()},
                }
            }
        },
        "views": {"count": "100"},
        "legacy": post_legacy,
    }


def build_profile(rest_id: str, screen_name: str = "bob") -> dict[str, Any]:
    """A user profile shaped like the GraphQL UserResults payload."""
    return {
        "__typename": "User",
        "rest_id": rest_id,
        "core": {
            "screen_name": screen_name,
            "name": screen_name.title(),
            "created_at": "Tue Mar 21 20:50:14 +0000 2006",
        },
        "legacy": {"followers_count": 10, "friends_count": 20},
    }


@pytest.fixture
def make_post() -> Callable[..., dict[str, Any]]:
    return build_post


@pytest.fixture
def make_profile() -> Callable[..., dict[str, Any]]:
    return build_profile


@pytest.fixture
def db(tmp_path: Path) -> CaptureDatabase:
    """Opened capture database in a temp directory."""
    database = CaptureDatabase(tmp_path / "twexport.db")
    database.open()
    yield database
    database.close()


# ==============================================================================
# Vault Fixtures
# ==============================================================================


class FakeVault:
    """
    In-memory vault file tree behind an httpx.MockTransport.

    Attributes:
        files: Decoded path -> file content
        requests: (method, decoded path) of every request received
        fail: Decoded path -> status code (or exception) to answer with
    """

    def __init__(self, token: str = TOKEN) -> None:
        self.token = token
        self.files: dict[str, str] = {}
        self.requests: list[tuple[str, str]] = []
        self.fail: dict[tuple[str, str], int | Exception] = {}
        self.last_headers: httpx.Headers | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        raw_path = request.url.raw_path.decode("ascii").split("?")[0]
        assert raw_path.startswith("/vault/")
        path = unquote(raw_path[len("/vault/") :])
        self.requests.append((request.method, path))
        self.last_headers = request.headers

        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401, text="unauthorized")

        failure = self.fail.get((request.method, path))
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            return httpx.Response(failure, text="boom")

        if request.method == "GET":
            if path not in self.files:
                return httpx.Response(404, text="not found")
            return httpx.Response(200, text=self.files[path])

        if request.method == "PUT":
            self.files[path] = request.content.decode("utf-8")
            return httpx.Response(204)

        return httpx.Response(405)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self, token: str | None = TOKEN) -> VaultClient:
        return VaultClient(
            "http://vault.test",
            token,
            retry=RetryConfig(max_retries=1, base_delay=0.0, jitter=False),
            transport=self.transport(),
        )

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.requests if m == method)


@pytest.fixture
def fake_vault() -> FakeVault:
    return FakeVault()


@pytest.fixture
def make_vault() -> Callable[[], FakeVault]:
    return FakeVault
