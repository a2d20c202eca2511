"""
REST client for the note vault.

The vault exposes its files as a path-addressed tree:

    GET /vault/{path}   -> file content (404 when absent)
    PUT /vault/{path}   -> create or replace the file

Each path segment is percent-encoded individually, leading slashes are
dropped, and every request carries the token as a bearer credential.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from twexport.core.config.models import VaultConfig
from twexport.core.exceptions import ConfigurationError, RemoteRequestError
from twexport.core.vault.retry import RetryConfig, with_retry

logger = logging.getLogger(__name__)


def encode_vault_path(path: str) -> str:
    """
    Percent-encode a vault path segment by segment.

    Example:
        >>> encode_vault_path("/Tweets/2024 01/a#b.jsonl")
        'Tweets/2024%2001/a%23b.jsonl'
    """
    return "/".join(quote(segment, safe="") for segment in path.lstrip("/").split("/"))


@dataclass(frozen=True)
class VaultResponse:
    """Status and body of a vault request."""

    status: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def not_found(self) -> bool:
        return self.status == 404


class VaultClient:
    """
    Async client for the vault REST API.

    Status codes are returned, not raised; only transport failures become
    RemoteRequestError (after retries).

    Example:
        >>> async with VaultClient("http://127.0.0.1:27123", token="secret") as client:
        ...     response = await client.get_file("Tweets/2024-01-01.jsonl")
        ...     response.not_found
        True
    """

    def __init__(
        self,
        base_url: str,
        token: str | None,
        *,
        timeout: float = 30.0,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Vault API root, e.g. "http://127.0.0.1:27123"
            token: Bearer token; requests fail with ConfigurationError without one
            timeout: Per-request timeout in seconds
            retry: Retry policy for transport failures
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.retry = retry or RetryConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(
        cls, config: VaultConfig, transport: httpx.AsyncBaseTransport | None = None
    ) -> "VaultClient":
        return cls(
            config.base_url,
            config.token,
            timeout=config.timeout_seconds,
            retry=RetryConfig(max_retries=config.max_retries),
            transport=transport,
        )

    async def __aenter__(self) -> "VaultClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _assert_token(self) -> str:
        if not self.token:
            raise ConfigurationError("Missing vault API token. Configure vault.token.")
        return self.token

    async def _request(self, method: str, path: str, content: str | None = None) -> VaultResponse:
        token = self._assert_token()
        url = f"/vault/{encode_vault_path(path)}"
        headers = {"Authorization": f"Bearer {token}"}
        if content is not None:
            headers["Content-Type"] = "text/plain; charset=utf-8"

        @with_retry(self.retry)
        async def send() -> httpx.Response:
            return await self._http().request(
                method,
                url,
                headers=headers,
                content=content.encode("utf-8") if content is not None else None,
            )

        try:
            response = await send()
        except httpx.HTTPError as e:
            logger.error("Vault request failed: %s %s: %s", method, path, e)
            raise RemoteRequestError(f"{method} {path} failed ({e})", path=path) from e

        logger.debug("%s %s -> %d", method, path, response.status_code)
        return VaultResponse(status=response.status_code, text=response.text or "")

    async def get_file(self, path: str) -> VaultResponse:
        """Fetch a vault file. A missing file comes back as status 404."""
        return await self._request("GET", path)

    async def put_file(self, path: str, content: str) -> VaultResponse:
        """Create or replace a vault file with UTF-8 text content."""
        return await self._request("PUT", path, content)
