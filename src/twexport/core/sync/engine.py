"""
Bucketed, incremental export of captured posts to the vault.

Each daily bucket file (``{folder}/{YYYY-MM-DD}.jsonl``) is the unit of
idempotence: the engine reads it, skips documents whose id is already
there, and rewrites the whole file with the new lines appended. Buckets are
processed independently, so one failing file never stops the others.

The read-then-rewrite is not safe against another writer touching the
same file at the same time; the last write wins.
"""

from __future__ import annotations

import json
import logging

from twexport.core.config.models import DEFAULT_VAULT_FOLDER, HOME_TIMELINE_SOURCE
from twexport.core.exceptions import RemoteRequestError, TwexportError
from twexport.core.export.models import VaultDocument
from twexport.core.export.projection import group_by_bucket
from twexport.core.records import RecordKind
from twexport.core.store.database import CaptureDatabase
from twexport.core.sync.models import SyncSummary
from twexport.core.vault.client import VaultClient

logger = logging.getLogger(__name__)


def bucket_path(folder: str, key: str) -> str:
    return f"{folder.rstrip('/')}/{key}.jsonl"


def extract_existing_ids(content: str) -> set[str]:
    """
    Ids already present in a JSONL bucket file.

    Blank lines are ignored; lines that are not JSON objects are skipped
    with a debug note.
    """
    ids: set[str] = set()
    for line in content.split("\n"):
        trimmed = line.strip()
        if not trimmed:
            continue
        try:
            parsed = json.loads(trimmed)
        except ValueError as e:
            logger.debug("Failed to parse JSONL line: %s", e)
            continue
        if isinstance(parsed, dict) and parsed.get("id") is not None:
            ids.add(str(parsed["id"]))
    return ids


def merge_content(existing: str, documents: list[VaultDocument]) -> str:
    """
    Append documents as JSONL lines to existing file content.

    A separating newline is inserted only when the existing content is
    non-empty and does not already end with one. The result always ends
    with a newline.
    """
    new_lines = "\n".join(doc.to_line() for doc in documents) + "\n"
    separator = "\n" if existing and not existing.endswith("\n") else ""
    return f"{existing}{separator}{new_lines}"


class VaultSyncEngine:
    """
    Exports a source's captured posts to daily bucket files in the vault.

    Example:
        >>> engine = VaultSyncEngine(db, client)
        >>> summary = await engine.sync("Tweets")
        >>> summary.synced, summary.skipped
        (12, 0)
    """

    def __init__(
        self,
        database: CaptureDatabase,
        client: VaultClient,
        *,
        source: str = HOME_TIMELINE_SOURCE,
    ) -> None:
        self.database = database
        self.client = client
        self.source = source

    async def aclose(self) -> None:
        await self.client.aclose()

    async def sync(
        self,
        folder: str = DEFAULT_VAULT_FOLDER,
        since: int | None = None,
    ) -> SyncSummary:
        """
        Run one export.

        Args:
            folder: Vault folder holding the bucket files
            since: Only export posts captured after this epoch-ms offset

        Returns:
            SyncSummary; per-bucket failures are listed in ``errors``
        """
        posts = self.database.get_captured_records(self.source, RecordKind.POST, since=since)
        summary = SyncSummary(total=len(posts))

        if not posts:
            return summary

        for key, documents in group_by_bucket(posts).items():
            await self._sync_bucket(bucket_path(folder, key), documents, summary)

        return summary

    async def _sync_bucket(
        self, path: str, documents: list[VaultDocument], summary: SyncSummary
    ) -> None:
        try:
            existing = await self._read_bucket(path)
        except TwexportError as e:
            summary.errors.append(str(e))
            return

        existing_ids = extract_existing_ids(existing)
        new_documents: list[VaultDocument] = []
        for doc in documents:
            if doc.id in existing_ids:
                continue
            # Guard against the same post twice in one bucket
            existing_ids.add(doc.id)
            new_documents.append(doc)
        summary.skipped += len(documents) - len(new_documents)

        if not new_documents:
            logger.debug("Nothing new for %s", path)
            return

        try:
            response = await self.client.put_file(path, merge_content(existing, new_documents))
            if not response.ok:
                raise RemoteRequestError(
                    f"PUT {path} failed ({response.status})", path=path, status=response.status
                )
        except TwexportError as e:
            summary.errors.append(str(e))
            return

        summary.synced += len(new_documents)
        summary.files += 1
        logger.debug("Wrote %d new documents to %s", len(new_documents), path)

    async def _read_bucket(self, path: str) -> str:
        """
        Current content of a bucket file.

        A 404 means the file does not exist yet and reads as empty. A vault
        that answers 404 for an existing file gets that file overwritten
        with only the new lines.
        """
        response = await self.client.get_file(path)
        if response.not_found:
            return ""
        if not response.ok:
            raise RemoteRequestError(
                f"GET {path} failed ({response.status})", path=path, status=response.status
            )
        return response.text
