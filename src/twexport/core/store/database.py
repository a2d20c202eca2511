"""
Local capture store.

CaptureDatabase persists captured records and their provenance in SQLite.
Every public method handles its own expected failures: SQLite and
serialization errors are logged and turned into a sentinel return value
(None, [] or False), so a broken database never takes the capture pipeline
or the sync scheduler down with it.

Batch writes are atomic per table per call. There is no transaction
spanning records and captures: a crash in between leaves an inert record
without a capture, and a capture whose record is missing is dropped at
read time.

Example:
    >>> db = CaptureDatabase(":memory:")
    >>> db.add_captured("HomeTimelineModule", RecordKind.POST, [(post, "1790")])
    True
    >>> db.get_captured_records("HomeTimelineModule", RecordKind.POST)
    [{'rest_id': '1', ...}]
"""

from __future__ import annotations

import functools
import json
import logging
import sqlite3
from collections.abc import Callable, Iterable, Sequence
from functools import cmp_to_key
from pathlib import Path
from typing import Any, TypeVar

from pydantic import ValidationError

from twexport.core.exceptions import DataIntegrityWarning, MigrationError, StorageError
from twexport.core.ordering import SortKey, compare_sort_keys, now_ms
from twexport.core.records import (
    PRIVATE_FIELDS_KEY,
    Record,
    RecordKind,
    compute_private_fields,
    has_payload,
)
from twexport.core.store.connection import open_connection, transaction
from twexport.core.store.models import Capture, CapturedItem, StoreCounts, capture_id
from twexport.core.store.schema import (
    ALL_TABLES,
    CAPTURES_TABLE,
    PRIMARY_KEYS,
    RECORD_TABLES,
    SCHEMA_VERSION,
    SCHEMA_VERSIONS,
    SchemaVersion,
    get_schema_version,
    run_migrations,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXPORT_FORMAT = "twexport-export"

# Stay well below SQLite's bound-parameter limit
_LOOKUP_CHUNK = 500


def _logs_storage_errors(
    default: Callable[[], Any],
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator turning storage failures into a logged sentinel return value.

    Args:
        default: Factory for the value returned when the call fails
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(self: "CaptureDatabase", *args: Any, **kwargs: Any) -> T:
            try:
                return func(self, *args, **kwargs)
            except (StorageError, sqlite3.Error) as e:
                self._log_error(e)
                return default()  # type: ignore[no-any-return]

        return wrapper

    return decorator


def sort_captures(captures: Iterable[Capture]) -> list[Capture]:
    """
    Order captures the way a source presented them.

    Sort key ascending when both entries have one; an entry with a key
    before one without; otherwise newest capture first.
    """

    def compare(a: Capture, b: Capture) -> int:
        if a.sort_index is not None and b.sort_index is not None:
            return compare_sort_keys(a.sort_index, b.sort_index)
        if a.sort_index is not None:
            return -1
        if b.sort_index is not None:
            return 1
        return b.created_at - a.created_at

    return sorted(captures, key=cmp_to_key(compare))


def sort_items(items: Iterable[CapturedItem]) -> list[CapturedItem]:
    """Stable sort of an incoming batch by sort key (keyless items last)."""
    return sorted(items, key=cmp_to_key(lambda a, b: compare_sort_keys(a.sort_index, b.sort_index)))


def _dumps(data: Any) -> str:
    try:
        return json.dumps(data, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise StorageError(f"Failed to serialize row: {e}") from e


class CaptureDatabase:
    """
    SQLite-backed store for posts, profiles and capture provenance.

    The connection is opened lazily on first use (or explicitly via open()),
    at which point pending schema versions are applied.

    Example:
        >>> with CaptureDatabase(tmp_path / "twexport.db") as db:
        ...     db.count()
        StoreCounts(posts=0, profiles=0, captures=0)
    """

    def __init__(
        self,
        db_path: Path | str,
        versions: Sequence[SchemaVersion] = SCHEMA_VERSIONS,
    ) -> None:
        """
        Initialize the store.

        Args:
            db_path: Database file, or ":memory:"
            versions: Schema version list (tests pass truncated lists)
        """
        self.db_path = db_path
        self.versions = tuple(versions)
        self._conn: sqlite3.Connection | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """
        Open the connection and apply pending schema versions.

        Raises:
            MigrationError: If the schema cannot be brought up to date. The
                connection is closed again and the error logged.
        """
        if self._conn is not None:
            return

        try:
            conn = open_connection(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {self.db_path}: {e}") from e

        try:
            run_migrations(conn, self.versions)
        except MigrationError as e:
            conn.close()
            self._log_error(e)
            raise

        self._conn = conn
        logger.info("Database connected: %s", self.db_path)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "CaptureDatabase":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.open()
        assert self._conn is not None
        return self._conn

    @property
    def schema_version(self) -> int | None:
        """Persisted schema version (None if the store cannot be opened)."""
        try:
            return get_schema_version(self._connection())
        except (StorageError, sqlite3.Error) as e:
            self._log_error(e)
            return None

    # ------------------------------------------------------------------
    # Capture producers
    # ------------------------------------------------------------------

    def add_captured(
        self,
        source: str,
        kind: RecordKind,
        items: Iterable[CapturedItem | tuple[Record, SortKey | None]],
    ) -> bool:
        """
        Persist a batch observed by a source, with provenance.

        Items are sorted by sort key first; each capture's timestamp is then
        biased by its batch position so batch order survives when captures
        are later ordered by time. Duplicate ids in one batch collapse to a
        single capture (the last one wins).

        Returns:
            True if both the records and the captures were written
        """
        batch: list[CapturedItem] = []
        for item in items:
            captured = item if isinstance(item, CapturedItem) else CapturedItem(*item)
            if not isinstance(captured.record, dict) or not captured.record.get("rest_id"):
                logger.warning(
                    "Dropping captured item without rest_id from %s",
                    source,
                    extra={"category": DataIntegrityWarning.__name__},
                )
                continue
            batch.append(captured)

        if not batch:
            return True

        ordered = sort_items(batch)
        records_ok = self.upsert_records(kind, [item.record for item in ordered])

        base = now_ms()
        captures = [
            Capture(
                id=capture_id(source, str(item.record["rest_id"])),
                source=source,
                kind=kind,
                record_id=str(item.record["rest_id"]),
                created_at=base + i,
                sort_index=item.sort_index,
            )
            for i, item in enumerate(ordered)
        ]
        captures_ok = self.upsert_captures(captures)
        return records_ok and captures_ok

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @_logs_storage_errors(default=lambda: False)
    def upsert_records(self, kind: RecordKind, records: Sequence[Record]) -> bool:
        """
        Write a batch of records keyed by rest_id, all or nothing.

        The private annotation block is recomputed for every record.

        Returns:
            True on success, False if the batch failed (nothing was written)
        """
        table = RECORD_TABLES[RecordKind(kind)]
        updated_at = now_ms()

        rows: list[tuple[str, str]] = []
        for record in records:
            rest_id = record.get("rest_id")
            if not rest_id:
                raise StorageError(f"Record without rest_id in {table} batch", table=table)
            data = dict(record)
            data[PRIVATE_FIELDS_KEY] = compute_private_fields(RecordKind(kind), record, updated_at)
            rows.append((str(rest_id), _dumps(data)))

        conn = self._connection()
        with transaction(conn):
            conn.executemany(
                f'INSERT INTO "{table}" (key, data) VALUES (?, ?) '
                "ON CONFLICT(key) DO UPDATE SET data = excluded.data",
                rows,
            )
        logger.debug("Upserted %d rows into %s", len(rows), table)
        return True

    @_logs_storage_errors(default=lambda: False)
    def upsert_captures(self, captures: Sequence[Capture]) -> bool:
        """Write a batch of captures keyed by composite id, all or nothing."""
        rows = [(capture.id, _dumps(capture.to_row())) for capture in captures]

        conn = self._connection()
        with transaction(conn):
            conn.executemany(
                f'INSERT INTO "{CAPTURES_TABLE}" (key, data) VALUES (?, ?) '
                "ON CONFLICT(key) DO UPDATE SET data = excluded.data",
                rows,
            )
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @_logs_storage_errors(default=lambda: None)
    def get_captures_for_source(self, source: str) -> list[Capture] | None:
        """All captures of a source, in storage order. None on failure."""
        rows = self._connection().execute(
            f"SELECT data FROM \"{CAPTURES_TABLE}\" WHERE json_extract(data, '$.source') = ?",
            (source,),
        ).fetchall()
        return self._parse_captures(rows)

    @_logs_storage_errors(default=lambda: None)
    def get_captures_for_source_since(self, source: str, since: int) -> list[Capture] | None:
        """Captures of a source created strictly after ``since`` (epoch ms)."""
        rows = self._connection().execute(
            f"SELECT data FROM \"{CAPTURES_TABLE}\" WHERE json_extract(data, '$.source') = ? "
            "AND json_extract(data, '$.created_at') > ?",
            (source, since),
        ).fetchall()
        return self._parse_captures(rows)

    @_logs_storage_errors(default=lambda: None)
    def get_capture_count_for_source(self, source: str) -> int | None:
        row = self._connection().execute(
            f"SELECT COUNT(*) AS n FROM \"{CAPTURES_TABLE}\" "
            "WHERE json_extract(data, '$.source') = ?",
            (source,),
        ).fetchone()
        return int(row["n"])

    @_logs_storage_errors(default=list)
    def get_records_for_captures(
        self, captures: Sequence[Capture], kind: RecordKind
    ) -> list[Record]:
        """
        Resolve captures of ``kind`` to their records, in capture order.

        Bulk lookups come back in key order, so capture order is restored
        from a lookup map. Captures whose record is missing or has no payload
        are dropped and logged.
        """
        kind = RecordKind(kind)
        ordered = [c for c in sort_captures(captures) if c.kind == kind]
        if not ordered:
            return []

        found = self._lookup_records(RECORD_TABLES[kind], [c.record_id for c in ordered])

        results: list[Record] = []
        for capture in ordered:
            record = found.get(capture.record_id)
            if record is None:
                logger.warning(
                    "Capture %s references missing %s %s",
                    capture.id,
                    kind.value,
                    capture.record_id,
                    extra={"category": DataIntegrityWarning.__name__},
                )
                continue
            if not has_payload(record):
                logger.warning(
                    "Empty data found in DB for %s %s",
                    kind.value,
                    capture.record_id,
                    extra={"category": DataIntegrityWarning.__name__},
                )
                continue
            results.append(record)
        return results

    def get_captured_records(
        self, source: str, kind: RecordKind, since: int | None = None
    ) -> list[Record]:
        """
        Records captured by a source, in capture order.

        Args:
            source: Capture source name
            kind: Record kind to resolve
            since: Only captures created after this epoch-ms offset
        """
        if since is None:
            captures = self.get_captures_for_source(source)
        else:
            captures = self.get_captures_for_source_since(source, since)
        if not captures:
            return []
        return self.get_records_for_captures(captures, kind)

    @_logs_storage_errors(default=lambda: None)
    def count(self) -> StoreCounts | None:
        """Row counts of all tables, or None if any count fails."""
        conn = self._connection()
        counts = {
            table: int(conn.execute(f'SELECT COUNT(*) AS n FROM "{table}"').fetchone()["n"])
            for table in ALL_TABLES
        }
        return StoreCounts(
            posts=counts[RECORD_TABLES[RecordKind.POST]],
            profiles=counts[RECORD_TABLES[RecordKind.PROFILE]],
            captures=counts[CAPTURES_TABLE],
        )

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    @_logs_storage_errors(default=lambda: False)
    def clear_source(self, source: str) -> bool:
        """Delete a source's captures. Records stay; other sources may share them."""
        conn = self._connection()
        with transaction(conn):
            cursor = conn.execute(
                f"DELETE FROM \"{CAPTURES_TABLE}\" WHERE json_extract(data, '$.source') = ?",
                (source,),
            )
        logger.info("Cleared %d captures of %s", cursor.rowcount, source)
        return True

    @_logs_storage_errors(default=lambda: False)
    def delete_all_records(self, kind: RecordKind) -> bool:
        conn = self._connection()
        with transaction(conn):
            conn.execute(f'DELETE FROM "{RECORD_TABLES[RecordKind(kind)]}"')
        return True

    @_logs_storage_errors(default=lambda: False)
    def delete_all_captures(self) -> bool:
        conn = self._connection()
        with transaction(conn):
            conn.execute(f'DELETE FROM "{CAPTURES_TABLE}"')
        return True

    def clear_all(self) -> bool:
        """Delete every capture, post and profile."""
        ok = self.delete_all_captures()
        ok = self.delete_all_records(RecordKind.POST) and ok
        ok = self.delete_all_records(RecordKind.PROFILE) and ok
        if ok:
            logger.info("Database cleared")
        return ok

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    @_logs_storage_errors(default=lambda: None)
    def export_all(self) -> bytes | None:
        """
        Serialize the whole store to a JSON document.

        Returns:
            UTF-8 encoded export, or None on failure
        """
        conn = self._connection()
        tables: dict[str, list[Any]] = {}
        for table in ALL_TABLES:
            rows = conn.execute(f'SELECT data FROM "{table}" ORDER BY key').fetchall()
            tables[table] = [json.loads(row["data"]) for row in rows]

        document = {
            "format": EXPORT_FORMAT,
            "schema_version": SCHEMA_VERSION,
            "exported_at": now_ms(),
            "tables": tables,
        }
        return _dumps(document).encode("utf-8")

    @_logs_storage_errors(default=lambda: False)
    def import_all(self, blob: bytes | str) -> bool:
        """
        Merge an export produced by export_all() into this store.

        Rows are upserted by primary key in one transaction, so a bad export
        changes nothing.

        Returns:
            True on success, False on failure
        """
        try:
            document = json.loads(blob)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Import is not valid JSON: {e}") from e

        if not isinstance(document, dict) or document.get("format") != EXPORT_FORMAT:
            raise StorageError("Import is not a twexport export")

        tables = document.get("tables")
        if not isinstance(tables, dict):
            raise StorageError("Import has no tables")

        batches: dict[str, list[tuple[str, str]]] = {}
        for table, rows in tables.items():
            if table not in PRIMARY_KEYS:
                logger.warning("Skipping unknown table in import: %s", table)
                continue
            primary = PRIMARY_KEYS[table]
            batch: list[tuple[str, str]] = []
            for row in rows or []:
                if not isinstance(row, dict) or not row.get(primary):
                    raise StorageError(f"Row without {primary} in {table}", table=table)
                batch.append((str(row[primary]), _dumps(row)))
            batches[table] = batch

        conn = self._connection()
        with transaction(conn):
            for table, batch in batches.items():
                conn.executemany(
                    f'INSERT INTO "{table}" (key, data) VALUES (?, ?) '
                    "ON CONFLICT(key) DO UPDATE SET data = excluded.data",
                    batch,
                )
        logger.info(
            "Imported %s",
            ", ".join(f"{len(batch)} {table}" for table, batch in batches.items()),
        )
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lookup_records(self, table: str, keys: Sequence[str]) -> dict[str, Record]:
        conn = self._connection()
        unique = list(dict.fromkeys(keys))
        found: dict[str, Record] = {}
        for start in range(0, len(unique), _LOOKUP_CHUNK):
            chunk = unique[start : start + _LOOKUP_CHUNK]
            placeholders = ", ".join("?" for _ in chunk)
            rows = conn.execute(
                f'SELECT key, data FROM "{table}" WHERE key IN ({placeholders})',
                chunk,
            ).fetchall()
            for row in rows:
                try:
                    found[row["key"]] = json.loads(row["data"])
                except ValueError:
                    # Treated as missing by the caller
                    logger.warning("Unreadable row %s in %s", row["key"], table)
        return found

    def _parse_captures(self, rows: Sequence[dict[str, Any]]) -> list[Capture]:
        captures: list[Capture] = []
        for row in rows:
            try:
                captures.append(Capture.model_validate_json(row["data"]))
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed capture row: %s",
                    e,
                    extra={"category": DataIntegrityWarning.__name__},
                )
        return captures

    def _log_error(self, error: Exception) -> None:
        logger.error("Database error: %s", error)
