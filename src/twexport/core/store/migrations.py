"""
Released upgrade routines.

Each routine runs inside the transaction of the schema version it is
attached to (see schema.SCHEMA_VERSIONS). Once released, a routine is
frozen: fixes go into a new routine attached to a new version.
"""

from __future__ import annotations

import json
import logging
import sqlite3

from twexport.core.ordering import now_ms
from twexport.core.records import PRIVATE_FIELDS_KEY, RecordKind, compute_private_fields

logger = logging.getLogger(__name__)

_RECORD_TABLES = (
    ("records_posts", RecordKind.POST),
    ("records_profiles", RecordKind.PROFILE),
)

# Capture keys written by the first releases, and their current names
_LEGACY_CAPTURE_KEYS = {
    "extension": "source",
    "type": "kind",
    "data_key": "record_id",
}

_LEGACY_KIND_VALUES = {"tweet": "post", "user": "profile"}


def migration_20250609(conn: sqlite3.Connection) -> None:
    """
    Backfill private fields and rename legacy capture keys.

    - Records stored before the annotation block existed get one computed.
      Records that already have it are skipped.
    - Captures written with ``extension``/``type``/``data_key`` are rewritten
      with ``source``/``kind``/``record_id``. Already renamed rows have no
      ``extension`` key and are skipped.
    """
    updated_at = now_ms()

    for table, kind in _RECORD_TABLES:
        rows = conn.execute(
            f'SELECT key, data FROM "{table}" '
            f"WHERE json_extract(data, '$.{PRIVATE_FIELDS_KEY}') IS NULL"
        ).fetchall()
        for row in rows:
            record = json.loads(row["data"])
            record[PRIVATE_FIELDS_KEY] = compute_private_fields(kind, record, updated_at)
            conn.execute(
                f'UPDATE "{table}" SET data = ? WHERE key = ?',
                (json.dumps(record, ensure_ascii=False), row["key"]),
            )
        if rows:
            logger.info("Backfilled private fields on %d rows of %s", len(rows), table)

    rows = conn.execute(
        "SELECT key, data FROM captures WHERE json_extract(data, '$.extension') IS NOT NULL"
    ).fetchall()
    for row in rows:
        capture = json.loads(row["data"])
        for old, new in _LEGACY_CAPTURE_KEYS.items():
            if old in capture:
                capture[new] = capture.pop(old)
        capture["kind"] = _LEGACY_KIND_VALUES.get(capture.get("kind"), capture.get("kind"))
        conn.execute(
            "UPDATE captures SET data = ? WHERE key = ?",
            (json.dumps(capture, ensure_ascii=False), row["key"]),
        )
    if rows:
        logger.info("Renamed legacy keys on %d captures", len(rows))
