"""
SQLite schema and version runner for the capture store.

The store keeps three object tables, each row being a JSON document keyed
by its primary field:

- records_posts: timeline posts, keyed by rest_id
- records_profiles: user profiles, keyed by rest_id
- captures: provenance entries, keyed by '{source}-{record_id}'
- schema_info: one row per applied schema version

Secondary indexes are expression indexes over JSON field paths, so a
table's index set is declared simply as a list of dotted paths (the first
path is the primary key).

Versioning rules:
- SCHEMA_VERSIONS is append-only. A version whose upgrade routine has been
  released must never be edited, because databases already at that version
  will not run it again while older ones still will. Fixes ship as a new,
  higher version.
- At open, versions above the persisted one run in ascending order. Each
  version's index changes, upgrade routine and version bump commit in one
  transaction, so a failed upgrade leaves the previous version intact.
- Upgrade routines must be idempotent: they detect rows that were already
  migrated and leave them alone.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from twexport.core.exceptions import MigrationError
from twexport.core.records import RecordKind
from twexport.core.store.connection import transaction
from twexport.core.store.migrations import migration_20250609

logger = logging.getLogger(__name__)

POSTS_TABLE = "records_posts"
PROFILES_TABLE = "records_profiles"
CAPTURES_TABLE = "captures"

RECORD_TABLES: dict[RecordKind, str] = {
    RecordKind.POST: POSTS_TABLE,
    RecordKind.PROFILE: PROFILES_TABLE,
}

ALL_TABLES = (POSTS_TABLE, PROFILES_TABLE, CAPTURES_TABLE)

PRIMARY_KEYS: dict[str, str] = {
    POSTS_TABLE: "rest_id",
    PROFILES_TABLE: "rest_id",
    CAPTURES_TABLE: "id",
}

POST_INDEX_PATHS = (
    "rest_id",
    "private_fields.created_at",
    "private_fields.updated_at",
    "private_fields.media_count",
    "core.user_results.result.core.screen_name",
    "legacy.favorite_count",
    "legacy.retweet_count",
    "legacy.bookmark_count",
    "legacy.quote_count",
    "legacy.reply_count",
    "views.count",
    "legacy.favorited",
    "legacy.retweeted",
    "legacy.bookmarked",
)

PROFILE_INDEX_PATHS = (
    "rest_id",
    "private_fields.created_at",
    "private_fields.updated_at",
    "core.screen_name",
    "legacy.followers_count",
    "legacy.friends_count",
    "legacy.statuses_count",
    "legacy.favourites_count",
    "legacy.listed_count",
    "verification.verified_type",
    "is_blue_verified",
    "relationship_perspectives.following",
    "relationship_perspectives.followed_by",
)

CAPTURE_INDEX_PATHS = ("id", "source", "kind", "created_at", "sort_index")

SCHEMA_INFO_DDL = """
CREATE TABLE IF NOT EXISTS schema_info (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    description TEXT
);
"""


@dataclass(frozen=True)
class SchemaVersion:
    """
    One released schema version.

    Attributes:
        version: Strictly increasing version number
        stores: Table name -> index paths (first path is the primary key)
        upgrade: Optional idempotent routine run inside the version's transaction
        description: Recorded in schema_info
    """

    version: int
    stores: Mapping[str, Sequence[str]] = field(default_factory=dict)
    upgrade: Callable[[sqlite3.Connection], None] | None = None
    description: str = ""


SCHEMA_VERSIONS: tuple[SchemaVersion, ...] = (
    SchemaVersion(
        version=1,
        stores={
            POSTS_TABLE: ("rest_id",),
            PROFILES_TABLE: ("rest_id",),
            CAPTURES_TABLE: ("id", "source", "kind", "created_at"),
        },
        description="Object tables for posts, profiles and captures",
    ),
    SchemaVersion(
        version=2,
        stores={
            POSTS_TABLE: POST_INDEX_PATHS,
            PROFILES_TABLE: PROFILE_INDEX_PATHS,
            CAPTURES_TABLE: ("id", "source", "kind", "created_at"),
        },
        upgrade=migration_20250609,
        description="Record index sets, private field backfill, capture key rename",
    ),
    # v3: sort_index on captures for timeline ordering
    SchemaVersion(
        version=3,
        stores={
            POSTS_TABLE: POST_INDEX_PATHS,
            PROFILES_TABLE: PROFILE_INDEX_PATHS,
            CAPTURES_TABLE: CAPTURE_INDEX_PATHS,
        },
        description="Capture sort_index index",
    ),
)

SCHEMA_VERSION = SCHEMA_VERSIONS[-1].version


def index_name(table: str, path: str) -> str:
    return f"idx_{table}_{path.replace('.', '_')}"


def declare_store(conn: sqlite3.Connection, table: str, paths: Sequence[str]) -> None:
    """
    Bring a table and its expression indexes in line with ``paths``.

    Creates the table if missing, drops indexes no longer declared and
    creates the declared ones. Safe to call repeatedly.
    """
    conn.execute(
        f'CREATE TABLE IF NOT EXISTS "{table}" (key TEXT PRIMARY KEY, data TEXT NOT NULL)'
    )

    wanted = {index_name(table, path): path for path in paths[1:]}
    existing = {
        row["name"]
        for row in conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = ? "
            "AND name LIKE 'idx_%'",
            (table,),
        ).fetchall()
    }

    for name in sorted(existing - wanted.keys()):
        conn.execute(f'DROP INDEX IF EXISTS "{name}"')

    for name, path in wanted.items():
        conn.execute(
            f'CREATE INDEX IF NOT EXISTS "{name}" ON "{table}" '
            f"(json_extract(data, '$.{path}'))"
        )


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """
    Get the current schema version from the database.

    Returns:
        Current schema version, or None if schema_info table doesn't exist
    """
    try:
        row = conn.execute("SELECT MAX(version) AS version FROM schema_info").fetchone()
    except sqlite3.OperationalError:
        # schema_info table doesn't exist
        return None
    if row is None:
        return None
    version = row["version"] if isinstance(row, dict) else row[0]
    return int(version) if version is not None else None


def run_migrations(
    conn: sqlite3.Connection,
    versions: Sequence[SchemaVersion] = SCHEMA_VERSIONS,
) -> int:
    """
    Upgrade the database to the newest declared version.

    Args:
        conn: Autocommit-mode connection (see connection.open_connection)
        versions: Ascending, append-only version list

    Returns:
        The schema version the database is at afterwards

    Raises:
        MigrationError: If the list is malformed, the database is newer than
            this build, or an upgrade routine fails
    """
    if not versions:
        raise MigrationError("No schema versions declared")

    numbers = [v.version for v in versions]
    if numbers != sorted(set(numbers)):
        raise MigrationError(f"Schema versions must be strictly increasing: {numbers}")

    current = get_schema_version(conn) or 0
    target = versions[-1].version

    if current > target:
        raise MigrationError(
            f"Database schema version {current} is newer than supported version {target}",
            version=current,
        )

    for schema_version in versions:
        if schema_version.version <= current:
            continue

        logger.info("Upgrading database schema to version %d...", schema_version.version)
        try:
            with transaction(conn):
                conn.execute(SCHEMA_INFO_DDL)
                for table, paths in schema_version.stores.items():
                    declare_store(conn, table, paths)
                if schema_version.upgrade is not None:
                    schema_version.upgrade(conn)
                conn.execute(
                    "INSERT OR REPLACE INTO schema_info (version, description) VALUES (?, ?)",
                    (schema_version.version, schema_version.description),
                )
        except MigrationError:
            raise
        except Exception as e:
            raise MigrationError(
                f"Schema upgrade to version {schema_version.version} failed: {e}",
                version=schema_version.version,
            ) from e
        logger.info("Database upgraded to version %d", schema_version.version)

    # Replay the newest index set; a no-op when already up to date
    with transaction(conn):
        for table, paths in versions[-1].stores.items():
            declare_store(conn, table, paths)

    return target
