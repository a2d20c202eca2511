"""
SQLite connection management for the capture store.

Connections run in autocommit mode (``isolation_level=None``) so that
transactions are always explicit: every batch write and every schema
version upgrade goes through :func:`transaction`, which either commits
the whole block or rolls it back.

Usage:
    from twexport.core.store.connection import open_connection, transaction

    conn = open_connection(db_path)
    with transaction(conn):
        conn.executemany("INSERT ...", rows)
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

MEMORY_PATH = ":memory:"


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Rows come back keyed by column name."""
    return {column[0]: value for column, value in zip(cursor.description, row)}


def configure_connection(conn: sqlite3.Connection) -> None:
    """Switch to WAL journaling and dict rows."""
    conn.execute("PRAGMA journal_mode=WAL")
    conn.row_factory = dict_factory


def open_connection(db_path: Path | str) -> sqlite3.Connection:
    """
    Open and configure a connection, creating parent directories as needed.

    Args:
        db_path: Path to the SQLite database file, or ":memory:"

    Returns:
        Configured SQLite connection in autocommit mode
    """
    if str(db_path) != MEMORY_PATH:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), isolation_level=None)
    configure_connection(conn)
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run a block inside a single write transaction.

    Commits on success, rolls back on any exception and re-raises it.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")
