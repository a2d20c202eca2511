"""
Custom exceptions for twexport.

This module defines the exception hierarchy shared by the capture store,
the vault client and the sync scheduler, providing structured error
handling with context preservation.

Exception Hierarchy:
    TwexportError (base)
    ├── StorageError (local database read/write/serialization failures)
    │   └── MigrationError (schema upgrade failures at open time)
    ├── RemoteRequestError (vault transport or non-success responses)
    └── ConfigurationError (missing or invalid settings, e.g. no token)

    DataIntegrityWarning (UserWarning) is not raised; it is the category
    attached to log records when a stored record is dropped at read time.

Example:
    >>> from twexport.core.exceptions import RemoteRequestError
    >>> try:
    ...     raise RemoteRequestError("GET Tweets/2024-01-01.jsonl failed (500)", status=500)
    ... except RemoteRequestError as e:
    ...     print(e.context["status"])
    500
"""


class TwexportError(Exception):
    """
    Base exception for all twexport errors.

    Attributes:
        message: Human-readable error message
        context: Optional dictionary of additional context
    """

    def __init__(self, message: str, **context: object) -> None:
        """
        Initialize an error with message and context.

        Args:
            message: Human-readable error message
            **context: Additional context as keyword arguments
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message


class StorageError(TwexportError):
    """
    Exception for local capture store failures.

    Raised inside the store when SQLite or JSON serialization fails. The
    public store methods catch it, log it and return a sentinel value, so
    callers never see it unless they use the low-level helpers directly.

    Example:
        >>> try:
        ...     conn.executemany(sql, rows)
        ... except sqlite3.Error as e:
        ...     raise StorageError("Failed to upsert posts", table="records_posts") from e
    """


class MigrationError(StorageError):
    """
    Exception for schema upgrade failures.

    Raised when an upgrade routine fails or when the database was written
    by a newer schema version than this build knows about. The version bump
    is rolled back together with the failed routine.

    Attributes:
        version: Schema version whose upgrade failed
    """

    def __init__(self, message: str, version: int | None = None, **context: object) -> None:
        super().__init__(message, version=version, **context)
        self.version = version


class RemoteRequestError(TwexportError):
    """
    Exception for vault request failures.

    Raised by the vault client on transport failures, and by the sync engine
    when a response has a non-success status. The sync engine records the
    message in the summary's error list for the affected bucket only.

    Attributes:
        path: Vault path that was requested
        status: HTTP status code, or None for transport failures
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        status: int | None = None,
        **context: object,
    ) -> None:
        super().__init__(message, path=path, status=status, **context)
        self.path = path
        self.status = status


class ConfigurationError(TwexportError):
    """Exception for missing or invalid configuration (e.g. no vault token)."""


class DataIntegrityWarning(UserWarning):
    """Category for stored records that are structurally empty or invalid."""


__all__ = [
    "TwexportError",
    "StorageError",
    "MigrationError",
    "RemoteRequestError",
    "ConfigurationError",
    "DataIntegrityWarning",
]
