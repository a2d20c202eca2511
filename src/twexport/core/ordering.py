"""
Identifier, ordering and timestamp helpers.

Sort keys are opaque values supplied by a capture source (for timelines this
is the cursor-style ``sortIndex``, a large integer serialized as a string).
Timestamps coming from the source use the legacy Twitter format
``"Wed Oct 10 20:19:24 +0000 2018"``; everything stored locally uses
epoch milliseconds.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Union

SortKey = Union[str, int]

TWITTER_DATETIME_FORMAT = "%a %b %d %H:%M:%S %z %Y"
EPOCH_ZERO = datetime(1970, 1, 1, tzinfo=timezone.utc)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _as_int(value: SortKey) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = value.strip()
    digits = text[1:] if text.startswith("-") else text
    if digits.isascii() and digits.isdecimal():
        return int(text)
    return None


def sort_key_rank(value: SortKey) -> tuple[int, int | str]:
    """Total-order rank: integer keys by value, then all other keys as text."""
    as_int = _as_int(value)
    if as_int is not None:
        return (0, as_int)
    return (1, str(value))


def compare_sort_keys(a: SortKey | None, b: SortKey | None) -> int:
    """
    Compare two sort keys, returning a negative, zero or positive int.

    Integer keys (including integer strings of any length) compare
    numerically and sort before every non-integer key; non-integer keys
    compare as text. A present key sorts before a missing one, and two
    missing keys are equal.

    Example:
        >>> compare_sort_keys("1000000000000000001", "999")
        1
        >>> compare_sort_keys(None, "1")
        1
    """
    if a is None and b is None:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1

    rank_a, rank_b = sort_key_rank(a), sort_key_rank(b)
    return (rank_a > rank_b) - (rank_a < rank_b)


def parse_twitter_datetime(value: str | None) -> datetime | None:
    """
    Parse a source timestamp into an aware UTC datetime.

    Returns None when the value is missing or does not match the source
    format. ISO-8601 strings are accepted as well, since some endpoints
    already use them.
    """
    if not value or not isinstance(value, str):
        return None

    try:
        return datetime.strptime(value, TWITTER_DATETIME_FORMAT).astimezone(timezone.utc)
    except ValueError:
        pass

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_epoch_ms(value: datetime | None) -> int:
    """Convert a datetime to epoch milliseconds (0 when missing)."""
    if value is None:
        return 0
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def format_iso(value: datetime | None) -> str:
    """
    Format as ISO-8601 with millisecond precision and a ``Z`` suffix.

    A missing value formats as the epoch, which is the defined fallback for
    unparseable source timestamps.
    """
    moment = (value or EPOCH_ZERO).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def format_date_key(value: datetime | None) -> str:
    """UTC calendar date (``YYYY-MM-DD``), epoch date when missing."""
    return (value or EPOCH_ZERO).astimezone(timezone.utc).strftime("%Y-%m-%d")
