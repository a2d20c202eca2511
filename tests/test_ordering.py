"""Tests for sort key comparison and timestamp helpers."""

import random
from datetime import datetime, timezone
from functools import cmp_to_key

from twexport.core.ordering import (
    compare_sort_keys,
    format_date_key,
    format_iso,
    from_epoch_ms,
    parse_twitter_datetime,
    to_epoch_ms,
)


class TestCompareSortKeys:
    """Tests for compare_sort_keys()."""

    def test_integer_strings_compare_numerically(self) -> None:
        """Test that long integer strings are not compared as text."""
        assert compare_sort_keys("1000000000000000001", "999") > 0
        assert compare_sort_keys("999", "1000000000000000001") < 0

    def test_mixed_int_and_string(self) -> None:
        """Test that an int and an integer string compare by value."""
        assert compare_sort_keys(10, "9") > 0
        assert compare_sort_keys("10", 10) == 0

    def test_non_numeric_keys_compare_as_text(self) -> None:
        """Test that opaque cursor keys fall back to string order."""
        assert compare_sort_keys("abc", "abd") < 0
        assert compare_sort_keys("b", "a") > 0

    def test_non_ascii_digits_are_text(self) -> None:
        """Test that keys like superscript digits compare as text instead of raising."""
        assert compare_sort_keys("\u00b2", "1") > 0
        assert compare_sort_keys("\u0663", "\u00b2") > 0
        assert compare_sort_keys("-", "1") > 0

    def test_integer_keys_sort_before_text_keys(self) -> None:
        assert compare_sort_keys("10", "1a") < 0
        assert compare_sort_keys("2", "1a") < 0
        assert compare_sort_keys("2", "10") < 0

    def test_mixed_keys_sort_the_same_from_any_input_order(self) -> None:
        """Test that sorting a shuffled mix of keys always gives one result."""
        keys = ["2", "10", "1a", "-3", 7, "abc", "\u00b2", None, "b"]
        expected = ["-3", "2", 7, "10", "1a", "abc", "b", "\u00b2", None]
        rng = random.Random(1234)
        for _ in range(25):
            shuffled = keys[:]
            rng.shuffle(shuffled)
            assert sorted(shuffled, key=cmp_to_key(compare_sort_keys)) == expected

    def test_missing_keys_sort_last(self) -> None:
        """Test that a present key sorts before a missing one."""
        assert compare_sort_keys("1", None) < 0
        assert compare_sort_keys(None, "1") > 0
        assert compare_sort_keys(None, None) == 0


class TestTimestamps:
    """Tests for timestamp parsing and formatting."""

    def test_parse_source_format(self) -> None:
        """Test parsing the legacy source timestamp format."""
        parsed = parse_twitter_datetime("Wed Oct 10 20:19:24 +0000 2018")
        assert parsed == datetime(2018, 10, 10, 20, 19, 24, tzinfo=timezone.utc)

    def test_parse_converts_offset_to_utc(self) -> None:
        """Test that a non-UTC offset is normalized."""
        parsed = parse_twitter_datetime("Wed Oct 10 23:30:00 +0500 2018")
        assert parsed == datetime(2018, 10, 10, 18, 30, tzinfo=timezone.utc)

    def test_parse_iso(self) -> None:
        """Test that ISO-8601 input is accepted too."""
        parsed = parse_twitter_datetime("2024-01-01T00:00:00Z")
        assert parsed == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_parse_invalid(self) -> None:
        """Test that garbage and missing values parse to None."""
        assert parse_twitter_datetime("not a date") is None
        assert parse_twitter_datetime("") is None
        assert parse_twitter_datetime(None) is None

    def test_format_iso_millisecond_precision(self) -> None:
        """Test ISO formatting with milliseconds and a Z suffix."""
        moment = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
        assert format_iso(moment) == "2024-01-02T03:04:05.678Z"

    def test_missing_values_format_as_epoch(self) -> None:
        """Test the epoch fallback for missing timestamps."""
        assert format_iso(None) == "1970-01-01T00:00:00.000Z"
        assert format_date_key(None) == "1970-01-01"
        assert to_epoch_ms(None) == 0

    def test_date_key_uses_utc(self) -> None:
        """Test that the date key is the UTC calendar date."""
        parsed = parse_twitter_datetime("Mon Jan 01 23:30:00 -0200 2024")
        assert format_date_key(parsed) == "2024-01-02"

    def test_epoch_ms_conversion(self) -> None:
        """Test conversion to and from epoch milliseconds."""
        moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert to_epoch_ms(moment) == 1704067200000
        assert from_epoch_ms(1704067200000) == moment
