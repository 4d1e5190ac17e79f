"""
Tests for date normalization.
"""

from datetime import date, datetime, timedelta, timezone

import pandas as pd
import pytest

from tickwise.dates import (
    TIMESTAMP_MS_THRESHOLD,
    UnparseableDateError,
    add_days,
    normalize_date,
)


class TestNormalizeDate:
    """Test conversion to canonical YYYY-MM-DD."""

    def test_canonical_is_idempotent(self):
        """Canonical dates normalize to themselves."""
        for ts in pd.date_range("2019-12-25", "2021-03-05", freq="D"):
            canonical = ts.strftime("%Y-%m-%d")
            assert normalize_date(canonical) == canonical

    def test_none_and_empty(self):
        """Missing values give an empty string."""
        assert normalize_date(None) == ""
        assert normalize_date("") == ""
        assert normalize_date("   ") == ""

    def test_invalid_string(self):
        """Garbage strings give an empty string instead of raising."""
        assert normalize_date("not a date") == ""
        assert normalize_date("2024-13-45") == ""

    @pytest.mark.parametrize("keyword", ["now", "today", " NOW ", "Today"])
    def test_relative_keywords_rejected(self, keyword):
        """Wall-clock keywords are not dates."""
        assert normalize_date(keyword) == ""
        with pytest.raises(UnparseableDateError):
            add_days(keyword, 1)

    def test_bool_is_not_a_timestamp(self):
        """Booleans are rejected rather than read as 0/1 seconds."""
        assert normalize_date(True) == ""

    def test_native_date(self):
        """date objects keep their calendar date."""
        assert normalize_date(date(2024, 2, 29)) == "2024-02-29"

    def test_aware_datetime_uses_utc(self):
        """Aware datetimes are converted to UTC before taking the date."""
        value = datetime(2024, 3, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        assert normalize_date(value) == "2024-03-02"

    def test_naive_datetime(self):
        """Naive datetimes are taken as UTC."""
        assert normalize_date(datetime(2024, 3, 1, 23, 30)) == "2024-03-01"

    def test_pandas_timestamp(self):
        """pandas Timestamps are accepted."""
        assert normalize_date(pd.Timestamp("2024-06-30 18:00", tz="UTC")) == "2024-06-30"

    def test_iso_string_with_offset(self):
        """ISO strings with offsets are read in UTC."""
        assert normalize_date("2024-01-01T22:00:00-05:00") == "2024-01-02"
        assert normalize_date("2024-01-01T10:00:00Z") == "2024-01-01"

    def test_epoch_seconds(self):
        """Numbers below the threshold are seconds."""
        assert normalize_date(1704067200) == "2024-01-01"
        assert normalize_date("1704067200") == "2024-01-01"
        assert normalize_date(1704067200.5) == "2024-01-01"

    def test_epoch_milliseconds(self):
        """Numbers at or above the threshold are milliseconds."""
        assert normalize_date(1704067200000) == "2024-01-01"
        assert normalize_date("1704067200000") == "2024-01-01"

    def test_threshold_boundary(self):
        """The unit switches exactly at 1e11."""
        assert TIMESTAMP_MS_THRESHOLD == 1e11

        just_below = 99999999999
        expected_seconds = datetime.fromtimestamp(just_below, tz=timezone.utc).strftime("%Y-%m-%d")
        assert normalize_date(just_below) == expected_seconds
        assert expected_seconds.startswith("5138")

        # 1e11 ms == 1e8 s
        assert normalize_date(100000000000) == "1973-03-03"


class TestAddDays:
    """Test calendar arithmetic."""

    def test_forward_across_leap_day(self):
        assert add_days("2024-02-28", 2) == "2024-03-01"

    def test_backward_across_year(self):
        assert add_days(date(2024, 1, 1), -1) == "2023-12-31"

    def test_accepts_timestamps(self):
        assert add_days(1704067200, 30) == "2024-01-31"

    def test_unparseable_raises(self):
        """Unparseable input is an explicit error, not a pass-through."""
        with pytest.raises(UnparseableDateError):
            add_days("not a date", 1)
        with pytest.raises(ValueError):
            add_days(None, 1)
