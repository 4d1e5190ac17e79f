"""
Date normalization for TICKWISE.

Every feed, price bar and signal is keyed by a canonical ``YYYY-MM-DD``
string. Canonical strings sort lexicographically in date order, so legs and
chains compare dates as plain strings.
"""

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any

import pandas as pd

# Unix timestamps at or above this magnitude are milliseconds, below it seconds.
TIMESTAMP_MS_THRESHOLD = 1e11

_NUMERIC_RE = re.compile(r"^\d+(\.\d+)?$")
_DIGIT_RE = re.compile(r"\d")
DATE_FORMAT = "%Y-%m-%d"


class UnparseableDateError(ValueError):
    """Raised when a date value cannot be normalized."""

    pass


def _from_timestamp(number: float) -> str:
    if not math.isfinite(number):
        return ""
    seconds = number / 1000.0 if abs(number) >= TIMESTAMP_MS_THRESHOLD else number
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime(DATE_FORMAT)
    except (OverflowError, OSError, ValueError):
        return ""


def normalize_date(value: Any) -> str:
    """
    Convert a date-like value to a canonical ``YYYY-MM-DD`` string.

    Accepts datetimes (naive values are taken as UTC), dates, pandas
    Timestamps, Unix timestamps in seconds or milliseconds (as numbers or
    numeric strings), and ISO-ish strings.

    Args:
        value: Date-like value

    Returns:
        Canonical date string, or "" when the value is unusable
    """
    if value is None:
        return ""

    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return ""
        if value.tzinfo is not None:
            value = value.tz_convert("UTC")
        return value.strftime(DATE_FORMAT)

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime(DATE_FORMAT)

    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)

    if isinstance(value, bool):
        return ""

    if isinstance(value, (int, float)):
        return _from_timestamp(float(value))

    text = str(value).strip()
    if not text:
        return ""

    if _NUMERIC_RE.match(text):
        return _from_timestamp(float(text))

    # pandas resolves "now" and "today" to the wall clock
    if not _DIGIT_RE.search(text):
        return ""

    try:
        parsed = pd.to_datetime(text, utc=True)
    except (ValueError, TypeError, OverflowError):
        return ""
    if pd.isna(parsed):
        return ""
    return parsed.strftime(DATE_FORMAT)


def add_days(value: Any, days: int) -> str:
    """
    Add calendar days to a date-like value.

    Raises:
        UnparseableDateError: If the value cannot be normalized
    """
    iso = normalize_date(value)
    if not iso:
        raise UnparseableDateError(f"Cannot parse date: {value!r}")
    shifted = datetime.strptime(iso, DATE_FORMAT) + timedelta(days=days)
    return shifted.strftime(DATE_FORMAT)


def today_utc() -> str:
    """Current UTC date as a canonical string."""
    return datetime.now(timezone.utc).strftime(DATE_FORMAT)
