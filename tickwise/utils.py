"""
Utility functions for TICKWISE.
"""

import math
from typing import Any, Iterable, Mapping, Optional


def to_float(value: Any) -> Optional[float]:
    """Coerce a feed value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def first_present(row: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """First non-None value among keys, in order."""
    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return None


def format_percentage(value: Optional[float], decimals: int = 2) -> str:
    """
    Format a percent value.

    Args:
        value: Percent value (5.0 = 5%)
        decimals: Decimal places

    Returns:
        Formatted string like "+5.00%", or "—" when missing
    """
    if value is None:
        return "—"
    sign = "+" if value > 0 else ""
    return f"{sign}{value:.{decimals}f}%"


def format_price(value: Optional[float], decimals: int = 2) -> str:
    """Format a price, or "—" when missing."""
    if value is None:
        return "—"
    return f"{value:,.{decimals}f}"
