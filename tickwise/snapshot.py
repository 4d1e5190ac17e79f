"""
Current-day snapshot views: summary counts, derived forecast percentages,
top signals and min/max score filters.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .signals import Recommendation, RecommendationRecord

# Columns that support min/max filtering.
FILTER_COLUMNS = (
    "tickwise_score",
    "technical",
    "fundamental_score",
    "ai1m_lower_pct",
    "ai1m_upper_pct",
    "analyst_1y_pct",
)

Range = Tuple[Optional[float], Optional[float]]


@dataclass(frozen=True)
class SnapshotSummary:
    total: int
    buy_count: int
    hold_count: int
    sell_count: int
    avg_buy_score: float


def summarize(records: List[RecommendationRecord]) -> SnapshotSummary:
    """Recommendation counts and the average tickwise score of BUYs."""
    buys = [r for r in records if r.recommendation is Recommendation.BUY]
    avg_buy = sum(r.score for r in buys) / len(buys) if buys else 0.0
    return SnapshotSummary(
        total=len(records),
        buy_count=len(buys),
        hold_count=sum(1 for r in records if r.recommendation is Recommendation.HOLD),
        sell_count=sum(1 for r in records if r.recommendation is Recommendation.SELL),
        avg_buy_score=avg_buy,
    )


def _pct_from_close(target: Optional[float], close: Optional[float]) -> Optional[float]:
    if target is None or not close:
        return None
    return (target - close) * 100 / close


def derive_row(record: RecommendationRecord) -> Dict[str, object]:
    """Flatten a record with forecast bands expressed as % from close."""
    return {
        "ticker": record.ticker,
        "security": record.security,
        "date": record.signal_date,
        "recommendation": record.recommendation.value if record.recommendation else "",
        "close": record.close,
        "tickwise_score": record.tickwise_score,
        "technical": record.technical,
        "fundamental_score": record.fundamental_score,
        "ai1m_lower_pct": _pct_from_close(record.forecast_1m_p5, record.close),
        "ai1m_upper_pct": _pct_from_close(record.forecast_1m_p95, record.close),
        "analyst_1y_pct": _pct_from_close(record.analysts_forecast, record.close),
    }


def top_signals(
    records: Iterable[RecommendationRecord],
    recommendation: Recommendation,
    n: int = 4,
) -> List[RecommendationRecord]:
    """Highest-scoring records with the given recommendation."""
    matching = [r for r in records if r.recommendation is recommendation]
    return sorted(matching, key=lambda r: r.score, reverse=True)[:n]


def score_ranges(rows: Iterable[Mapping[str, object]]) -> Dict[str, Range]:
    """Observed (min, max) per filter column; (None, None) if no values."""
    lows: Dict[str, Optional[float]] = {c: None for c in FILTER_COLUMNS}
    highs: Dict[str, Optional[float]] = {c: None for c in FILTER_COLUMNS}
    for row in rows:
        for column in FILTER_COLUMNS:
            value = row.get(column)
            if value is None:
                continue
            if lows[column] is None or value < lows[column]:
                lows[column] = value
            if highs[column] is None or value > highs[column]:
                highs[column] = value
    return {c: (lows[c], highs[c]) for c in FILTER_COLUMNS}


def within_range(value: float, bounds: Range) -> bool:
    low, high = bounds
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def filter_rows(
    rows: Iterable[Mapping[str, object]],
    filters: Mapping[str, Range],
    recommendation: Optional[Recommendation] = None,
    search: str = "",
) -> List[Mapping[str, object]]:
    """
    Apply recommendation, text search and min/max filters.

    Rows missing a filtered value pass that filter.
    """
    term = search.strip().lower()
    result = []
    for row in rows:
        if recommendation is not None and row.get("recommendation") != recommendation.value:
            continue
        if term and term not in str(row.get("ticker", "")).lower() and term not in str(
            row.get("security", "")
        ).lower():
            continue
        if all(
            row.get(column) is None or within_range(row[column], bounds)
            for column, bounds in filters.items()
        ):
            result.append(row)
    return result
