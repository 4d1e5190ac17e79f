"""
Per-ticker technical score index used by the technical-drop exit rule.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

import pandas as pd

from .dates import DATE_FORMAT
from .signals import RecommendationRecord


def _empty_scores() -> pd.Series:
    return pd.Series([], index=pd.DatetimeIndex([]), dtype=float)


@dataclass(eq=False)
class TechnicalIndex:
    """Technical scores for one ticker on a sorted DatetimeIndex."""

    ticker: str = ""
    scores: pd.Series = field(default_factory=_empty_scores)

    @classmethod
    def from_scores(cls, ticker: str, by_date: Dict[str, float]) -> "TechnicalIndex":
        if not by_date:
            return cls(ticker=ticker)
        scores = pd.Series(list(by_date.values()), index=pd.DatetimeIndex(list(by_date)), dtype=float)
        return cls(ticker=ticker, scores=scores.sort_index())

    @classmethod
    def build(
        cls,
        records: Iterable[RecommendationRecord],
        ticker: str,
    ) -> "TechnicalIndex":
        """Index the ticker's records that carry a finite technical score."""
        return build_all(records, [ticker])[ticker]

    def first_drop_below(self, start_date: str, threshold: float) -> Optional[str]:
        """First date >= start_date whose score is below threshold."""
        window = self.scores.loc[pd.Timestamp(start_date):]
        below = window[window < threshold]
        if below.empty:
            return None
        return below.index[0].strftime(DATE_FORMAT)


def build_all(
    records: Iterable[RecommendationRecord],
    tickers: Iterable[str],
) -> Dict[str, TechnicalIndex]:
    """
    Build technical indexes for several tickers in one pass.

    The first record for a (ticker, date) wins.
    """
    wanted = set(tickers)
    by_ticker: Dict[str, Dict[str, float]] = {t: {} for t in wanted}
    for record in records:
        if record.ticker in wanted and record.technical is not None:
            by_ticker[record.ticker].setdefault(record.signal_date, record.technical)
    return {ticker: TechnicalIndex.from_scores(ticker, scores) for ticker, scores in by_ticker.items()}
