"""
Time series index over daily price bars.

Open and close availability are indexed separately: bars assembled from
heterogeneous sources can carry a close without an open (or vice versa), and
fills must use the open series while marks use the close series.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import pandas as pd

from .dates import DATE_FORMAT, normalize_date
from .utils import first_present, to_float

logger = logging.getLogger(__name__)

_DATE_KEYS = ("date", "Date", "time", "Time")


def _empty_series() -> pd.Series:
    return pd.Series([], index=pd.DatetimeIndex([]), dtype=float)


def _to_series(prices: Dict[str, float]) -> pd.Series:
    if not prices:
        return _empty_series()
    series = pd.Series(list(prices.values()), index=pd.DatetimeIndex(list(prices)), dtype=float)
    return series.sort_index()


@dataclass(frozen=True)
class PriceBar:
    """One daily OHLC bar. Missing or non-finite prices are None."""

    date: str
    open: Optional[float]
    high: Optional[float]
    low: Optional[float]
    close: Optional[float]
    volume: float = 0.0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Optional["PriceBar"]:
        """Parse a feed row; returns None when the date is unusable."""
        if not isinstance(row, Mapping):
            return None
        bar_date = normalize_date(first_present(row, _DATE_KEYS))
        if not bar_date:
            return None
        return cls(
            date=bar_date,
            open=to_float(first_present(row, ("Open", "open"))),
            high=to_float(first_present(row, ("High", "high"))),
            low=to_float(first_present(row, ("Low", "low"))),
            close=to_float(first_present(row, ("Close", "close"))),
            volume=to_float(first_present(row, ("Volume", "volume"))) or 0.0,
        )


@dataclass(eq=False)
class PriceIndex:
    """
    Point-in-time price lookups for one ticker.

    Closes and opens are float Series on sorted DatetimeIndexes, so lookups
    are O(log n) via .asof() and searchsorted.
    """

    closes: pd.Series = field(default_factory=_empty_series)
    opens: pd.Series = field(default_factory=_empty_series)

    @classmethod
    def build(cls, rows: Iterable[Any]) -> "PriceIndex":
        """
        Build an index from raw feed rows or PriceBar objects.

        Rows with unparseable dates are dropped. A row contributes to the
        close side only with a finite close, and to the open side only with
        a finite open.
        """
        by_close: Dict[str, float] = {}
        by_open: Dict[str, float] = {}
        dropped = 0

        for row in rows or []:
            bar = row if isinstance(row, PriceBar) else PriceBar.from_row(row)
            if bar is None:
                dropped += 1
                continue
            if bar.close is not None:
                by_close[bar.date] = bar.close
            if bar.open is not None:
                by_open[bar.date] = bar.open
            if bar.close is None and bar.open is None:
                dropped += 1

        if dropped:
            logger.debug(f"Dropped {dropped} unusable price rows")

        return cls(closes=_to_series(by_close), opens=_to_series(by_open))

    @property
    def is_empty(self) -> bool:
        return self.closes.empty and self.opens.empty

    @property
    def close_dates(self) -> List[str]:
        return list(self.closes.index.strftime(DATE_FORMAT))

    @property
    def open_dates(self) -> List[str]:
        return list(self.opens.index.strftime(DATE_FORMAT))

    def close_at_or_before(self, target: str) -> Optional[float]:
        """Close of the latest bar dated on or before target."""
        if self.closes.empty:
            return None
        val = self.closes.asof(pd.Timestamp(target))
        if pd.isna(val):
            return None
        return float(val)

    def open_at_or_after(self, target: str) -> Optional[Tuple[str, float]]:
        """Earliest (date, open) on or after target with a finite open."""
        pos = self.opens.index.searchsorted(pd.Timestamp(target), side="left")
        for ts_date, price in self.opens.iloc[pos:].items():
            if pd.isna(price):
                continue
            return ts_date.strftime(DATE_FORMAT), float(price)
        return None

    def latest_close(self) -> Optional[Tuple[str, float]]:
        """Most recent (date, close), the hold-to-latest baseline."""
        if self.closes.empty:
            return None
        return self.closes.index[-1].strftime(DATE_FORMAT), float(self.closes.iloc[-1])

    def closes_between(
        self,
        start: str,
        end: Optional[str] = None,
    ) -> Iterator[Tuple[str, float]]:
        """Yield (date, close) for start <= date <= end in date order."""
        stop = pd.Timestamp(end) if end is not None else None
        for ts_date, close in self.closes.loc[pd.Timestamp(start):stop].items():
            yield ts_date.strftime(DATE_FORMAT), float(close)
