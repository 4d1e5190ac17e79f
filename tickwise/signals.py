"""
Signal selection for TICKWISE backtests.

Filters the historical recommendation feed down to qualifying BUY entries,
groups them by signal date and ranks them by tickwise score. The grouping is
built once per run; chains only perform index lookups against it.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

import pandas as pd

from .dates import normalize_date
from .utils import first_present, to_float

logger = logging.getLogger(__name__)

# Date field variants emitted by the scoring pipeline, in precedence order.
RECORD_DATE_KEYS = (
    "Date_y",
    "Date_x",
    "analysis_date",
    "date",
    "Date",
    "run_date",
    "as_of",
    "generated_at",
    "time",
)

DEFAULT_MIN_SCORE = 70.0
RISING_TREND_POINTS = 4


class Recommendation(Enum):
    """Pipeline recommendation label."""

    BUY = "buy"
    HOLD = "hold"
    SELL = "sell"

    @classmethod
    def parse(cls, value: Any) -> Optional["Recommendation"]:
        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class RecommendationRecord:
    """One ticker's scores on one evaluation date."""

    ticker: str
    signal_date: str
    recommendation: Optional[Recommendation]
    tickwise_score: Optional[float] = None
    technical: Optional[float] = None
    fundamental_score: Optional[float] = None
    forecast_1m: Optional[float] = None
    forecast_1m_p5: Optional[float] = None
    forecast_1m_p95: Optional[float] = None
    analysts_forecast: Optional[float] = None
    close: Optional[float] = None
    security: str = ""

    @property
    def is_buy(self) -> bool:
        return self.recommendation is Recommendation.BUY

    @property
    def score(self) -> float:
        """Ranking score; missing scores rank last."""
        return self.tickwise_score if self.tickwise_score is not None else 0.0

    @classmethod
    def from_row(
        cls,
        row: Mapping[str, Any],
        parent_date: Any = None,
    ) -> Optional["RecommendationRecord"]:
        """Parse a feed row; returns None without a ticker or usable date."""
        if not isinstance(row, Mapping):
            return None
        ticker = row.get("ticker")
        if not ticker:
            return None

        raw_date = parent_date
        if raw_date is None:
            raw_date = first_present(row, RECORD_DATE_KEYS)
        signal_date = normalize_date(raw_date)
        if not signal_date:
            return None

        return cls(
            ticker=str(ticker).strip(),
            signal_date=signal_date,
            recommendation=Recommendation.parse(row.get("recommendation")),
            tickwise_score=to_float(first_present(row, ("tickwise_score", "Tickwise"))),
            technical=to_float(row.get("technical")),
            fundamental_score=to_float(row.get("fundamental_score")),
            forecast_1m=to_float(first_present(row, ("forecast1m", "forecast_1m"))),
            forecast_1m_p5=to_float(first_present(row, ("forecast1m_p5", "forecast_1m_p5"))),
            forecast_1m_p95=to_float(first_present(row, ("forecast1m_p95", "forecast_1m_p95"))),
            analysts_forecast=to_float(row.get("analysts_forecast")),
            close=to_float(first_present(row, ("Close", "close"))),
            security=str(row.get("Security") or ""),
        )


@dataclass(frozen=True)
class Pick:
    """A record selected for entry on a given signal date."""

    date: str
    record: RecommendationRecord

    @property
    def ticker(self) -> str:
        return self.record.ticker


def parse_records(rows: Any) -> List[RecommendationRecord]:
    """
    Parse a recommendation feed into records.

    Accepts a flat list of rows, or a mapping of date -> row/list of rows.
    Unusable rows are dropped.
    """
    records: List[RecommendationRecord] = []
    dropped = 0

    def _take(row: Any, parent_date: Any = None) -> None:
        nonlocal dropped
        record = RecommendationRecord.from_row(row, parent_date)
        if record is None:
            dropped += 1
        else:
            records.append(record)

    if isinstance(rows, Mapping):
        for key, entry in rows.items():
            if isinstance(entry, list):
                for row in entry:
                    _take(row, key)
            else:
                _take(entry, key)
    else:
        for row in rows or []:
            _take(row)

    if dropped:
        logger.debug(f"Dropped {dropped} unusable recommendation rows")
    return records


def dedupe_records(records: Iterable[RecommendationRecord]) -> List[RecommendationRecord]:
    """Drop repeated (ticker, date) records, keeping the first occurrence."""
    seen: Set[tuple] = set()
    unique: List[RecommendationRecord] = []
    for record in records:
        key = (record.ticker, record.signal_date)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def _score_histories(records: Iterable[RecommendationRecord]) -> Dict[str, pd.Series]:
    """Per-ticker tickwise scores on a sorted DatetimeIndex, built once per run."""
    points: Dict[str, Dict[str, float]] = defaultdict(dict)
    for record in records:
        if record.tickwise_score is not None:
            points[record.ticker].setdefault(record.signal_date, record.tickwise_score)
    return {
        ticker: pd.Series(
            list(scores.values()), index=pd.DatetimeIndex(list(scores)), dtype=float
        ).sort_index()
        for ticker, scores in points.items()
    }


def is_rising_trend(
    history: pd.Series,
    signal_date: str,
    min_score: float,
) -> bool:
    """
    Check the last four score points ending at signal_date.

    The three points before the current one must be strictly increasing
    and the current point must exceed min_score. Fewer than four points
    never qualifies.
    """
    if history is None or history.empty:
        return False
    ts_date = pd.Timestamp(signal_date)
    end = history.index.searchsorted(ts_date, side="right")
    window = history.iloc[max(0, end - RISING_TREND_POINTS):end]
    if len(window) < RISING_TREND_POINTS or window.index[-1] != ts_date:
        return False
    prior = window.iloc[:-1]
    if not (prior.diff().iloc[1:] > 0).all():
        return False
    return bool(window.iloc[-1] > min_score)


class SignalTable:
    """
    Qualifying entry signals grouped by date.

    Each date's records are deduplicated by ticker (first seen wins) and
    sorted by tickwise score descending once at construction.
    """

    def __init__(self, grouped: Mapping[str, List[RecommendationRecord]]):
        self._by_date: Dict[str, List[RecommendationRecord]] = {}
        for signal_date, day_records in grouped.items():
            unique: Dict[str, RecommendationRecord] = {}
            for record in day_records:
                if record.ticker not in unique:
                    unique[record.ticker] = record
            # sorted() is stable, so equal scores keep feed order
            self._by_date[signal_date] = sorted(
                unique.values(), key=lambda r: r.score, reverse=True
            )
        self._dates: List[str] = sorted(self._by_date)
        self._date_index = pd.DatetimeIndex(self._dates)

    @classmethod
    def select_entries(
        cls,
        records: Iterable[RecommendationRecord],
        min_score: float = DEFAULT_MIN_SCORE,
        require_rising_trend: bool = False,
    ) -> "SignalTable":
        """
        Filter records to qualifying BUY entries and group them by date.

        Args:
            records: Parsed historical recommendation records
            min_score: Entries need tickwise_score strictly above this
            require_rising_trend: Also require a strictly rising 4-point
                score trend ending at the signal date

        Returns:
            SignalTable of qualifying entries
        """
        records = dedupe_records(records)
        histories = _score_histories(records) if require_rising_trend else {}

        grouped: Dict[str, List[RecommendationRecord]] = defaultdict(list)
        for record in records:
            if not record.is_buy or record.tickwise_score is None:
                continue
            if record.tickwise_score <= min_score:
                continue
            if require_rising_trend and not is_rising_trend(
                histories.get(record.ticker), record.signal_date, min_score
            ):
                continue
            grouped[record.signal_date].append(record)

        table = cls(grouped)
        logger.debug(
            f"Selected entries on {len(table.dates)} dates "
            f"(min_score={min_score}, rising_trend={require_rising_trend})"
        )
        return table

    @property
    def dates(self) -> List[str]:
        return list(self._dates)

    def __len__(self) -> int:
        return len(self._dates)

    def records_on(self, signal_date: str) -> List[RecommendationRecord]:
        """Ranked records for one date (empty if none)."""
        return list(self._by_date.get(signal_date, []))

    def tickers(self) -> Set[str]:
        return {r.ticker for day in self._by_date.values() for r in day}

    def resolve_anchor(self, anchor_date: str) -> Optional[str]:
        """
        Latest signal date on or before anchor_date.

        Falls back to the earliest available date so an early anchor never
        produces an empty selection.
        """
        if not self._dates:
            return None
        pos = self._date_index.searchsorted(pd.Timestamp(anchor_date), side="right")
        if pos == 0:
            return self._dates[0]
        return self._dates[pos - 1]

    def pick_top_k(self, anchor_date: str, k: int) -> List[Pick]:
        """Top-k records by score on the resolved anchor date."""
        resolved = self.resolve_anchor(anchor_date)
        if resolved is None or k <= 0:
            return []
        return [Pick(date=resolved, record=r) for r in self._by_date[resolved][:k]]

    def next_pick_on_or_after(
        self,
        from_date: str,
        exclude: Optional[Set[str]] = None,
    ) -> Optional[Pick]:
        """Best-ranked record on the first date >= from_date not in exclude."""
        exclude = exclude or set()
        start = self._date_index.searchsorted(pd.Timestamp(from_date), side="left")
        for signal_date in self._dates[start:]:
            for record in self._by_date[signal_date]:
                if record.ticker not in exclude:
                    return Pick(date=signal_date, record=record)
        return None


def select_entries(
    records: Iterable[RecommendationRecord],
    min_score: float = DEFAULT_MIN_SCORE,
    require_rising_trend: bool = False,
) -> SignalTable:
    return SignalTable.select_entries(records, min_score, require_rising_trend)
