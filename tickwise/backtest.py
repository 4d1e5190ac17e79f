"""
Backtesting framework for TICKWISE.

Replays "buy the top-ranked picks N days ago" against daily price feeds:
- Signal selection on the lookback anchor date
- Concurrent price history loading, joined before simulation
- Deterministic chain simulation with exit rules and re-entries
- Aggregation into statistics and an equity curve

Every run is a full recompute; BacktestSession discards results of runs that
were superseded while they were still loading data.
"""

import logging
from datetime import date
from threading import Lock
from typing import Dict, Iterable, List, Mapping, Optional, Set, Union

from pydantic import BaseModel, Field

from .aggregator import BacktestResult, aggregate
from .chainer import MAX_LEGS, Chain, run_chain
from .dates import add_days, normalize_date, today_utc
from .exit_rules import ExitRules
from .feeds import PriceHistoryCache
from .logger import DecisionLogger
from .price_index import PriceIndex
from .signals import RecommendationRecord, SignalTable
from .technical_index import build_all

logger = logging.getLogger(__name__)


class BacktestParams(BaseModel):
    """User-adjustable simulation parameters for one run."""

    lookback_days: int = Field(default=30, ge=0, description="Days back from as_of to the anchor")
    top_k: int = Field(default=5, ge=1, description="Picks taken on the anchor date")
    min_score: float = Field(default=70, description="Entries need tickwise score above this")
    require_rising_trend: bool = Field(default=False)
    exit_rules: ExitRules = Field(default_factory=ExitRules)
    max_legs: int = Field(default=MAX_LEGS, ge=1, le=MAX_LEGS)
    as_of: Optional[date] = Field(default=None, description="Evaluation date (defaults to today UTC)")

    def anchor_date(self) -> str:
        as_of = normalize_date(self.as_of) if self.as_of is not None else today_utc()
        return add_days(as_of, -self.lookback_days)


class StaticPriceSource:
    """
    Adapter that makes an in-memory mapping look like PriceHistoryCache.

    Used for offline runs and tests.
    """

    def __init__(self, indexes: Mapping[str, PriceIndex]):
        self.indexes = dict(indexes)

    def get(self, ticker: str) -> Optional[PriceIndex]:
        return self.indexes.get(ticker)

    def get_many(self, tickers: Iterable[str]) -> Dict[str, PriceIndex]:
        return {t: self.indexes[t] for t in tickers if t in self.indexes}


PriceSource = Union[PriceHistoryCache, StaticPriceSource]


class BacktestEngine:
    """
    Historical simulation over one recommendation history.

    Signals are grouped once per run; chains share one global exclude set so
    no ticker is held by two chains in the same run.
    """

    def __init__(
        self,
        records: List[RecommendationRecord],
        prices: PriceSource,
        decision_logger: Optional[DecisionLogger] = None,
    ):
        self.records = records
        self.prices = prices
        self.decisions = decision_logger or DecisionLogger()

    def run(self, params: Optional[BacktestParams] = None) -> BacktestResult:
        """
        Execute a backtest.

        Args:
            params: Simulation parameters (defaults if None)

        Returns:
            BacktestResult (sample == 0 when nothing could be simulated)
        """
        params = params or BacktestParams()
        run_info = {"lookback_days": params.lookback_days, "top_k": params.top_k}

        table = SignalTable.select_entries(
            self.records,
            min_score=params.min_score,
            require_rising_trend=params.require_rising_trend,
        )
        picks = table.pick_top_k(params.anchor_date(), params.top_k)
        if not picks:
            logger.info("No qualifying signals for backtest")
            result = BacktestResult.empty(anchor_date=None, **run_info)
            self.decisions.log_result(result)
            return result

        anchor = picks[0].date
        self.decisions.log_picks(anchor, [p.ticker for p in picks])

        # Fan-out fetch of the initial picks, joined before simulating.
        loaded: Dict[str, Optional[PriceIndex]] = dict(
            self.prices.get_many(p.ticker for p in picks)
        )

        def lookup(ticker: str) -> Optional[PriceIndex]:
            if ticker not in loaded:
                loaded[ticker] = self.prices.get(ticker)
            return loaded[ticker]

        technical = build_all(self.records, table.tickers())
        global_exclude: Set[str] = {p.ticker for p in picks}

        chains: List[Chain] = []
        for chain_id, pick in enumerate(picks):
            chain = run_chain(
                pick,
                lookup,
                technical,
                params.exit_rules,
                table,
                global_exclude,
                chain_id=chain_id,
                max_legs=params.max_legs,
            )
            for leg in chain.legs:
                self.decisions.log_leg(chain_id, leg)
            self.decisions.log_chain(chain)
            chains.append(chain)

        price_indexes = {t: idx for t, idx in loaded.items() if idx is not None}
        result = aggregate(chains, price_indexes, anchor, **run_info)
        self.decisions.log_result(result)
        return result


class BacktestSession:
    """
    Owns the price cache across runs and publishes only the newest run.

    Each run takes a generation token. A run whose token is no longer
    current when it finishes is discarded (last-write-wins, no merging).
    """

    def __init__(
        self,
        records: List[RecommendationRecord],
        prices: PriceSource,
        decision_logger: Optional[DecisionLogger] = None,
    ):
        self.engine = BacktestEngine(records, prices, decision_logger)
        self._lock = Lock()
        self._generation = 0
        self._latest: Optional[BacktestResult] = None

    @property
    def latest_result(self) -> Optional[BacktestResult]:
        with self._lock:
            return self._latest

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def begin_run(self) -> int:
        """Start a new run, superseding any outstanding one."""
        with self._lock:
            self._generation += 1
            return self._generation

    def publish(self, generation: int, result: BacktestResult) -> bool:
        """Store result if its run is still current. Returns False if stale."""
        with self._lock:
            current = self._generation
            if generation != current:
                stale = True
            else:
                self._latest = result
                stale = False
        if stale:
            self.engine.decisions.log_stale_run(generation, current)
        return not stale

    def run(self, params: Optional[BacktestParams] = None) -> Optional[BacktestResult]:
        """Run and publish; returns None when superseded by a newer run."""
        generation = self.begin_run()
        result = self.engine.run(params)
        return result if self.publish(generation, result) else None
