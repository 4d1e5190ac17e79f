"""
Portfolio aggregation for TICKWISE backtests.

Turns chains into chain-level return statistics, leg-level trade statistics
and an equal-weight mark-to-market equity curve.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

from .chainer import Chain, Leg
from .dates import DATE_FORMAT
from .exit_rules import ExitReason
from .price_index import PriceIndex


@dataclass(frozen=True)
class Holding:
    """A ticker held on a given day and its running return."""

    ticker: str
    return_pct: float


@dataclass(frozen=True)
class EquityPoint:
    """Equal-weight portfolio return on one day."""

    date: str
    portfolio_return_pct: float
    holdings: List[Holding] = field(default_factory=list)


@dataclass
class BacktestResult:
    """Results of a backtest run. sample == 0 marks "not enough data"."""

    sample: int
    avg: Optional[float] = None
    median: Optional[float] = None
    win_rate: Optional[float] = None
    trades_count: int = 0
    wins_count: int = 0
    losses_count: int = 0
    mean_win_return: Optional[float] = None
    mean_loss_return: Optional[float] = None
    max_win_return: Optional[float] = None
    max_loss_rate: Optional[float] = None
    detail_rows: List[Dict[str, Any]] = field(default_factory=list)
    equity_series: List[EquityPoint] = field(default_factory=list)
    chains: List[Chain] = field(default_factory=list)

    # Run parameters
    anchor_date: Optional[str] = None
    lookback_days: Optional[int] = None
    top_k: Optional[int] = None

    @classmethod
    def empty(cls, **params) -> "BacktestResult":
        return cls(sample=0, **params)

    @property
    def has_data(self) -> bool:
        return self.sample > 0

    def equity_frame(self) -> pd.DataFrame:
        """Equity curve as a DataFrame indexed by date."""
        if not self.equity_series:
            return pd.DataFrame(columns=["portfolio_return_pct", "holdings"])
        frame = pd.DataFrame(
            {
                "date": pd.to_datetime([p.date for p in self.equity_series]),
                "portfolio_return_pct": [p.portfolio_return_pct for p in self.equity_series],
                "holdings": [[h.ticker for h in p.holdings] for p in self.equity_series],
            }
        )
        return frame.set_index("date")

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form for JSON output (chains omitted)."""
        data = asdict(self)
        data.pop("chains")
        return data


def _mean(values: List[float]) -> Optional[float]:
    return float(np.mean(values)) if values else None


def leg_detail(chain: Chain, leg_number: int, leg: Leg) -> Dict[str, Any]:
    return {
        "chain_id": chain.chain_id,
        "leg": leg_number,
        "ticker": leg.ticker,
        "signal_date": leg.signal_date,
        "buy_date": leg.buy_date,
        "buy_price": leg.buy_price,
        "sell_date": leg.sell_date,
        "sell_price": leg.sell_price,
        "return_pct": leg.return_pct,
        "exit_reason": leg.exit_reason.value,
    }


def chain_value_on(
    chain: Chain,
    on_date: str,
    price_indexes: Mapping[str, PriceIndex],
) -> tuple:
    """
    Mark-to-market value of a chain on a date.

    A leg held to the latest close is still open on its sell date.

    Returns:
        (value, held_leg) where held_leg is the leg open on that date or None
    """
    value = 1.0
    for leg in chain.legs:
        if on_date < leg.buy_date:
            return value, None
        still_held = leg.exit_reason is ExitReason.HOLD_TO_LATEST and on_date == leg.sell_date
        if on_date < leg.sell_date or still_held:
            index = price_indexes.get(leg.ticker)
            close = index.close_at_or_before(on_date) if index is not None else None
            if close is None:
                return leg.entry_value, leg
            return leg.value_at(close), leg
        value = leg.exit_value
    return value, None


def build_equity_series(
    chains: List[Chain],
    price_indexes: Mapping[str, PriceIndex],
    anchor_date: str,
) -> List[EquityPoint]:
    """Daily equal-weight equity curve from anchor_date onwards."""
    if not chains:
        return []

    tickers = {leg.ticker for chain in chains for leg in chain.legs}
    dates = pd.DatetimeIndex([])
    for ticker in tickers:
        index = price_indexes.get(ticker)
        if index is not None:
            dates = dates.union(index.closes.loc[pd.Timestamp(anchor_date):].index)

    series: List[EquityPoint] = []
    for on_date in dates.sort_values().strftime(DATE_FORMAT):
        total = 0.0
        holdings: List[Holding] = []
        for chain in chains:
            value, held = chain_value_on(chain, on_date, price_indexes)
            total += value
            if held is not None:
                holdings.append(
                    Holding(ticker=held.ticker, return_pct=(value / held.entry_value - 1) * 100)
                )
        average = total / len(chains)
        series.append(
            EquityPoint(date=on_date, portfolio_return_pct=(average - 1) * 100, holdings=holdings)
        )
    return series


def aggregate(
    chains: Iterable[Chain],
    price_indexes: Mapping[str, PriceIndex],
    anchor_date: str,
    lookback_days: Optional[int] = None,
    top_k: Optional[int] = None,
) -> BacktestResult:
    """
    Combine chains into a BacktestResult.

    Chain totals drive avg/median; individual legs drive trade statistics.
    Chains without legs are excluded.
    """
    params = {"anchor_date": anchor_date, "lookback_days": lookback_days, "top_k": top_k}
    chains = [c for c in chains if c.legs]
    if not chains:
        return BacktestResult.empty(**params)

    chain_returns = [c.total_return_pct for c in chains]
    leg_returns = [leg.return_pct for c in chains for leg in c.legs]
    wins = [r for r in leg_returns if r > 0]
    losses = [r for r in leg_returns if r < 0]

    if leg_returns:
        win_rate = len(wins) / len(leg_returns) * 100
    else:
        win_rate = sum(1 for r in chain_returns if r > 0) / len(chain_returns) * 100

    detail_rows = [
        leg_detail(chain, n, leg)
        for chain in chains
        for n, leg in enumerate(chain.legs, start=1)
    ]

    return BacktestResult(
        sample=len(chain_returns),
        avg=float(np.mean(chain_returns)),
        median=float(np.median(chain_returns)),
        win_rate=win_rate,
        trades_count=len(leg_returns),
        wins_count=len(wins),
        losses_count=len(losses),
        mean_win_return=_mean(wins),
        mean_loss_return=_mean(losses),
        max_win_return=max(wins) if wins else None,
        max_loss_rate=min(losses) if losses else None,
        detail_rows=detail_rows,
        equity_series=build_equity_series(chains, price_indexes, anchor_date),
        chains=chains,
        **params,
    )
