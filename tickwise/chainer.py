"""
Position chaining for TICKWISE backtests.

A chain walks one unit of capital through consecutive legs: buy at the next
open after the signal, exit per the exit rules, and, when a rule exit fills
before the latest available bar, re-enter the next best unused signal.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Mapping, Optional, Set

from .dates import add_days
from .exit_rules import ExitReason, ExitRules, find_exit
from .price_index import PriceIndex
from .signals import Pick, SignalTable
from .technical_index import TechnicalIndex

logger = logging.getLogger(__name__)

MAX_LEGS = 20

# Resolves a ticker's price index on demand (re-entry tickers may not be preloaded).
PriceLookup = Callable[[str], Optional[PriceIndex]]


class ChainState(Enum):
    """Lifecycle states of a chain."""

    SEEKING_ENTRY = "seeking_entry"
    HOLDING = "holding"
    EXIT_TRIGGERED = "exit_triggered"
    SEEKING_REENTRY = "seeking_reentry"
    HOLDING_TO_LATEST = "holding_to_latest"
    NO_FILL = "no_fill"
    MAX_LEGS = "max_legs"
    TERMINATED = "terminated"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ChainState.HOLDING_TO_LATEST,
            ChainState.NO_FILL,
            ChainState.MAX_LEGS,
            ChainState.TERMINATED,
        )


@dataclass(frozen=True)
class Leg:
    """One holding period of a single ticker within a chain."""

    ticker: str
    buy_date: str
    buy_price: float
    sell_date: str
    sell_price: float
    entry_value: float
    exit_value: float
    exit_reason: ExitReason
    signal_date: str = ""

    @property
    def return_pct(self) -> float:
        return (self.sell_price - self.buy_price) / self.buy_price * 100

    def value_at(self, close: float) -> float:
        """Mark-to-market value of the leg at a given close."""
        return self.entry_value * close / self.buy_price


@dataclass
class Chain:
    """Ordered legs representing one unit of capital."""

    chain_id: int
    legs: List[Leg] = field(default_factory=list)
    state: ChainState = ChainState.SEEKING_ENTRY

    @property
    def cumulative_value(self) -> float:
        return self.legs[-1].exit_value if self.legs else 1.0

    @property
    def total_return_pct(self) -> float:
        return (self.cumulative_value - 1) * 100

    @property
    def tickers(self) -> List[str]:
        return [leg.ticker for leg in self.legs]


def _as_lookup(price_indexes) -> PriceLookup:
    if callable(price_indexes):
        return price_indexes
    return lambda ticker: price_indexes.get(ticker)


def run_chain(
    initial_pick: Pick,
    price_indexes,
    technical_indexes: Mapping[str, TechnicalIndex],
    rules: ExitRules,
    signal_table: SignalTable,
    global_exclude: Set[str],
    chain_id: int = 0,
    max_legs: int = MAX_LEGS,
) -> Chain:
    """
    Walk one pick through entries, exits and re-entries.

    Args:
        initial_pick: Starting signal
        price_indexes: Mapping or callable of ticker -> PriceIndex
        technical_indexes: Mapping of ticker -> TechnicalIndex
        rules: Exit rule configuration
        signal_table: Qualifying signals for re-entry search
        global_exclude: Tickers used by any chain this run (updated in place)
        chain_id: Identifier for reporting
        max_legs: Safety cap on legs per chain

    Returns:
        Chain whose state is terminal
    """
    lookup = _as_lookup(price_indexes)
    chain = Chain(chain_id=chain_id)
    used: Set[str] = set()

    pick: Optional[Pick] = initial_pick
    value = 1.0
    not_before = ""

    while pick is not None:
        chain.state = ChainState.SEEKING_ENTRY
        ticker = pick.ticker
        used.add(ticker)
        global_exclude.add(ticker)

        index = lookup(ticker)
        if index is None:
            chain.state = ChainState.NO_FILL
            logger.debug(f"Chain {chain_id}: no price history for {ticker}")
            break

        # Signals are published after the close; fill on the next session's open.
        entry_from = max(add_days(pick.date, 1), not_before)
        fill = index.open_at_or_after(entry_from)
        if fill is None:
            chain.state = ChainState.NO_FILL
            logger.debug(f"Chain {chain_id}: no open for {ticker} on/after {entry_from}")
            break
        buy_date, buy_price = fill
        if buy_price <= 0:
            chain.state = ChainState.NO_FILL
            break

        latest = index.latest_close()
        if latest is None:
            chain.state = ChainState.NO_FILL
            break
        latest_date, latest_close = latest

        chain.state = ChainState.HOLDING
        exit_signal = find_exit(
            index, technical_indexes.get(ticker), buy_date, buy_price, rules
        )

        if exit_signal is None:
            sell_date, sell_price, reason = latest_date, latest_close, ExitReason.HOLD_TO_LATEST
        else:
            sell_date, sell_price, reason = (
                exit_signal.execution_date,
                exit_signal.execution_price,
                exit_signal.reason,
            )

        if sell_date < buy_date:
            # Latest close predates the fill (open-only tail bars); mark at the fill.
            sell_date, sell_price = buy_date, buy_price

        exit_value = value * sell_price / buy_price
        chain.legs.append(
            Leg(
                ticker=ticker,
                buy_date=buy_date,
                buy_price=buy_price,
                sell_date=sell_date,
                sell_price=sell_price,
                entry_value=value,
                exit_value=exit_value,
                exit_reason=reason,
                signal_date=pick.date,
            )
        )
        value = exit_value

        if exit_signal is None:
            chain.state = ChainState.HOLDING_TO_LATEST
            break

        chain.state = ChainState.EXIT_TRIGGERED
        if sell_date >= latest_date:
            chain.state = ChainState.TERMINATED
            break
        if len(chain.legs) >= max_legs:
            chain.state = ChainState.MAX_LEGS
            logger.debug(f"Chain {chain_id}: reached {max_legs} legs")
            break

        chain.state = ChainState.SEEKING_REENTRY
        pick = signal_table.next_pick_on_or_after(sell_date, global_exclude | used)
        not_before = sell_date
        if pick is None:
            chain.state = ChainState.TERMINATED

    return chain
