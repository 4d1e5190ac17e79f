"""
Exit rule evaluation for TICKWISE backtests.

Each enabled rule yields a trigger date. Fills happen at the next available
open on or after the trigger date; the earliest trigger wins.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .price_index import PriceIndex
from .technical_index import TechnicalIndex


class ExitReason(Enum):
    """Reasons for a leg exit."""

    TECHNICAL_DROP = "technical_drop"
    TRAILING_STOP = "trailing_stop"
    TAKE_PROFIT = "take_profit"
    HOLD_TO_LATEST = "hold_to_latest"


class ExitRules(BaseModel):
    """Independently togglable exit conditions."""

    use_technical_stop: bool = Field(default=False, description="Exit when technical score drops")
    technical_threshold: float = Field(default=70, description="Exit when technical < this")
    use_trailing_stop: bool = Field(default=False, description="Exit on trailing stop breach")
    trailing_stop_pct: float = Field(default=8, gt=0, lt=100, description="Trailing stop % below running max close")
    use_take_profit: bool = Field(default=False, description="Exit when gain exceeds target")
    take_profit_pct: float = Field(default=20, gt=0, description="Take profit % above entry")

    @property
    def any_enabled(self) -> bool:
        return self.use_technical_stop or self.use_trailing_stop or self.use_take_profit


@dataclass(frozen=True)
class ExitSignal:
    """A fired exit rule and where it fills."""

    trigger_date: str
    execution_date: str
    execution_price: float
    reason: ExitReason


def find_trailing_stop_trigger(
    price_index: PriceIndex,
    entry_date: str,
    pct: float,
) -> Optional[str]:
    """
    First close at or below the trailing floor.

    The running max is seeded by the first close on/after entry. A bar that
    sets a new high moves the reference and cannot trigger.
    """
    running_max: Optional[float] = None
    for bar_date, close in price_index.closes_between(entry_date):
        if running_max is None or close > running_max:
            running_max = close
            continue
        if close <= running_max * (1 - pct / 100):
            return bar_date
    return None


def find_take_profit_trigger(
    price_index: PriceIndex,
    entry_date: str,
    entry_price: float,
    pct: float,
) -> Optional[str]:
    """First close whose gain over entry_price exceeds pct."""
    if entry_price <= 0:
        return None
    for bar_date, close in price_index.closes_between(entry_date):
        if (close - entry_price) / entry_price * 100 > pct:
            return bar_date
    return None


def find_exit(
    price_index: PriceIndex,
    technical_index: Optional[TechnicalIndex],
    entry_date: str,
    entry_price: float,
    rules: ExitRules,
) -> Optional[ExitSignal]:
    """
    Earliest exit across enabled rules.

    Args:
        price_index: Ticker's price index
        technical_index: Ticker's technical index (None disables the technical rule)
        entry_date: Date the position was filled
        entry_price: Fill price
        rules: Exit rule configuration

    Returns:
        ExitSignal, or None to hold to the latest available close
    """
    triggers: List[tuple] = []

    if rules.use_technical_stop and technical_index is not None:
        triggers.append(
            (technical_index.first_drop_below(entry_date, rules.technical_threshold),
             ExitReason.TECHNICAL_DROP)
        )
    if rules.use_trailing_stop:
        triggers.append(
            (find_trailing_stop_trigger(price_index, entry_date, rules.trailing_stop_pct),
             ExitReason.TRAILING_STOP)
        )
    if rules.use_take_profit:
        triggers.append(
            (find_take_profit_trigger(price_index, entry_date, entry_price, rules.take_profit_pct),
             ExitReason.TAKE_PROFIT)
        )

    candidates: List[tuple] = []
    for order, (trigger_date, reason) in enumerate(triggers):
        if trigger_date is None:
            continue
        fill = price_index.open_at_or_after(trigger_date)
        if fill is None:
            continue
        execution_date, execution_price = fill
        candidates.append(
            (trigger_date, execution_date, order,
             ExitSignal(trigger_date, execution_date, execution_price, reason))
        )

    if not candidates:
        return None
    candidates.sort(key=lambda c: c[:3])
    return candidates[0][3]
