"""
TICKWISE - Recommendation Backtesting

Replays the scoring pipeline's historical BUY signals against daily prices:
- Picks the top-ranked signals on a lookback anchor date
- Fills at the next open, exits on technical drop, trailing stop or take profit
- Re-enters the next best unused signal after an exit
- Aggregates chain returns, trade statistics and an equity curve
"""

__version__ = "1.0.0"

from .aggregator import BacktestResult, EquityPoint, Holding, aggregate
from .backtest import BacktestEngine, BacktestParams, BacktestSession, StaticPriceSource
from .chainer import Chain, ChainState, Leg, run_chain
from .config import Config, load_config
from .dates import UnparseableDateError, add_days, normalize_date
from .exit_rules import ExitReason, ExitRules, ExitSignal, find_exit
from .feeds import FeedClient, FeedError, PriceHistoryCache
from .price_index import PriceBar, PriceIndex
from .signals import Pick, Recommendation, RecommendationRecord, SignalTable, parse_records
from .technical_index import TechnicalIndex

__all__ = [
    "BacktestResult",
    "EquityPoint",
    "Holding",
    "aggregate",
    "BacktestEngine",
    "BacktestParams",
    "BacktestSession",
    "StaticPriceSource",
    "Chain",
    "ChainState",
    "Leg",
    "run_chain",
    "Config",
    "load_config",
    "UnparseableDateError",
    "add_days",
    "normalize_date",
    "ExitReason",
    "ExitRules",
    "ExitSignal",
    "find_exit",
    "FeedClient",
    "FeedError",
    "PriceHistoryCache",
    "PriceBar",
    "PriceIndex",
    "Pick",
    "Recommendation",
    "RecommendationRecord",
    "SignalTable",
    "parse_records",
    "TechnicalIndex",
]
