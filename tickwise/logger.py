"""
Structured logging for TICKWISE.

Every backtest decision (picks, fills, exits, re-entries) is logged as a
single ``KEY | field=value`` line.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logger(
    name: str = "tickwise",
    log_dir: Optional[str] = "logs",
    level: int = logging.INFO,
    console_output: bool = True,
) -> logging.Logger:
    """
    Configure structured logging with file and console output.

    Args:
        name: Logger name
        log_dir: Directory for log files (None disables the file handler)
        level: Logging level
        console_output: Whether to output to console

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Clear existing handlers
    logger.handlers.clear()

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        today = datetime.now().strftime("%Y-%m-%d")
        file_handler = logging.FileHandler(
            log_path / f"tickwise_{today}.log",
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    # Console handler with Rich
    if console_output:
        console_handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
        )
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str = "tickwise") -> logging.Logger:
    """Get existing logger by name."""
    return logging.getLogger(name)


class DecisionLogger:
    """Logs backtest decisions with full context for audit."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger("tickwise.decisions")

    def log_picks(self, anchor_date: Optional[str], tickers: List[str]) -> None:
        self.logger.info(f"PICKS | anchor={anchor_date} | tickers={tickers}")

    def log_leg(self, chain_id: int, leg) -> None:
        self.logger.info(
            f"LEG | chain={chain_id} | {leg.ticker} | "
            f"buy={leg.buy_date}@{leg.buy_price:.2f} | "
            f"sell={leg.sell_date}@{leg.sell_price:.2f} | "
            f"ret={leg.return_pct:+.2f}% | reason={leg.exit_reason.value}"
        )

    def log_chain(self, chain) -> None:
        self.logger.info(
            f"CHAIN | id={chain.chain_id} | legs={len(chain.legs)} | "
            f"state={chain.state.value} | ret={chain.total_return_pct:+.2f}%"
        )

    def log_result(self, result) -> None:
        """Log run summary."""
        if not result.has_data:
            self.logger.info(f"RESULT | anchor={result.anchor_date} | sample=0")
            return
        self.logger.info(
            f"RESULT | anchor={result.anchor_date} | sample={result.sample} | "
            f"avg={result.avg:+.2f}% | median={result.median:+.2f}% | "
            f"win_rate={result.win_rate:.1f}% | trades={result.trades_count}"
        )

    def log_stale_run(self, generation: int, current: int) -> None:
        self.logger.info(f"STALE_RUN | generation={generation} | current={current} | discarded")
