"""
Command-line interface for TICKWISE.

Runs lookback backtests and shows the current recommendation snapshot.
"""

import json
import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .aggregator import BacktestResult
from .backtest import BacktestParams, BacktestSession
from .config import Config, get_default_config, load_config
from .feeds import FeedClient, FeedError, PriceHistoryCache
from .logger import setup_logger
from .signals import Recommendation, RecommendationRecord, parse_records
from .snapshot import derive_row, summarize, top_signals
from .utils import format_percentage, format_price

console = Console()


class TickwiseApp:
    """Wires config, feeds and the backtest session for CLI commands."""

    def __init__(self, config_path: str = "config.yaml", base_url: Optional[str] = None):
        self.config_path = config_path
        self.base_url_override = base_url
        self.config: Optional[Config] = None
        self.client: Optional[FeedClient] = None
        self.cache: Optional[PriceHistoryCache] = None

    def _load_config(self):
        """Load configuration from file, or defaults when the file is absent."""
        try:
            if Path(self.config_path).exists():
                self.config = load_config(self.config_path)
                console.print(f"[dim]Config loaded from {self.config_path}[/dim]")
            else:
                self.config = get_default_config()
        except Exception as e:
            console.print(f"[red]Failed to load config: {e}[/red]")
            sys.exit(1)

        if self.base_url_override:
            self.config.feeds.base_url = self.base_url_override.rstrip("/")

        setup_logger(log_dir=self.config.paths.log_dir, console_output=False)

        if not self.config.feeds.base_url:
            console.print("[red]Feed base URL is not set (config feeds.base_url or TICKWISE_BASE_URL)[/red]")
            sys.exit(1)

        self.client = FeedClient(self.config.feeds.base_url, timeout=self.config.feeds.timeout)
        self.cache = PriceHistoryCache(self.client, max_workers=self.config.feeds.max_workers)

    def _fetch_records(self, today: bool = False) -> List[RecommendationRecord]:
        try:
            with console.status("[bold blue]Loading recommendations..."):
                raw = (
                    self.client.today_recommendations()
                    if today
                    else self.client.historical_recommendations()
                )
        except FeedError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)
        return parse_records(raw)

    def _do_backtest(self, params: BacktestParams, as_json: bool = False):
        records = self._fetch_records()
        session = BacktestSession(records, self.cache)
        with console.status("[bold blue]Running backtest..."):
            result = session.run(params)
        if result is None:
            console.print("[yellow]Backtest superseded by a newer run[/yellow]")
            return

        if as_json:
            click.echo(json.dumps(result.to_dict(), indent=2, default=str))
            return
        self._display_backtest_result(result)

    def _display_backtest_result(self, result: BacktestResult):
        """Display backtest statistics and trades."""
        if not result.has_data:
            console.print(Panel("Not enough data to backtest these settings.", style="yellow"))
            return

        table = Table(title=f"Backtest from {result.anchor_date} (top {result.top_k})")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")

        avg_color = "bright_green" if result.avg > 0 else "bright_red"
        table.add_row("Picks", str(result.sample))
        table.add_row("Average Return", f"[{avg_color}]{format_percentage(result.avg)}[/{avg_color}]")
        table.add_row("Median Return", format_percentage(result.median))
        table.add_row("Win Rate", f"{result.win_rate:.1f}%")
        table.add_row("Trades", str(result.trades_count))
        table.add_row("Wins / Losses", f"{result.wins_count} / {result.losses_count}")
        table.add_row("Mean Win", format_percentage(result.mean_win_return))
        table.add_row("Mean Loss", format_percentage(result.mean_loss_return))
        table.add_row("Best Trade", format_percentage(result.max_win_return))
        table.add_row("Worst Trade", format_percentage(result.max_loss_rate))
        if result.equity_series:
            last = result.equity_series[-1]
            table.add_row("Portfolio Return", f"{format_percentage(last.portfolio_return_pct)} ({last.date})")
        console.print(table)

        trades = Table(title="Trades")
        trades.add_column("Chain", justify="right")
        trades.add_column("Ticker", style="cyan")
        trades.add_column("Buy")
        trades.add_column("Buy Price", justify="right")
        trades.add_column("Sell")
        trades.add_column("Sell Price", justify="right")
        trades.add_column("Return", justify="right")
        trades.add_column("Exit")
        for row in result.detail_rows:
            color = "green" if row["return_pct"] > 0 else "red" if row["return_pct"] < 0 else "white"
            trades.add_row(
                f"{row['chain_id']}.{row['leg']}",
                row["ticker"],
                row["buy_date"],
                format_price(row["buy_price"]),
                row["sell_date"],
                format_price(row["sell_price"]),
                f"[{color}]{format_percentage(row['return_pct'])}[/{color}]",
                row["exit_reason"],
            )
        console.print(trades)

    def _do_picks(self, count: int):
        records = self._fetch_records(today=True)
        for label, rec in (("Top Buys", Recommendation.BUY), ("Top Sells", Recommendation.SELL)):
            table = Table(title=label)
            table.add_column("Ticker", style="cyan")
            table.add_column("Score", justify="right")
            table.add_column("Technical", justify="right")
            table.add_column("Close", justify="right")
            table.add_column("AI 1M (p95)", justify="right")
            table.add_column("Analysts 1Y", justify="right")
            for record in top_signals(records, rec, count):
                row = derive_row(record)
                table.add_row(
                    record.ticker,
                    format_price(record.tickwise_score, 1),
                    format_price(record.technical, 1),
                    format_price(record.close),
                    format_percentage(row["ai1m_upper_pct"], 1),
                    format_percentage(row["analyst_1y_pct"], 1),
                )
            console.print(table)

    def _do_summary(self):
        summary = summarize(self._fetch_records(today=True))
        console.print(
            Panel(
                f"Analyzed: {summary.total}\n"
                f"[green]Buy: {summary.buy_count}[/green]  "
                f"Hold: {summary.hold_count}  "
                f"[red]Sell: {summary.sell_count}[/red]\n"
                f"Avg buy score: {summary.avg_buy_score:.1f}",
                title="Today's Recommendations",
            )
        )


@click.group()
@click.option("--config", "-c", default="config.yaml", help="Config file path")
@click.option("--base-url", default=None, help="Override feed base URL or directory")
@click.pass_context
def cli(ctx, config, base_url):
    """TICKWISE - Recommendation backtests"""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["base_url"] = base_url


@cli.command()
@click.option("--lookback", "-l", type=int, default=None, help="Days back to the anchor date")
@click.option("--top", "-k", type=int, default=None, help="Picks on the anchor date")
@click.option("--rising-trend/--no-rising-trend", default=None, help="Require rising score trend")
@click.option("--tech-stop", type=float, default=None, help="Exit when technical score drops below this")
@click.option("--trailing-stop", type=float, default=None, help="Trailing stop percent")
@click.option("--take-profit", type=float, default=None, help="Take profit percent")
@click.option("--as-of", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Evaluation date")
@click.option("--json", "as_json", is_flag=True, help="Print result as JSON")
@click.pass_context
def backtest(ctx, lookback, top, rising_trend, tech_stop, trailing_stop, take_profit, as_of, as_json):
    """Replay buying the top picks from N days ago."""
    app = TickwiseApp(ctx.obj["config_path"], ctx.obj["base_url"])
    app._load_config()

    defaults = app.config.backtest
    rules = app.config.exit_rules.model_copy()
    if tech_stop is not None:
        rules = rules.model_copy(update={"use_technical_stop": True, "technical_threshold": tech_stop})
    if trailing_stop is not None:
        rules = rules.model_copy(update={"use_trailing_stop": True, "trailing_stop_pct": trailing_stop})
    if take_profit is not None:
        rules = rules.model_copy(update={"use_take_profit": True, "take_profit_pct": take_profit})

    params = BacktestParams(
        lookback_days=lookback if lookback is not None else defaults.lookback_days,
        top_k=top if top is not None else defaults.top_k,
        min_score=defaults.min_score,
        require_rising_trend=(
            rising_trend if rising_trend is not None else defaults.require_rising_trend
        ),
        exit_rules=rules,
        max_legs=defaults.max_legs,
        as_of=as_of.date() if as_of else None,
    )
    app._do_backtest(params, as_json=as_json)


@cli.command()
@click.option("--count", "-n", type=int, default=4, help="Rows per table")
@click.pass_context
def picks(ctx, count):
    """Show today's top buy and sell signals."""
    app = TickwiseApp(ctx.obj["config_path"], ctx.obj["base_url"])
    app._load_config()
    app._do_picks(count)


@cli.command()
@click.pass_context
def summary(ctx):
    """Summarize today's recommendation counts."""
    app = TickwiseApp(ctx.obj["config_path"], ctx.obj["base_url"])
    app._load_config()
    app._do_summary()


if __name__ == "__main__":
    cli()
