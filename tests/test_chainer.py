"""
Tests for position chaining.
"""

import pandas as pd
import pytest

from tickwise.chainer import MAX_LEGS, ChainState, run_chain
from tickwise.exit_rules import ExitReason, ExitRules
from tickwise.price_index import PriceIndex
from tickwise.signals import RecommendationRecord, select_entries


def _rec(ticker, day, score=80):
    return RecommendationRecord.from_row(
        {"ticker": ticker, "date": day, "recommendation": "Buy", "tickwise_score": score}
    )


def _index(bars):
    return PriceIndex.build([{"date": d, "open": o, "close": c} for d, o, c in bars])


@pytest.fixture
def xyz_index():
    return _index(
        [
            ("2024-01-01", 10, 10),
            ("2024-01-02", 10.5, 11),
            ("2024-01-03", 11, 9),
        ]
    )


@pytest.fixture
def xyz_table():
    return select_entries([_rec("XYZ", "2024-01-01", 80)])


class TestSingleLeg:
    """Test one-leg chains."""

    def test_trailing_stop_scenario(self, xyz_index, xyz_table):
        """Fill at the next open, stop on the 9 close, execute at that day's open."""
        pick = xyz_table.pick_top_k("2024-01-01", 1)[0]
        rules = ExitRules(use_trailing_stop=True, trailing_stop_pct=10)

        chain = run_chain(pick, {"XYZ": xyz_index}, {}, rules, xyz_table, {"XYZ"})

        assert len(chain.legs) == 1
        leg = chain.legs[0]
        assert (leg.buy_date, leg.buy_price) == ("2024-01-02", 10.5)
        assert (leg.sell_date, leg.sell_price) == ("2024-01-03", 11)
        assert leg.exit_reason is ExitReason.TRAILING_STOP
        assert leg.return_pct == pytest.approx(4.7619, abs=1e-3)
        # Exit on the latest bar ends the chain without re-entry
        assert chain.state is ChainState.TERMINATED

    def test_hold_to_latest(self, xyz_index, xyz_table):
        pick = xyz_table.pick_top_k("2024-01-01", 1)[0]
        chain = run_chain(pick, {"XYZ": xyz_index}, {}, ExitRules(), xyz_table, set())

        leg = chain.legs[0]
        assert (leg.sell_date, leg.sell_price) == ("2024-01-03", 9)
        assert leg.exit_reason is ExitReason.HOLD_TO_LATEST
        assert chain.state is ChainState.HOLDING_TO_LATEST
        assert chain.total_return_pct == pytest.approx((9 / 10.5 - 1) * 100)

    def test_missing_history(self, xyz_table):
        pick = xyz_table.pick_top_k("2024-01-01", 1)[0]
        chain = run_chain(pick, lambda ticker: None, {}, ExitRules(), xyz_table, set())
        assert chain.legs == []
        assert chain.state is ChainState.NO_FILL

    def test_no_open_after_signal(self, xyz_table):
        index = _index([("2023-12-29", 10, 10), ("2024-01-01", 10, 10)])
        pick = xyz_table.pick_top_k("2024-01-01", 1)[0]
        chain = run_chain(pick, {"XYZ": index}, {}, ExitRules(), xyz_table, set())
        assert chain.legs == []
        assert chain.state is ChainState.NO_FILL
        assert chain.total_return_pct == 0


class TestReentry:
    """Test chaining into replacement tickers."""

    @pytest.fixture
    def prices(self):
        return {
            "AAA": _index(
                [
                    ("2024-01-02", 10, 10),
                    ("2024-01-03", 11, 12),
                    ("2024-01-04", 12, 12),
                    ("2024-01-05", 12, 12),
                    ("2024-01-06", 12, 12),
                ]
            ),
            "BBB": _index(
                [
                    ("2024-01-02", 20, 20),
                    ("2024-01-04", 20, 21),
                    ("2024-01-05", 21, 21.5),
                    ("2024-01-06", 21, 21),
                ]
            ),
        }

    def test_take_profit_then_reenter(self, prices):
        table = select_entries([_rec("AAA", "2024-01-01", 90), _rec("BBB", "2024-01-03", 85)])
        pick = table.pick_top_k("2024-01-01", 1)[0]
        rules = ExitRules(use_take_profit=True, take_profit_pct=10)
        used = {"AAA"}

        chain = run_chain(pick, prices, {}, rules, table, used)

        assert chain.tickers == ["AAA", "BBB"]
        first, second = chain.legs
        assert (first.buy_date, first.sell_date, first.sell_price) == ("2024-01-02", "2024-01-03", 11)
        assert first.exit_reason is ExitReason.TAKE_PROFIT
        assert second.buy_date == "2024-01-04"
        assert second.buy_date >= first.sell_date
        assert second.entry_value == pytest.approx(1.1)
        assert second.exit_reason is ExitReason.HOLD_TO_LATEST
        assert chain.cumulative_value == pytest.approx(1.1 * 21 / 20)
        assert chain.state is ChainState.HOLDING_TO_LATEST
        assert used == {"AAA", "BBB"}

    def test_globally_excluded_replacement_skipped(self, prices):
        table = select_entries([_rec("AAA", "2024-01-01", 90), _rec("BBB", "2024-01-03", 85)])
        pick = table.pick_top_k("2024-01-01", 1)[0]
        rules = ExitRules(use_take_profit=True, take_profit_pct=10)

        chain = run_chain(pick, prices, {}, rules, table, {"AAA", "BBB"})

        assert chain.tickers == ["AAA"]
        assert chain.state is ChainState.TERMINATED


class TestTermination:
    """Chains always terminate."""

    @staticmethod
    def _always_exit_market(tickers, days):
        """Every ticker signals daily and gains >10% intraday every day."""
        records = [_rec(t, d, 90 - i) for d in days for i, t in enumerate(tickers)]
        prices = {t: _index([(d, 100, 115) for d in days]) for t in tickers}
        return select_entries(records), prices

    def test_cyclic_signals(self):
        """Two tickers that keep re-signalling cannot ping-pong forever."""
        days = list(pd.date_range("2024-01-01", periods=10, freq="D").strftime("%Y-%m-%d"))
        table, prices = self._always_exit_market(["AAA", "BBB"], days)
        rules = ExitRules(use_take_profit=True, take_profit_pct=10)
        pick = table.pick_top_k(days[0], 1)[0]

        chain = run_chain(pick, prices, {}, rules, table, {"AAA"})

        assert chain.tickers == ["AAA", "BBB"]
        assert chain.state is ChainState.TERMINATED

    def test_max_legs_cap(self):
        days = list(pd.date_range("2024-01-01", periods=60, freq="D").strftime("%Y-%m-%d"))
        tickers = [f"T{i:02d}" for i in range(30)]
        table, prices = self._always_exit_market(tickers, days)
        rules = ExitRules(use_take_profit=True, take_profit_pct=10)
        pick = table.pick_top_k(days[0], 1)[0]

        chain = run_chain(pick, prices, {}, rules, table, {pick.ticker})

        assert len(chain.legs) == MAX_LEGS
        assert chain.state is ChainState.MAX_LEGS
        assert len(set(chain.tickers)) == MAX_LEGS
        for prev, nxt in zip(chain.legs, chain.legs[1:]):
            assert nxt.buy_date >= prev.sell_date

    def test_custom_cap(self):
        days = list(pd.date_range("2024-01-01", periods=20, freq="D").strftime("%Y-%m-%d"))
        table, prices = self._always_exit_market([f"T{i}" for i in range(10)], days)
        rules = ExitRules(use_take_profit=True, take_profit_pct=10)
        pick = table.pick_top_k(days[0], 1)[0]

        chain = run_chain(pick, prices, {}, rules, table, set(), max_legs=3)

        assert len(chain.legs) == 3
        assert chain.state.is_terminal
