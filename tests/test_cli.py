"""
Tests for the command-line interface and formatting helpers.
"""

import json

import pytest
from click.testing import CliRunner

from tickwise.cli import cli
from tickwise.utils import format_percentage, format_price


@pytest.fixture
def feed_dir(tmp_path, monkeypatch):
    """Local feed directory; cwd moved so log files land in tmp_path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TICKWISE_BASE_URL", raising=False)
    feeds = tmp_path / "feeds"
    (feeds / "data").mkdir(parents=True)
    row = {"ticker": "XYZ", "date": "2024-01-01", "recommendation": "Buy", "tickwise_score": 80}
    (feeds / "hist_recommendations.json").write_text(json.dumps([row]))
    (feeds / "today_recommendations.json").write_text(
        json.dumps([row, {"ticker": "ABC", "date": "2024-01-01", "recommendation": "Sell"}])
    )
    (feeds / "data" / "XYZ.json").write_text(
        json.dumps(
            [
                {"date": "2024-01-01", "Open": 10, "Close": 10},
                {"date": "2024-01-02", "Open": 10.5, "Close": 11},
                {"date": "2024-01-03", "Open": 11, "Close": 9},
            ]
        )
    )
    return feeds


def _invoke(feed_dir, *args):
    return CliRunner().invoke(cli, ["--config", "missing.yaml", "--base-url", str(feed_dir), *args])


class TestCommands:
    """Test CLI commands against a local feed directory."""

    def test_backtest_json(self, feed_dir):
        result = _invoke(
            feed_dir, "backtest", "--lookback", "30", "--top", "1",
            "--trailing-stop", "10", "--as-of", "2024-01-31", "--json",
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output[result.output.index("{"):])
        assert data["sample"] == 1
        assert data["avg"] == pytest.approx(4.7619, abs=1e-3)
        assert data["detail_rows"][0]["exit_reason"] == "trailing_stop"

    def test_backtest_early_as_of(self, feed_dir):
        result = _invoke(feed_dir, "backtest", "--as-of", "2020-01-01", "--lookback", "1")
        assert result.exit_code == 0
        # Anchor falls back to the earliest signal date, so one pick is simulated
        assert "Average Return" in result.output
        assert "XYZ" in result.output

    def test_summary(self, feed_dir):
        result = _invoke(feed_dir, "summary")
        assert result.exit_code == 0
        assert "Buy: 1" in result.output
        assert "Sell: 1" in result.output

    def test_missing_base_url(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("TICKWISE_BASE_URL", raising=False)
        result = CliRunner().invoke(cli, ["--config", "missing.yaml", "summary"])
        assert result.exit_code == 1


class TestFormatting:
    """Test display helpers."""

    def test_format_percentage(self):
        assert format_percentage(5.0) == "+5.00%"
        assert format_percentage(-1.234, 1) == "-1.2%"
        assert format_percentage(0) == "0.00%"
        assert format_percentage(None) == "—"

    def test_format_price(self):
        assert format_price(1234.5) == "1,234.50"
        assert format_price(None) == "—"
