"""
Tests for configuration loading.
"""

import pytest
from pydantic import ValidationError

from tickwise.config import Config, get_default_config, load_config


class TestDefaults:
    """Test default configuration values."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("TICKWISE_BASE_URL", raising=False)
        config = get_default_config()
        assert config.feeds.base_url == ""
        assert config.feeds.timeout == 15.0
        assert config.backtest.lookback_days == 30
        assert config.backtest.top_k == 5
        assert config.backtest.max_legs == 20
        assert config.exit_rules.trailing_stop_pct == 8
        assert config.paths.log_dir == "logs"

    def test_env_override_on_defaults(self, monkeypatch):
        monkeypatch.setenv("TICKWISE_BASE_URL", "https://env.example.com/")
        assert get_default_config().feeds.base_url == "https://env.example.com"


class TestLoadConfig:
    """Test YAML loading."""

    def test_load_yaml(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TICKWISE_BASE_URL", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(
            "feeds:\n"
            "  base_url: https://feeds.example.com/\n"
            "  max_workers: 4\n"
            "backtest:\n"
            "  lookback_days: 60\n"
            "  top_k: 3\n"
            "exit_rules:\n"
            "  use_trailing_stop: true\n"
            "  trailing_stop_pct: 12\n"
        )

        config = load_config(str(path))

        assert config.feeds.base_url == "https://feeds.example.com"
        assert config.feeds.max_workers == 4
        assert (config.backtest.lookback_days, config.backtest.top_k) == (60, 3)
        assert config.exit_rules.use_trailing_stop
        assert config.exit_rules.trailing_stop_pct == 12

    def test_empty_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TICKWISE_BASE_URL", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(str(path)) == Config()

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TICKWISE_BASE_URL", "/srv/feeds")
        path = tmp_path / "config.yaml"
        path.write_text("feeds:\n  base_url: https://feeds.example.com\n")
        assert load_config(str(path)).feeds.base_url == "/srv/feeds"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_invalid_values(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TICKWISE_BASE_URL", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("backtest:\n  max_legs: 50\n")
        with pytest.raises(ValidationError):
            load_config(str(path))
