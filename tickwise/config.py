"""
Configuration models for TICKWISE.

Feed locations, backtest defaults and exit rules.
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .exit_rules import ExitRules


class FeedConfig(BaseModel):
    """Where the scoring pipeline publishes its JSON feeds."""

    base_url: str = Field(default="", description="Public base URL or local directory of the feeds")
    timeout: Optional[float] = Field(default=15.0, gt=0, description="HTTP timeout in seconds (None waits forever)")
    max_workers: int = Field(default=8, ge=1, le=64, description="Concurrent price history fetches")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class BacktestDefaults(BaseModel):
    """Default simulation parameters (all adjustable per run)."""

    lookback_days: int = Field(default=30, ge=1, le=3650, description="Days back to the anchor date")
    top_k: int = Field(default=5, ge=1, le=100, description="Picks taken on the anchor date")
    min_score: float = Field(default=70, ge=0, le=100, description="Entries need tickwise score above this")
    require_rising_trend: bool = Field(default=False, description="Require a rising 4-point score trend")
    max_legs: int = Field(default=20, ge=1, le=20, description="Safety cap on legs per chain")


class PathsConfig(BaseModel):
    """File path settings."""

    log_dir: str = Field(default="logs")


class Config(BaseModel):
    """Root configuration."""

    feeds: FeedConfig = Field(default_factory=FeedConfig)
    backtest: BacktestDefaults = Field(default_factory=BacktestDefaults)
    exit_rules: ExitRules = Field(default_factory=ExitRules)
    paths: PathsConfig = Field(default_factory=PathsConfig)


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from YAML file with environment variable override support.

    Environment variables take precedence over config file values:
    - TICKWISE_BASE_URL: Override feeds.base_url
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if "TICKWISE_BASE_URL" in os.environ:
        if "feeds" not in data:
            data["feeds"] = {}
        data["feeds"]["base_url"] = os.environ["TICKWISE_BASE_URL"]

    return Config(**data)


def get_default_config() -> Config:
    """Get configuration with all defaults (TICKWISE_BASE_URL still applies)."""
    config = Config()
    if "TICKWISE_BASE_URL" in os.environ:
        config.feeds = FeedConfig(base_url=os.environ["TICKWISE_BASE_URL"])
    return config
