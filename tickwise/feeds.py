"""
Feed access for TICKWISE.

Provides:
- JSON feed fetching over HTTP (or from a local directory)
- Per-ticker price history cache with concurrent fan-out loading
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Set

import requests

from .price_index import PriceIndex

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """Raised when a feed cannot be fetched or decoded."""

    pass


class FeedClient:
    """
    Reads the JSON documents published by the scoring pipeline.

    Layout under base_url:
    - today_recommendations.json
    - hist_recommendations.json
    - data/<TICKER>.json
    """

    TODAY_FEED = "today_recommendations.json"
    HISTORY_FEED = "hist_recommendations.json"

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = 15.0,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise ValueError("Feed base URL is not set")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._is_local = "://" not in self.base_url

    def _get_json(self, path: str) -> Any:
        if self._is_local:
            file_path = Path(self.base_url) / path
            try:
                with open(file_path, encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                raise FeedError(f"Failed to read {file_path}: {e}") from e

        url = f"{self.base_url}/{path}"
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise FeedError(f"Failed to fetch {url}: {e}") from e
        except ValueError as e:
            raise FeedError(f"Invalid JSON from {url}: {e}") from e

    def _get_rows(self, path: str) -> List[Any]:
        data = self._get_json(path)
        if not isinstance(data, list):
            logger.warning(f"{path} did not return an array")
            return []
        return data

    def today_recommendations(self) -> List[Any]:
        """Current-day recommendation snapshot rows."""
        return self._get_rows(self.TODAY_FEED)

    def historical_recommendations(self) -> Any:
        """Historical recommendation rows (list, or a date-keyed mapping)."""
        data = self._get_json(self.HISTORY_FEED)
        return data if isinstance(data, (list, dict)) else []

    def price_history(self, ticker: str) -> List[Any]:
        """Raw daily OHLC rows for one ticker."""
        return self._get_rows(f"data/{ticker}.json")


class PriceHistoryCache:
    """
    Ticker -> PriceIndex cache shared across legs, chains and runs.

    Missing tickers are fetched concurrently; a failed fetch marks the ticker
    unavailable for the cache lifetime instead of failing the run.
    """

    def __init__(self, client: FeedClient, max_workers: int = 8):
        self.client = client
        self.max_workers = max_workers
        self._indexes: Dict[str, PriceIndex] = {}
        self._failed: Set[str] = set()
        self._lock = Lock()

    def __contains__(self, ticker: str) -> bool:
        with self._lock:
            return ticker in self._indexes

    def _load_single(self, ticker: str) -> PriceIndex:
        return PriceIndex.build(self.client.price_history(ticker))

    def get(self, ticker: str) -> Optional[PriceIndex]:
        """Cached index for one ticker, fetching it if needed."""
        return self.get_many([ticker]).get(ticker)

    def get_many(self, tickers: Iterable[str]) -> Dict[str, PriceIndex]:
        """
        Indexes for the requested tickers.

        Returns:
            Dict of ticker -> PriceIndex; unavailable tickers are absent
        """
        wanted = list(dict.fromkeys(t for t in tickers if t))
        with self._lock:
            missing = [t for t in wanted if t not in self._indexes and t not in self._failed]

        if missing:
            workers = min(self.max_workers, len(missing))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {executor.submit(self._load_single, t): t for t in missing}
                for future in as_completed(futures):
                    ticker = futures[future]
                    try:
                        index = future.result()
                    except FeedError as e:
                        logger.warning(f"Price history unavailable for {ticker}: {e}")
                        with self._lock:
                            self._failed.add(ticker)
                        continue
                    with self._lock:
                        self._indexes[ticker] = index
            logger.debug(f"Loaded {len(missing)} price histories")

        with self._lock:
            return {t: self._indexes[t] for t in wanted if t in self._indexes}

    def put(self, ticker: str, index: PriceIndex) -> None:
        """Seed the cache (used by offline runs and tests)."""
        with self._lock:
            self._indexes[ticker] = index
            self._failed.discard(ticker)

    def clear(self) -> None:
        with self._lock:
            self._indexes.clear()
            self._failed.clear()
