"""
Thread-Safe Cached Page Fetcher
===============================

Page fetching with per-category expiry caching in front of the stats
provider. Thread-safe for the inning fan-out.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional

import requests

from scorebook.errors import UpstreamFetchError

logger = logging.getLogger(__name__)


class TtlCache:
    """Expiry-at-timestamp map; expired entries are dropped on read"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.RLock()
        self._store: Dict[Hashable, tuple] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None

            expires_at, value = entry
            if self._clock() > expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: Hashable, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._store[key] = (self._clock() + ttl_seconds, value)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class CachedPageFetcher:
    """Thread-safe text fetcher with caching and retries"""

    # Cache expiry in seconds per category
    CACHE_EXPIRY = {
        "event": 5 * 60,     # event metadata rarely changes
        "live": 15,          # live pages refresh every poll
        "final": 30,         # final game views
        "general": 60,
    }

    def __init__(
        self,
        timeout: float = 20,
        max_retries: int = 3,
        cache_expiry: Optional[Dict[str, float]] = None,
        session: Optional[requests.Session] = None,
        cache: Optional[TtlCache] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize fetcher

        Args:
            timeout: Per-request timeout in seconds
            max_retries: Number of attempts before giving up
            cache_expiry: Overrides for CACHE_EXPIRY
            session: requests session (a new one by default)
            cache: Backing TtlCache (a new one by default)
            sleep: Backoff sleep, replaceable in tests
        """
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.cache_expiry = {**self.CACHE_EXPIRY, **(cache_expiry or {})}
        self.session = session or requests.Session()
        self.cache = cache if cache is not None else TtlCache()
        self._sleep = sleep
        self._stats_lock = threading.Lock()
        self.stats = {"cache_hits": 0, "cache_misses": 0, "total_requests": 0}

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self.stats[name] += 1

    def fetch_text(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        category: str = "general",
        force_refresh: bool = False,
    ) -> str:
        """
        Fetch a page body with caching and retries

        Args:
            url: URL to fetch
            params: Query parameters
            category: Cache category (see CACHE_EXPIRY)
            force_refresh: Skip cache and fetch fresh data

        Returns:
            Response body text

        Raises:
            UpstreamFetchError: after max_retries failed attempts or on an empty body
        """
        cache_key = (url, tuple(sorted((params or {}).items())))
        self._count("total_requests")

        if not force_refresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                self._count("cache_hits")
                logger.debug(f"Cache hit for {category}: {url[:80]}")
                return cached

        self._count("cache_misses")
        logger.debug(f"Fetching fresh data: {url[:80]}")

        body = None
        for attempt in range(self.max_retries):
            try:
                response = self.session.get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                body = response.text
                break
            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    wait_time = 3 * (attempt + 1)
                    logger.warning(f"Attempt {attempt + 1} failed for {url}: {e}. Retrying in {wait_time}s...")
                    self._sleep(wait_time)
                else:
                    logger.error(f"Failed to fetch {url} after {self.max_retries} attempts: {e}")
                    raise UpstreamFetchError(url, f"{self.max_retries} attempts failed: {e}") from e

        if not body or not body.strip():
            raise UpstreamFetchError(url, "empty response")

        self.cache.set(cache_key, body, self.cache_expiry.get(category, self.cache_expiry["general"]))
        return body

    def get_cache_stats(self) -> dict:
        """Get cache performance statistics"""
        with self._stats_lock:
            stats = dict(self.stats)

        total_requests = stats["total_requests"]
        stats["hit_rate_percentage"] = (stats["cache_hits"] / total_requests * 100) if total_requests > 0 else 0
        stats["cached_entries"] = len(self.cache)
        return stats
