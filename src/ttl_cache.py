"""
In-memory keyed cache with per-entry expiry.

One ``TTLCache`` is built at process start and handed to every component
that needs it. Expired entries are removed lazily by the first read that
sees them; there is no background sweep and no size limit.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass
class CacheEntry:
    key: str
    data: Any
    timestamp: float
    expiry: float  # absolute clock value after which the entry is stale

    def is_expired(self, now: float) -> bool:
        return now > self.expiry


class TTLCache:
    """Process-wide cache. Callers must not mutate returned payloads."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        # Preloader phases run on worker threads
        self._lock = threading.Lock()

    def set(self, key: str, data: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(key=key, data=data, timestamp=now, expiry=now + ttl)
        logger.debug("Cached data for key: %s (ttl=%.1fs)", key, ttl)

    def _live_entry(self, key: str) -> CacheEntry | None:
        """Return the entry if still valid, deleting it if expired. Lock must be held."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            logger.debug("Expired cache for key: %s", key)
            return None
        return entry

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._live_entry(key)
        if entry is None:
            return None
        logger.debug("Cache hit for key: %s", key)
        return entry.data

    def has(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Cache cleared")

    def stats(self) -> dict[str, int]:
        """Count entries without evicting anything."""
        now = self._clock()
        with self._lock:
            expired = sum(1 for entry in self._entries.values() if entry.is_expired(now))
            total = len(self._entries)
        return {"total": total, "expired": expired, "active": total - expired}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class CacheKeys:
    """Key construction rules shared by every cache user."""

    SEASONAL_OPPORTUNITIES = "seasonal_opportunities"
    FEATURED_PATTERNS = "featured_patterns"
    WEEKLY_PATTERNS = "weekly_patterns"

    @staticmethod
    def market_data(symbol: str) -> str:
        return f"market_data_{symbol}"

    @staticmethod
    def ticker_details(symbol: str) -> str:
        return f"ticker_details_{symbol}"

    @staticmethod
    def market_patterns(market: str) -> str:
        return f"market_patterns_{market}"

    @staticmethod
    def historical_data(symbol: str, start: str, end: str) -> str:
        return f"historical_{symbol}_{start}_{end}"
