"""
Staged background cache population.

Phases are declared with a priority; each starts ``phase_spacing`` seconds
after the one ranked before it, on its own APScheduler job, so bulk work
warms the cache without competing with whatever the user is looking at.
A phase that fails is logged and never stops the others.
"""
from __future__ import annotations

import datetime as dt
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from bulk_fetch import BulkFetchClient, ScreenerError
from patterns import all_weekly_patterns, featured_patterns, market_patterns
from screener import SeasonalOpportunity, SeasonalScreener, rank_opportunities
from settings import Settings, get_settings
from ttl_cache import CacheKeys, TTLCache
from universe import ESSENTIAL_SYMBOLS, MARKET_INDICES, SECTOR_SYMBOLS

logger = logging.getLogger(__name__)

SEASONAL_CHUNK_SIZE = 25
CHUNK_PAUSE_SECONDS = 0.5


@dataclass
class PreloadPhase:
    name: str
    priority: int  # lower starts earlier
    task: Callable[[], None]
    state: str = "pending"  # pending, scheduled, running, done, failed
    error: str | None = None
    started_at: dt.datetime | None = None
    finished_at: dt.datetime | None = None


class BackgroundPreloader:
    def __init__(
        self,
        client: BulkFetchClient,
        cache: TTLCache,
        screener: SeasonalScreener | None = None,
        settings: Settings | None = None,
        scheduler: BackgroundScheduler | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.cache = cache
        self.settings = settings or get_settings()
        self.screener = screener or SeasonalScreener(client, cache, self.settings)
        self._sleep = sleep
        self.phases = self.default_phases()
        self._scheduler = scheduler or BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=len(self.phases))},
            job_defaults={"misfire_grace_time": None, "coalesce": True},
        )
        self._started = False
        self._start_lock = threading.Lock()

    def default_phases(self) -> list[PreloadPhase]:
        return [
            PreloadPhase("essential_data", 0, self.load_essential_data),
            PreloadPhase("featured_patterns", 1, self.load_featured_patterns),
            PreloadPhase("weekly_patterns", 2, self.load_weekly_patterns),
            PreloadPhase("sector_patterns", 3, self.load_sector_patterns),
            PreloadPhase("market_indices", 4, self.load_market_indices),
            PreloadPhase("seasonal_opportunities", 5, self.load_seasonal_opportunities),
        ]

    # -- scheduling ------------------------------------------------------------

    def schedule_offsets(self) -> dict[str, float]:
        """Seconds after start at which each phase begins."""
        ordered = sorted(self.phases, key=lambda p: p.priority)
        return {phase.name: rank * self.settings.phase_spacing for rank, phase in enumerate(ordered)}

    def start(self, now: dt.datetime | None = None) -> bool:
        """Schedule every phase once. Later calls are no-ops and return False."""
        with self._start_lock:
            if self._started:
                logger.debug("Background loading already started")
                return False
            self._started = True

        now = now or dt.datetime.now()
        offsets = self.schedule_offsets()
        for phase in sorted(self.phases, key=lambda p: p.priority):
            run_date = now + dt.timedelta(seconds=offsets[phase.name])
            self._scheduler.add_job(
                self.run_phase,
                DateTrigger(run_date=run_date),
                args=[phase],
                id=f"preload_{phase.name}",
                name=f"Preload {phase.name}",
                replace_existing=True,
            )
            phase.state = "scheduled"
        self._scheduler.start()
        logger.info("Background loading scheduled: %d phases", len(self.phases))
        return True

    def shutdown(self, wait: bool = False) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)

    @property
    def started(self) -> bool:
        return self._started

    def run_phase(self, phase: PreloadPhase) -> None:
        phase.state = "running"
        phase.started_at = dt.datetime.now()
        logger.info("Background loading: %s", phase.name)
        try:
            phase.task()
        except Exception as exc:
            phase.state = "failed"
            phase.error = str(exc)
            logger.exception("Background phase %s failed", phase.name)
        else:
            phase.state = "done"
        finally:
            phase.finished_at = dt.datetime.now()

    def run_all(self) -> None:
        """Run every phase in priority order on the calling thread."""
        for phase in sorted(self.phases, key=lambda p: p.priority):
            self.run_phase(phase)

    def status(self) -> dict:
        done = sum(1 for p in self.phases if p.state in ("done", "failed"))
        return {
            "started": self._started,
            "progress": done / len(self.phases) * 100 if self.phases else 100.0,
            "phases": [
                {
                    "name": p.name,
                    "priority": p.priority,
                    "state": p.state,
                    "error": p.error,
                }
                for p in sorted(self.phases, key=lambda p: p.priority)
            ],
        }

    # -- phases -------------------------------------------------------------------

    def _load_histories(self, symbols: list[str], days: int) -> None:
        end = dt.date.today()
        start = end - dt.timedelta(days=days)
        for symbol in symbols:
            key = CacheKeys.historical_data(symbol, start.isoformat(), end.isoformat())
            if self.cache.has(key):
                continue
            if self.client.fetch_series(symbol, start, end) is None:
                logger.warning("Failed to load history for %s", symbol)

    def load_essential_data(self) -> None:
        self._load_histories(ESSENTIAL_SYMBOLS, days=30)

    def load_market_indices(self) -> None:
        self._load_histories(MARKET_INDICES, days=365)

    def load_featured_patterns(self) -> None:
        if self.cache.has(CacheKeys.FEATURED_PATTERNS):
            return
        patterns = featured_patterns(self.client, universe=self.screener.universe)
        self.cache.set(CacheKeys.FEATURED_PATTERNS, patterns)

    def load_weekly_patterns(self) -> None:
        if self.cache.has(CacheKeys.WEEKLY_PATTERNS):
            return
        patterns = all_weekly_patterns(self.client, universe=self.screener.universe)
        self.cache.set(CacheKeys.WEEKLY_PATTERNS, patterns)
        logger.info("Loaded %d weekly patterns", len(patterns))

    def load_sector_patterns(self) -> None:
        for sector in SECTOR_SYMBOLS:
            key = CacheKeys.market_patterns(sector)
            if self.cache.has(key):
                continue
            try:
                self.cache.set(key, market_patterns(self.client, sector, universe=self.screener.universe))
            except ScreenerError as exc:
                logger.warning("Failed to load %s patterns: %s", sector, exc)
            self._sleep(CHUNK_PAUSE_SECONDS)

    def load_seasonal_opportunities(self) -> None:
        """Screen the head of the universe in chunks, then cache the merged feed."""
        if self.cache.has(CacheKeys.SEASONAL_OPPORTUNITIES):
            return
        total = min(self.settings.preload_universe_size, len(self.screener.universe))
        found: list[SeasonalOpportunity] = []
        for offset in range(0, total, SEASONAL_CHUNK_SIZE):
            limit = min(SEASONAL_CHUNK_SIZE, total - offset)
            try:
                found.extend(self.screener.screen_universe(offset=offset, limit=limit))
            except ScreenerError as exc:
                logger.warning("Failed seasonal chunk %d-%d: %s", offset, offset + limit, exc)
            if offset + limit < total:
                self._sleep(CHUNK_PAUSE_SECONDS)
        opportunities = rank_opportunities(found)
        self.cache.set(CacheKeys.SEASONAL_OPPORTUNITIES, opportunities)
        logger.info("Loaded %d seasonal opportunities", len(opportunities))
