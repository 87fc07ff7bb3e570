"""
Seasonal opportunity screening.

Fetches the benchmark once, bulk-fetches the candidates, then runs every
symbol through the aggregator, window scanner and active-period classifier
from memory, producing a feed ranked by absolute expected return.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable

import pandas as pd

from backend import (
    SeasonalProfile,
    SeasonalWindow,
    WindowScan,
    build_seasonal_profile,
    days_until_start,
    is_currently_active,
    scan_windows,
)
from bulk_fetch import BenchmarkUnavailableError, BulkFetchClient
from settings import Settings, get_settings
from ttl_cache import CacheKeys, TTLCache
from universe import Universe

logger = logging.getLogger(__name__)


class Sentiment(str, Enum):
    BULLISH = "Bullish"
    BEARISH = "Bearish"


@dataclass(frozen=True)
class SeasonalOpportunity:
    symbol: str
    company_name: str
    sentiment: Sentiment
    period: str
    start_date: str
    end_date: str
    average_return: float  # symbol minus benchmark over the window, %
    win_rate: float
    years_of_data: float
    days_until_start: int
    is_currently_active: bool

    def to_dict(self) -> dict:
        data = asdict(self)
        data["sentiment"] = self.sentiment.value
        return data


@dataclass(frozen=True)
class ScreenProgress:
    processed: int
    total: int
    found: int
    current_symbol: str


ProgressCallback = Callable[[ScreenProgress], None]


@dataclass
class SymbolAnalysis:
    """Everything computed for one symbol before the active-period gate."""
    symbol: str
    profile: SeasonalProfile
    scan: WindowScan
    years_of_data: float

    @property
    def outperform_window(self) -> SeasonalWindow | None:
        # Relative return is benchmark - symbol, so the lowest window is
        # where the symbol beat the benchmark most.
        return self.scan.worst

    @property
    def underperform_window(self) -> SeasonalWindow | None:
        return self.scan.best


def coverage_years(df: pd.DataFrame) -> float:
    """Span of the series in years, to one decimal."""
    if df is None or df.empty:
        return 0.0
    span_days = (df.index.max() - df.index.min()).days
    return round(span_days / 365.25, 1)


class SeasonalScreener:
    def __init__(
        self,
        client: BulkFetchClient,
        cache: TTLCache | None = None,
        settings: Settings | None = None,
        universe: Universe | None = None,
    ) -> None:
        self.client = client
        self.cache = cache if cache is not None else client.cache
        self.settings = settings or client.settings or get_settings()
        self.universe = universe or Universe.from_file(self.settings.universe_file)

    # -- per symbol -------------------------------------------------------------

    def analyze_symbol(
        self, symbol: str, symbol_df: pd.DataFrame, benchmark_df: pd.DataFrame
    ) -> SymbolAnalysis | None:
        """Profile and scan one symbol. None if it lacks history or a qualifying window."""
        years = coverage_years(symbol_df)
        if years < self.settings.min_years_of_data:
            logger.debug(
                "Skipping %s: %.1f years of data (need %.1f)",
                symbol, years, self.settings.min_years_of_data,
            )
            return None

        profile = build_seasonal_profile(symbol_df, benchmark_df)
        scan = scan_windows(
            profile.buckets,
            window_size=self.settings.window_size,
            min_buckets=self.settings.min_window_buckets,
        )
        if scan.best is None or scan.worst is None:
            logger.debug("Skipping %s: no window with enough data", symbol)
            return None
        return SymbolAnalysis(symbol=symbol, profile=profile, scan=scan, years_of_data=years)

    def _candidate(
        self,
        analysis: SymbolAnalysis,
        sentiment: Sentiment,
        today: dt.date,
    ) -> SeasonalOpportunity | None:
        bullish = sentiment is Sentiment.BULLISH
        window = analysis.outperform_window if bullish else analysis.underperform_window
        if window is None:
            return None
        average_return = -window.window_return
        # The window has to actually lean the way its label says
        if (bullish and average_return <= 0) or (not bullish and average_return >= 0):
            return None

        horizon = self.settings.active_horizon_days
        if not is_currently_active(window.start_date, today, horizon):
            return None

        return SeasonalOpportunity(
            symbol=analysis.symbol,
            company_name=self.universe.company_name(analysis.symbol),
            sentiment=sentiment,
            period=window.period,
            start_date=window.start_date,
            end_date=window.end_date,
            average_return=average_return,
            win_rate=analysis.profile.window_win_rate(window.start_day, window.end_day, outperform=bullish),
            years_of_data=analysis.years_of_data,
            days_until_start=days_until_start(window.start_date, today),
            is_currently_active=True,
        )

    def pick_opportunity(self, analysis: SymbolAnalysis, today: dt.date | None = None) -> SeasonalOpportunity | None:
        """At most one opportunity per symbol: the stronger active side, bullish on ties."""
        today = today or dt.date.today()
        bullish = self._candidate(analysis, Sentiment.BULLISH, today)
        bearish = self._candidate(analysis, Sentiment.BEARISH, today)
        if bullish and bearish:
            if abs(bearish.average_return) > abs(bullish.average_return):
                return bearish
            return bullish
        return bullish or bearish

    # -- scans ------------------------------------------------------------------

    def screen(
        self,
        candidate_symbols: list[str],
        lookback_years: int | None = None,
        max_concurrent_batches: int = 1,
        progress: ProgressCallback | None = None,
        today: dt.date | None = None,
    ) -> list[SeasonalOpportunity]:
        """
        Screen candidates for active seasonal windows.

        Raises BenchmarkUnavailableError if the benchmark cannot be fetched.
        Any per-symbol or per-batch failure only shortens the result.
        """
        lookback_years = lookback_years or self.settings.lookback_years
        today = today or dt.date.today()
        benchmark_symbol = self.settings.benchmark_symbol

        symbols = list(dict.fromkeys(candidate_symbols))
        logger.info(
            "Starting seasonal screening of %d symbols (%d years vs %s)",
            len(symbols), lookback_years, benchmark_symbol,
        )

        benchmark_df = self.client.fetch_benchmark(benchmark_symbol, lookback_years)
        histories = self.client.fetch_bulk(symbols, lookback_years, max_concurrent_batches)

        opportunities: list[SeasonalOpportunity] = []
        total = len(symbols)
        for processed, symbol in enumerate(symbols, start=1):
            symbol_df = histories.get(symbol)
            if symbol_df is not None:
                try:
                    analysis = self.analyze_symbol(symbol, symbol_df, benchmark_df)
                    opportunity = self.pick_opportunity(analysis, today) if analysis else None
                except Exception:
                    logger.warning("Failed to process %s", symbol, exc_info=True)
                    opportunity = None
                if opportunity is not None:
                    opportunities.append(opportunity)
                    logger.debug(
                        "Found %s seasonal for %s: %s (%+.2f%%)",
                        opportunity.sentiment.value, symbol, opportunity.period, opportunity.average_return,
                    )
            if progress is not None:
                progress(ScreenProgress(processed, total, len(opportunities), symbol))

        ranked = rank_opportunities(opportunities)
        bullish_count = sum(1 for o in ranked if o.sentiment is Sentiment.BULLISH)
        logger.info(
            "Screening complete: %d opportunities (%d bullish, %d bearish)",
            len(ranked), bullish_count, len(ranked) - bullish_count,
        )
        return ranked

    def screen_universe(
        self,
        offset: int = 0,
        limit: int | None = None,
        lookback_years: int | None = None,
        max_concurrent_batches: int = 1,
        progress: ProgressCallback | None = None,
        today: dt.date | None = None,
    ) -> list[SeasonalOpportunity]:
        """Screen a slice of the configured universe."""
        return self.screen(
            self.universe.slice(offset, limit),
            lookback_years=lookback_years,
            max_concurrent_batches=max_concurrent_batches,
            progress=progress,
            today=today,
        )

    def cached_opportunities(
        self, limit: int | None = None, refresh: bool = False, **kwargs
    ) -> list[SeasonalOpportunity]:
        """
        Return the top ``limit`` entries of the cached feed.

        The cache only ever holds the feed for the head of the universe
        (``preload_universe_size`` symbols); ``limit`` trims the ranked
        result and never narrows what gets screened or stored.
        """
        opportunities = None
        if self.cache is not None and not refresh:
            opportunities = self.cache.get(CacheKeys.SEASONAL_OPPORTUNITIES)
        if opportunities is None:
            opportunities = self.screen_universe(limit=self.settings.preload_universe_size, **kwargs)
            if self.cache is not None:
                self.cache.set(CacheKeys.SEASONAL_OPPORTUNITIES, opportunities)
        return opportunities if limit is None else opportunities[:limit]


def rank_opportunities(opportunities: list[SeasonalOpportunity]) -> list[SeasonalOpportunity]:
    """One entry per symbol, strongest absolute return first."""
    unique: dict[str, SeasonalOpportunity] = {}
    for opportunity in opportunities:
        unique.setdefault(opportunity.symbol, opportunity)
    return sorted(unique.values(), key=lambda o: (-abs(o.average_return), o.symbol))


__all__ = [
    "BenchmarkUnavailableError",
    "ScreenProgress",
    "SeasonalOpportunity",
    "SeasonalScreener",
    "Sentiment",
    "SymbolAnalysis",
    "coverage_years",
    "rank_opportunities",
]
