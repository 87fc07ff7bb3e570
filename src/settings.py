"""
Settings for the seasonal screener.

All tunables are plain numbers on a ``Settings`` dataclass. ``get_settings``
reads ``SCREENER_*`` environment variables once and caches the result; tests
call ``reset_settings_cache`` after changing the environment.
"""
from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
    benchmark_symbol: str = "SPY"

    # Bulk fetch
    batch_size: int = 50
    inter_batch_delay: float = 0.1  # seconds between batch waves
    max_retries: int = 3
    retry_backoff: float = 2.0  # first retry delay, doubled per attempt

    # Cache
    cache_ttl_seconds: float = 300.0

    # Seasonal analysis
    lookback_years: int = 15
    min_years_of_data: float = 15.0
    window_size: int = 30
    min_window_buckets: int = 20
    active_horizon_days: int = 30

    # Background preloader
    phase_spacing: float = 2.0  # seconds between phase start times
    preload_universe_size: int = 100

    universe_file: str | None = None
    log_level: str = "INFO"

    def replace(self, **overrides) -> "Settings":
        """Return a copy with the given fields overridden."""
        return dataclasses.replace(self, **overrides)


def _env(name: str, default, cast):
    raw = os.getenv(f"SCREENER_{name}")
    if raw is None or raw == "":
        return default
    return cast(raw)


@lru_cache()
def get_settings() -> Settings:
    """Return settings loaded from environment variables."""
    defaults = Settings()
    return Settings(
        benchmark_symbol=_env("BENCHMARK", defaults.benchmark_symbol, str).upper(),
        batch_size=_env("BATCH_SIZE", defaults.batch_size, int),
        inter_batch_delay=_env("INTER_BATCH_DELAY", defaults.inter_batch_delay, float),
        max_retries=_env("MAX_RETRIES", defaults.max_retries, int),
        retry_backoff=_env("RETRY_BACKOFF", defaults.retry_backoff, float),
        cache_ttl_seconds=_env("CACHE_TTL", defaults.cache_ttl_seconds, float),
        lookback_years=_env("LOOKBACK_YEARS", defaults.lookback_years, int),
        min_years_of_data=_env("MIN_YEARS", defaults.min_years_of_data, float),
        window_size=_env("WINDOW_SIZE", defaults.window_size, int),
        min_window_buckets=_env("MIN_WINDOW_BUCKETS", defaults.min_window_buckets, int),
        active_horizon_days=_env("ACTIVE_HORIZON", defaults.active_horizon_days, int),
        phase_spacing=_env("PHASE_SPACING", defaults.phase_spacing, float),
        preload_universe_size=_env("PRELOAD_UNIVERSE_SIZE", defaults.preload_universe_size, int),
        universe_file=_env("UNIVERSE_FILE", defaults.universe_file, str),
        log_level=_env("LOG_LEVEL", defaults.log_level, str).upper(),
    )


def reset_settings_cache() -> None:
    """Clear the settings cache (mainly for tests)."""
    get_settings.cache_clear()
