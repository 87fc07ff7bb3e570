"""
Bulk historical data fetching.

Turns a symbol list into batched provider calls. A failed batch or a
malformed symbol payload only drops those symbols from the result; the
benchmark is the one series whose absence is fatal.
"""
from __future__ import annotations

import datetime as dt
import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterable

import numpy as np
import pandas as pd
import yfinance as yf

from settings import Settings, get_settings
from ttl_cache import CacheKeys, TTLCache

logger = logging.getLogger(__name__)

PRICE_COLUMNS = ["Open", "High", "Low", "Close", "Volume"]

# Polygon-style short keys and long names both map onto frame columns
_BAR_KEYS = {
    "t": "timestamp",
    "o": "Open",
    "h": "High",
    "l": "Low",
    "c": "Close",
    "v": "Volume",
    "timestamp": "timestamp",
    "date": "timestamp",
    "open": "Open",
    "high": "High",
    "low": "Low",
    "close": "Close",
    "volume": "Volume",
}


# =============================================================================
# Errors
# =============================================================================

class ScreenerError(Exception):
    """Base class for screening failures."""


class ProviderError(ScreenerError):
    """A provider call failed after all retries."""


class BenchmarkUnavailableError(ScreenerError):
    """No benchmark history, so no relative return can be computed."""


# =============================================================================
# Price Data
# =============================================================================

@dataclass(frozen=True)
class PriceBar:
    """One trading day for one symbol."""
    timestamp: dt.datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


def bars_to_frame(bars: Iterable[PriceBar]) -> pd.DataFrame:
    return normalize_series([bar.to_dict() for bar in bars])


def frame_to_bars(df: pd.DataFrame) -> list[PriceBar]:
    bars = []
    for ts, row in df.iterrows():
        bars.append(
            PriceBar(
                timestamp=ts.to_pydatetime(),
                open=float(row.get("Open", np.nan)),
                high=float(row.get("High", np.nan)),
                low=float(row.get("Low", np.nan)),
                close=float(row["Close"]),
                volume=float(row.get("Volume", 0.0)),
            )
        )
    return bars


def _normalize_df(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame()
    df = df.copy()
    # Handle multi-level columns from yfinance (Price, Ticker)
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.get_level_values(0)
    if "timestamp" in df.columns:
        df = df.set_index("timestamp")
    # Normalize index to timezone-naive dates
    if pd.api.types.is_numeric_dtype(df.index):
        idx = pd.to_datetime(df.index, unit="ms", errors="coerce")
    else:
        idx = pd.to_datetime(df.index, errors="coerce")
    if idx.tz is not None:
        idx = idx.tz_localize(None)
    df.index = idx.normalize()
    df = df[df.index.notna()]
    df = df.rename(columns=str.title)
    if "Close" not in df.columns:
        return pd.DataFrame()
    columns = [col for col in PRICE_COLUMNS if col in df.columns]
    df = df[columns].apply(pd.to_numeric, errors="coerce")
    df = df[df["Close"].notna() & (df["Close"] > 0)]
    df = df[~df.index.duplicated(keep="last")]
    return df.sort_index()


def normalize_series(payload: Any) -> pd.DataFrame:
    """
    Coerce a provider payload into a date-indexed OHLCV frame.

    Accepts a DataFrame, a ``{"results": [...]}`` dict, or a list of bars
    (dicts with short or long keys, or ``PriceBar``). Anything unusable
    comes back as an empty frame.
    """
    if payload is None:
        return pd.DataFrame()
    if isinstance(payload, pd.DataFrame):
        return _normalize_df(payload)
    if isinstance(payload, dict):
        payload = payload.get("results")
        if isinstance(payload, pd.DataFrame):
            return _normalize_df(payload)
    if not isinstance(payload, (list, tuple)) or not payload:
        return pd.DataFrame()

    records = []
    for bar in payload:
        if isinstance(bar, PriceBar):
            bar = bar.to_dict()
        if not isinstance(bar, dict):
            continue
        records.append({_BAR_KEYS[k]: v for k, v in bar.items() if k in _BAR_KEYS})
    if not records:
        return pd.DataFrame()
    df = pd.DataFrame.from_records(records)
    if "timestamp" not in df.columns:
        return pd.DataFrame()
    return _normalize_df(df)


# =============================================================================
# Providers
# =============================================================================

class HistoricalDataProvider(ABC):
    """Source of daily bars. Responses are treated as already-validated JSON."""

    @abstractmethod
    def get_historical_series(self, symbol: str, start: dt.date, end: dt.date) -> dict | None:
        """Return ``{"results": [bars]}`` or None."""

    @abstractmethod
    def get_bulk_historical_series(self, symbols: list[str], lookback_days: int) -> dict:
        """Return ``{"success": bool, "data": {symbol: {"results": [bars]}}, "errors": [...]}``."""


class YahooFinanceProvider(HistoricalDataProvider):
    """Daily bars from Yahoo Finance."""

    def __init__(self, auto_adjust: bool = False) -> None:
        self.auto_adjust = auto_adjust

    def get_historical_series(self, symbol: str, start: dt.date, end: dt.date) -> dict | None:
        df = yf.download(
            symbol,
            start=start,
            end=end + dt.timedelta(days=1),
            progress=False,
            auto_adjust=self.auto_adjust,
            threads=False,
        )
        df = _normalize_df(df)
        if df.empty:
            return None
        return {"results": df}

    def get_bulk_historical_series(self, symbols: list[str], lookback_days: int) -> dict:
        end = dt.date.today() + dt.timedelta(days=1)
        start = end - dt.timedelta(days=lookback_days + 1)
        df = yf.download(
            symbols,
            start=start,
            end=end,
            progress=False,
            auto_adjust=self.auto_adjust,
            group_by="ticker",
            threads=False,
        )
        data: dict[str, dict] = {}
        errors: list[str] = []
        for symbol in symbols:
            try:
                if isinstance(df.columns, pd.MultiIndex):
                    symbol_df = df[symbol]
                else:
                    symbol_df = df
                symbol_df = _normalize_df(symbol_df.dropna(how="all"))
            except KeyError:
                symbol_df = pd.DataFrame()
            if symbol_df.empty:
                errors.append(f"{symbol}: no data")
                continue
            data[symbol] = {"results": symbol_df}
        # The download itself succeeded; symbols without bars are per-symbol misses
        return {"success": True, "data": data, "errors": errors}


# =============================================================================
# Bulk Fetch Client
# =============================================================================

def lookback_range(lookback_years: int, today: dt.date | None = None) -> tuple[dt.date, dt.date]:
    """Return (start, end) covering ``lookback_years`` calendar years up to today."""
    end = today or dt.date.today()
    try:
        start = end.replace(year=end.year - lookback_years)
    except ValueError:  # Feb 29
        start = end.replace(year=end.year - lookback_years, day=28)
    return start, end


class BulkFetchClient:
    """Batched, retrying front end to a ``HistoricalDataProvider``."""

    def __init__(
        self,
        provider: HistoricalDataProvider | None = None,
        cache: TTLCache | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self.provider = provider or YahooFinanceProvider()
        self.cache = cache
        self._sleep = sleep

    # -- batching -------------------------------------------------------------

    def batches(self, symbols: list[str]) -> list[list[str]]:
        size = max(1, self.settings.batch_size)
        return [symbols[i:i + size] for i in range(0, len(symbols), size)]

    def _with_retries(self, description: str, call: Callable[[], Any]) -> Any:
        attempts = max(1, self.settings.max_retries)
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                return call()
            except Exception as exc:
                last_error = exc
                logger.warning("%s failed (attempt %d/%d): %s", description, attempt, attempts, exc)
                if attempt < attempts:
                    self._sleep(self.settings.retry_backoff * 2 ** (attempt - 1))
        raise ProviderError(f"{description} failed after {attempts} attempts") from last_error

    def _fetch_batch(self, batch: list[str], lookback_days: int) -> dict[str, pd.DataFrame]:
        def call() -> dict:
            response = self.provider.get_bulk_historical_series(batch, lookback_days)
            if not isinstance(response, dict) or response.get("success") is False:
                raise ProviderError(f"unsuccessful response: {response!r:.200}")
            return response

        response = self._with_retries(f"Batch of {len(batch)} ({batch[0]}..)", call)
        data = response.get("data") or {}
        if not isinstance(data, dict):
            logger.warning("Batch starting %s returned malformed data", batch[0])
            return {}

        results: dict[str, pd.DataFrame] = {}
        for symbol in batch:
            try:
                df = normalize_series(data.get(symbol))
            except (TypeError, ValueError) as exc:
                logger.debug("Malformed payload for %s: %s", symbol, exc)
                continue
            if df.empty:
                logger.debug("No usable data for %s", symbol)
                continue
            results[symbol] = df
        return results

    def _fetch_batch_safely(self, batch: list[str], lookback_days: int) -> dict[str, pd.DataFrame]:
        try:
            return self._fetch_batch(batch, lookback_days)
        except ProviderError as exc:
            logger.error("Skipping batch of %d symbols: %s", len(batch), exc)
            return {}

    def fetch_bulk(
        self,
        symbols: list[str],
        lookback_years: int,
        max_concurrent_batches: int = 1,
    ) -> dict[str, pd.DataFrame]:
        """
        Fetch daily history for many symbols.

        Symbols whose batch failed, or whose payload was missing or
        malformed, are left out of the returned mapping.
        """
        start, end = lookback_range(lookback_years)
        lookback_days = (end - start).days
        batches = self.batches(list(symbols))
        wave_size = max(1, max_concurrent_batches)
        results: dict[str, pd.DataFrame] = {}

        logger.info(
            "Bulk fetch: %d symbols in %d batches (%d concurrent)",
            len(symbols), len(batches), wave_size,
        )
        for wave_start in range(0, len(batches), wave_size):
            wave = batches[wave_start:wave_start + wave_size]
            if len(wave) == 1:
                wave_results = [self._fetch_batch_safely(wave[0], lookback_days)]
            else:
                with ThreadPoolExecutor(max_workers=len(wave)) as pool:
                    wave_results = list(
                        pool.map(lambda b: self._fetch_batch_safely(b, lookback_days), wave)
                    )
            for batch_result in wave_results:
                results.update(batch_result)

            if wave_start + wave_size < len(batches):
                self._sleep(self.settings.inter_batch_delay)

        logger.info("Bulk fetch complete: %d/%d symbols", len(results), len(symbols))
        return results

    # -- single series ------------------------------------------------------------

    def fetch_series(self, symbol: str, start: dt.date, end: dt.date) -> pd.DataFrame | None:
        """Fetch one symbol's history, using the cache when one is attached."""
        key = CacheKeys.historical_data(symbol, start.isoformat(), end.isoformat())
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        try:
            response = self._with_retries(
                f"History for {symbol}",
                lambda: self.provider.get_historical_series(symbol, start, end),
            )
        except ProviderError as exc:
            logger.warning("%s", exc)
            return None

        df = normalize_series(response)
        if df.empty:
            logger.warning("No historical data for %s (%s to %s)", symbol, start, end)
            return None
        if self.cache is not None:
            self.cache.set(key, df)
        return df

    def fetch_benchmark(self, symbol: str, lookback_years: int) -> pd.DataFrame:
        start, end = lookback_range(lookback_years)
        df = self.fetch_series(symbol, start, end)
        if df is None or df.empty:
            raise BenchmarkUnavailableError(f"Failed to get {symbol} data for comparison")
        logger.info("%s data loaded: %d data points", symbol, len(df))
        return df
