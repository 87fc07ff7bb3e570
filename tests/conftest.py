"""Shared test fixtures."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import pandas as pd
import pytest

from backend import normalized_day_of_year
from bulk_fetch import BulkFetchClient, HistoricalDataProvider
from settings import Settings, reset_settings_cache
from ttl_cache import TTLCache
from universe import Universe


class FakeProvider(HistoricalDataProvider):
    """In-memory provider. Dates are ignored; every call returns the whole frame."""

    def __init__(self, frames=None, payloads=None, raise_for=()):
        self.frames = dict(frames or {})
        self.payloads = dict(payloads or {})  # raw per-symbol payload overrides
        self.raise_for = set(raise_for)  # any batch containing one of these raises
        self.bulk_calls = []
        self.series_calls = []

    def get_historical_series(self, symbol, start, end):
        self.series_calls.append(symbol)
        df = self.frames.get(symbol)
        if df is None:
            return None
        return {"results": df}

    def get_bulk_historical_series(self, symbols, lookback_days):
        self.bulk_calls.append(list(symbols))
        if self.raise_for & set(symbols):
            raise ConnectionError("provider unavailable")
        data = {}
        for symbol in symbols:
            if symbol in self.payloads:
                data[symbol] = self.payloads[symbol]
            elif symbol in self.frames:
                data[symbol] = {"results": self.frames[symbol]}
        return {"success": True, "data": data, "errors": []}


def make_price_frame(dates: pd.DatetimeIndex, returns: np.ndarray, start_price: float = 100.0) -> pd.DataFrame:
    closes = start_price * np.cumprod(1 + returns)
    return pd.DataFrame(
        {
            "Open": closes * 0.999,
            "High": closes * 1.01,
            "Low": closes * 0.99,
            "Close": closes,
            "Volume": 1_000_000.0,
        },
        index=dates,
    )


def planted_returns(dates: pd.DatetimeIndex, start_day: int, length: int, total_pct: float) -> np.ndarray:
    """Extra daily return that adds up to ``total_pct`` over a ``length``-day calendar window."""
    doy = normalized_day_of_year(dates)
    inside = (doy >= start_day) & (doy < start_day + length)
    return np.where(inside, total_pct / length / 100, 0.0)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Environment-driven settings must not leak between tests."""
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def settings() -> Settings:
    return Settings(inter_batch_delay=0.0, retry_backoff=2.0, max_retries=3)


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def make_client(settings, sleeps):
    def _make(provider, cache=None, **overrides):
        client_settings = settings.replace(**overrides) if overrides else settings
        return BulkFetchClient(
            provider=provider,
            cache=cache if cache is not None else TTLCache(),
            settings=client_settings,
            sleep=sleeps.append,
        )
    return _make


@pytest.fixture
def benchmark_returns():
    """20 years of business-day benchmark returns with 1% daily noise."""
    dates = pd.bdate_range("2004-01-01", "2023-12-31")
    rng = np.random.default_rng(7)
    return dates, rng.normal(0.0003, 0.01, len(dates))


@pytest.fixture
def small_universe() -> Universe:
    return Universe([("AAA", "Alpha Corp"), ("BBB", "Beta Inc."), ("CCC", "Gamma plc")])
