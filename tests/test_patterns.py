"""Tests for monthly and weekday patterns."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from conftest import FakeProvider, make_price_frame
from patterns import (
    all_weekly_patterns,
    featured_patterns,
    market_patterns,
    monthly_pattern,
    weekly_patterns,
)
from universe import FEATURED_SYMBOLS, SECTOR_SYMBOLS, WEEKLY_SYMBOLS


@pytest.fixture
def march_rally() -> pd.DataFrame:
    """Three years of quiet prices that jump every March."""
    dates = pd.bdate_range("2021-01-01", "2023-12-31")
    rng = np.random.default_rng(5)
    returns = rng.normal(0, 0.002, len(dates))
    returns[dates.month == 3] += 0.01
    return make_price_frame(dates, returns)


@pytest.fixture
def monday_drift() -> pd.DataFrame:
    dates = pd.bdate_range("2022-01-03", "2023-12-29")
    returns = np.full(len(dates), -0.001)
    returns[dates.dayofweek == 0] = 0.004
    return make_price_frame(dates, returns)


class TestMonthlyPattern:
    def test_strongest_month(self, march_rally):
        pattern = monthly_pattern("AAPL", march_rally, "Apple Inc.", "Technology")
        assert pattern.period == "Mar 1 - Mar 31"
        assert pattern.pattern == "Mar Bullish Pattern"
        assert pattern.category == "Bullish"
        assert pattern.avg_return == pytest.approx(1.0, abs=0.1)
        assert pattern.confidence == "High"
        assert pattern.risk_level == "Low"
        assert pattern.years == 3
        assert pattern.sector == "Technology"
        assert pattern.current_price == pytest.approx(march_rally["Close"].iloc[-1])

    def test_bearish_month(self, march_rally):
        inverted = march_rally.copy()
        inverted["Close"] = 1_000_000 / march_rally["Close"]
        pattern = monthly_pattern("X", inverted)
        assert pattern.category == "Bearish"
        assert pattern.start_date == "Mar 1"

    def test_needs_a_year_of_bars(self, march_rally):
        assert monthly_pattern("X", march_rally.iloc[:200]) is None
        assert monthly_pattern("X", None) is None

    def test_to_dict(self, march_rally):
        data = monthly_pattern("AAPL", march_rally).to_dict()
        assert data["company_name"] == "AAPL"
        assert data["end_date"] == "Mar 31"


class TestWeeklyPatterns:
    def test_every_weekday(self, monday_drift):
        patterns = weekly_patterns("SPY", monday_drift, "SPDR S&P 500")
        assert [p.day_of_week for p in patterns] == ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
        monday = patterns[0]
        assert monday.avg_return == pytest.approx(0.4)
        assert monday.win_rate == 100
        assert monday.confidence == "High"
        assert patterns[1].confidence == "Low"
        assert monday.to_dict()["pattern"] == "Monday Pattern"

    def test_too_few_samples(self, monday_drift):
        assert weekly_patterns("SPY", monday_drift.iloc[:30]) == []
        assert weekly_patterns("SPY", pd.DataFrame()) == []


class TestPatternLists:
    @pytest.fixture
    def client(self, march_rally, make_client):
        symbols = set(FEATURED_SYMBOLS) | set(WEEKLY_SYMBOLS) | set(SECTOR_SYMBOLS["Technology"])
        return make_client(FakeProvider({s: march_rally for s in symbols}))

    def test_featured(self, client):
        patterns = featured_patterns(client)
        assert [p.symbol for p in patterns] == FEATURED_SYMBOLS
        assert patterns[0].company_name == "Apple Inc."

    def test_market(self, client):
        patterns = market_patterns(client, "Technology")
        assert [p.symbol for p in patterns] == SECTOR_SYMBOLS["Technology"]
        assert {p.sector for p in patterns} == {"Technology"}

    def test_unknown_market_uses_sp500(self, client):
        patterns = market_patterns(client, "Crypto")
        # only the SP500 members the fake provider knows about
        assert [p.symbol for p in patterns] == [s for s in SECTOR_SYMBOLS["SP500"] if s in client.provider.frames]

    def test_weekly(self, client):
        patterns = all_weekly_patterns(client)
        assert {p.symbol for p in patterns} == set(WEEKLY_SYMBOLS)
