"""
Calendar-month and day-of-week return patterns.

Lighter-weight companions to the 30-day window scan, used for the featured,
sector and weekly pattern lists the preloader keeps warm.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

import pandas as pd

from backend import MONTH_NAMES
from bulk_fetch import BulkFetchClient
from universe import FEATURED_SYMBOLS, SECTOR_SYMBOLS, WEEKLY_SYMBOLS, Universe

logger = logging.getLogger(__name__)

TRADING_DAYS_PER_YEAR = 252
MIN_MONTH_SAMPLES = 3
MIN_WEEKDAY_SAMPLES = 10
WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]


@dataclass(frozen=True)
class SeasonalPattern:
    symbol: str
    company_name: str
    sector: str
    pattern: str
    period: str
    start_date: str
    end_date: str
    avg_return: float
    win_rate: float
    years: int
    confidence: str
    category: str  # Bullish / Bearish
    risk_level: str
    current_price: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class WeeklyPattern:
    symbol: str
    company_name: str
    day_of_week: str
    avg_return: float
    win_rate: float
    confidence: str
    years: int

    @property
    def pattern(self) -> str:
        return f"{self.day_of_week} Pattern"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["pattern"] = self.pattern
        return data


def _daily_returns(df: pd.DataFrame) -> pd.Series:
    return (df["Close"].pct_change() * 100).dropna()


def monthly_pattern(
    symbol: str,
    df: pd.DataFrame,
    company_name: str | None = None,
    sector: str = "Market",
) -> SeasonalPattern | None:
    """Strongest calendar month by absolute mean daily return."""
    if df is None or len(df) < TRADING_DAYS_PER_YEAR:
        return None
    returns = _daily_returns(df)
    by_month = returns.groupby(returns.index.month)

    best_month = None
    best_avg = 0.0
    best_win = 0.0
    for month, month_returns in by_month:
        if len(month_returns) < MIN_MONTH_SAMPLES:
            continue
        avg = float(month_returns.mean())
        if best_month is None or abs(avg) > abs(best_avg):
            best_month = int(month)
            best_avg = avg
            best_win = float((month_returns > 0).mean() * 100)
    if best_month is None:
        return None

    month_name = MONTH_NAMES[best_month - 1]
    last_day = pd.Timestamp(year=2023, month=best_month, day=1).days_in_month
    category = "Bullish" if best_avg > 0 else "Bearish"
    if best_win > 70:
        confidence = "High"
    elif best_win > 50:
        confidence = "Medium"
    else:
        confidence = "Low"
    if abs(best_avg) > 5:
        risk = "High"
    elif abs(best_avg) > 2:
        risk = "Medium"
    else:
        risk = "Low"

    return SeasonalPattern(
        symbol=symbol,
        company_name=company_name or symbol,
        sector=sector,
        pattern=f"{month_name} {category} Pattern",
        period=f"{month_name} 1 - {month_name} {last_day}",
        start_date=f"{month_name} 1",
        end_date=f"{month_name} {last_day}",
        avg_return=round(best_avg, 2),
        win_rate=round(best_win),
        years=len(df) // TRADING_DAYS_PER_YEAR,
        confidence=confidence,
        category=category,
        risk_level=risk,
        current_price=float(df["Close"].iloc[-1]),
    )


def weekly_patterns(symbol: str, df: pd.DataFrame, company_name: str | None = None) -> list[WeeklyPattern]:
    """Mean return and win rate for each weekday."""
    if df is None or df.empty:
        return []
    returns = _daily_returns(df)
    patterns = []
    for weekday_idx, day_name in enumerate(WEEKDAYS):
        day_returns = returns[returns.index.dayofweek == weekday_idx]
        if len(day_returns) < MIN_WEEKDAY_SAMPLES:
            continue
        win_rate = float((day_returns > 0).mean() * 100)
        if win_rate > 65:
            confidence = "High"
        elif win_rate > 45:
            confidence = "Medium"
        else:
            confidence = "Low"
        patterns.append(
            WeeklyPattern(
                symbol=symbol,
                company_name=company_name or symbol,
                day_of_week=day_name,
                avg_return=round(float(day_returns.mean()), 2),
                win_rate=round(win_rate),
                confidence=confidence,
                years=len(df) // TRADING_DAYS_PER_YEAR,
            )
        )
    return patterns


def _patterns_for(
    client: BulkFetchClient,
    symbols: list[str],
    years: int,
    sector: str,
    universe: Universe | None,
) -> list[SeasonalPattern]:
    universe = universe or Universe()
    data = client.fetch_bulk(symbols, years)
    patterns = []
    for symbol in symbols:
        pattern = monthly_pattern(symbol, data.get(symbol), universe.company_name(symbol), sector)
        if pattern is not None:
            patterns.append(pattern)
    return patterns


def featured_patterns(
    client: BulkFetchClient, years: int = 5, universe: Universe | None = None
) -> list[SeasonalPattern]:
    patterns = _patterns_for(client, FEATURED_SYMBOLS, years, "Market", universe)
    logger.info("Generated %d featured patterns", len(patterns))
    return patterns


def market_patterns(
    client: BulkFetchClient, market: str, years: int = 10, universe: Universe | None = None
) -> list[SeasonalPattern]:
    """Monthly patterns for a sector's constituents. Unknown sectors use SP500."""
    symbols = SECTOR_SYMBOLS.get(market, SECTOR_SYMBOLS["SP500"])
    patterns = _patterns_for(client, symbols, years, market, universe)
    logger.info("Generated %d patterns for %s", len(patterns), market)
    return patterns


def all_weekly_patterns(
    client: BulkFetchClient, years: int = 2, universe: Universe | None = None
) -> list[WeeklyPattern]:
    universe = universe or Universe()
    data = client.fetch_bulk(WEEKLY_SYMBOLS, years)
    patterns: list[WeeklyPattern] = []
    for symbol in WEEKLY_SYMBOLS:
        patterns.extend(weekly_patterns(symbol, data.get(symbol), universe.company_name(symbol)))
    return patterns
