"""
Seasonal analysis core for the screener.

Folds a symbol's daily returns relative to a benchmark onto a 365-day
calendar, scans the calendar for the strongest and weakest fixed-length
window, and decides whether a window's start is close enough to today to
matter. Pure functions over pandas data; no I/O.
"""
from __future__ import annotations

import calendar
import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

import numpy as np
import pandas as pd

DAYS_IN_YEAR = 365
WINDOW_SIZE = 30
MIN_WINDOW_BUCKETS = 20
ACTIVE_HORIZON_DAYS = 30

# Non-leap reference year for day-of-year <-> month/day conversion
REFERENCE_YEAR = 2023

MONTH_NAMES = [calendar.month_abbr[i] for i in range(1, 13)]


# =============================================================================
# Calendar Helpers
# =============================================================================

def day_of_year(month: int, day: int) -> int:
    """Convert month/day to day of year (1-365). Feb 29 folds onto Feb 28."""
    if month == 2 and day == 29:
        day = 28
    ref_date = dt.date(REFERENCE_YEAR, 1, 1)
    target = dt.date(REFERENCE_YEAR, month, day)
    return (target - ref_date).days + 1


def date_from_day_of_year(doy: int) -> tuple[int, int]:
    """Convert day of year to (month, day)."""
    ref_date = dt.date(REFERENCE_YEAR, 1, 1) + dt.timedelta(days=doy - 1)
    return ref_date.month, ref_date.day


def day_label(doy: int) -> str:
    """Day of year as 'Mon D', e.g. 'Sep 10'."""
    month, day = date_from_day_of_year(doy)
    return f"{MONTH_NAMES[month - 1]} {day}"


def normalized_day_of_year(index: pd.DatetimeIndex) -> np.ndarray:
    """Vectorized day of year on a 365-day calendar."""
    doy = index.dayofyear.values
    leap_shift = index.is_leap_year & (doy >= 60)
    return (doy - leap_shift.astype(int)).astype(int)


# =============================================================================
# Seasonal Aggregator
# =============================================================================

@dataclass
class DayOfYearBucket:
    """Aggregate of every relative return that landed on one calendar day."""
    day_of_year: int
    month: int
    day: int
    month_name: str
    avg_return: float  # mean daily relative return %
    occurrences: int
    positive_years: int  # observations with relative return > 0

    @property
    def pattern_pct(self) -> float:
        return self.positive_years / self.occurrences * 100


@dataclass
class SeasonalProfile:
    """
    Day-of-year profile of benchmark-minus-symbol daily returns.

    ``daily`` keeps the per-day rows (indexed by date, with ``year``,
    ``day_of_year`` and ``relative_return`` columns) so window statistics
    can be broken down by year.
    """
    buckets: dict[int, DayOfYearBucket]
    daily: pd.DataFrame = field(repr=False)

    @property
    def years(self) -> list[int]:
        if self.daily.empty:
            return []
        return sorted(int(y) for y in self.daily["year"].unique())

    def window_year_sums(self, start_day: int, end_day: int) -> pd.Series:
        """Summed relative return inside [start_day, end_day] per year."""
        if self.daily.empty:
            return pd.Series(dtype=float)
        doy = self.daily["day_of_year"]
        inside = self.daily[(doy >= start_day) & (doy <= end_day)]
        return inside.groupby("year")["relative_return"].sum()

    def window_win_rate(self, start_day: int, end_day: int, outperform: bool) -> float:
        """
        Percent of years the symbol beat (``outperform``) or lagged the
        benchmark over the window.
        """
        sums = self.window_year_sums(start_day, end_day)
        if sums.empty:
            return 0.0
        # relative return is benchmark - symbol: negative means the symbol won
        wins = (sums < 0).sum() if outperform else (sums > 0).sum()
        return float(wins) / len(sums) * 100


def daily_relative_returns(symbol_df: pd.DataFrame, benchmark_df: pd.DataFrame) -> pd.DataFrame:
    """
    Benchmark return minus symbol return for each consecutive pair of the
    symbol's trading days. Pairs where the benchmark lacks either date are
    dropped.
    """
    columns = ["symbol_return", "benchmark_return", "relative_return", "year", "day_of_year"]
    if symbol_df.empty or benchmark_df.empty or len(symbol_df) < 2:
        return pd.DataFrame(columns=columns)

    closes = symbol_df["Close"].astype(float)
    bench = benchmark_df["Close"].astype(float)
    bench = bench[~bench.index.duplicated(keep="last")]

    current = closes.values[1:]
    previous = closes.values[:-1]
    bench_current = bench.reindex(closes.index[1:]).values
    bench_previous = bench.reindex(closes.index[:-1]).values

    with np.errstate(divide="ignore", invalid="ignore"):
        symbol_return = (current - previous) / previous * 100
        benchmark_return = (bench_current - bench_previous) / bench_previous * 100

    index = closes.index[1:]
    frame = pd.DataFrame(
        {
            "symbol_return": symbol_return,
            "benchmark_return": benchmark_return,
            "relative_return": benchmark_return - symbol_return,
            "year": index.year.values,
            "day_of_year": normalized_day_of_year(index),
        },
        index=index,
    )
    frame = frame.replace([np.inf, -np.inf], np.nan).dropna(subset=["relative_return"])
    return frame


def build_seasonal_profile(symbol_df: pd.DataFrame, benchmark_df: pd.DataFrame) -> SeasonalProfile:
    """Fold relative returns into day-of-year buckets."""
    daily = daily_relative_returns(symbol_df, benchmark_df)
    buckets: dict[int, DayOfYearBucket] = {}
    if daily.empty:
        return SeasonalProfile(buckets=buckets, daily=daily)

    grouped = daily.groupby("day_of_year")["relative_return"]
    summary = pd.DataFrame(
        {
            "avg": grouped.mean(),
            "count": grouped.count(),
            "positive": grouped.apply(lambda r: int((r > 0).sum())),
        }
    )
    for doy, row in summary.iterrows():
        doy = int(doy)
        month, day = date_from_day_of_year(doy)
        buckets[doy] = DayOfYearBucket(
            day_of_year=doy,
            month=month,
            day=day,
            month_name=MONTH_NAMES[month - 1],
            avg_return=float(row["avg"]),
            occurrences=int(row["count"]),
            positive_years=int(row["positive"]),
        )
    return SeasonalProfile(buckets=buckets, daily=daily)


# =============================================================================
# Window Scanner
# =============================================================================

@dataclass(frozen=True)
class SeasonalWindow:
    """A fixed-length span of the calendar with its mean daily relative return."""
    start_day: int
    end_day: int  # inclusive
    avg_return: float  # mean of bucket averages, % per day
    bucket_count: int

    @property
    def length(self) -> int:
        return self.end_day - self.start_day + 1

    @property
    def window_return(self) -> float:
        """Linear extrapolation of the daily mean over the window."""
        return self.avg_return * self.length

    @property
    def start_date(self) -> str:
        return day_label(self.start_day)

    @property
    def end_date(self) -> str:
        return day_label(self.end_day)

    @property
    def period(self) -> str:
        return f"{self.start_date} - {self.end_date}"


@dataclass(frozen=True)
class WindowScan:
    best: SeasonalWindow | None  # highest benchmark-minus-symbol mean
    worst: SeasonalWindow | None


def scan_windows(
    buckets: Mapping[int, DayOfYearBucket],
    window_size: int = WINDOW_SIZE,
    min_buckets: int = MIN_WINDOW_BUCKETS,
) -> WindowScan:
    """
    Slide a ``window_size`` window across the calendar and keep the best
    and worst by mean bucket return.

    Only strictly better windows replace the current best or worst, so
    ties resolve to the earliest start day.
    """
    values = np.zeros(DAYS_IN_YEAR + 1)
    present = np.zeros(DAYS_IN_YEAR + 1, dtype=int)
    for doy, bucket in buckets.items():
        if 1 <= doy <= DAYS_IN_YEAR and bucket.occurrences >= 1:
            values[doy] = bucket.avg_return
            present[doy] = 1
    # cum[i] = sum over days 1..i
    cum_values = np.cumsum(values)
    cum_present = np.cumsum(present)

    best: SeasonalWindow | None = None
    worst: SeasonalWindow | None = None
    for start_day in range(1, DAYS_IN_YEAR - window_size + 2):
        end_day = start_day + window_size - 1
        count = int(cum_present[end_day] - cum_present[start_day - 1])
        if count < min_buckets:
            continue
        mean = float(cum_values[end_day] - cum_values[start_day - 1]) / count

        if best is None or mean > best.avg_return:
            best = SeasonalWindow(start_day, end_day, mean, count)
        if worst is None or mean < worst.avg_return:
            worst = SeasonalWindow(start_day, end_day, mean, count)

    return WindowScan(best=best, worst=worst)


# =============================================================================
# Active-Period Classifier
# =============================================================================

class PeriodStatus(str, Enum):
    ACTIVE = "active"  # started within the horizon
    UPCOMING = "upcoming"  # starts within the horizon
    INACTIVE = "inactive"


def parse_day_label(label: str, year: int | None = None) -> int:
    """Parse 'Sep 10' against ``year`` (default: this year) into a day of year."""
    year = year or dt.date.today().year
    text = " ".join(label.replace("-", " ").split())
    try:
        parsed = dt.datetime.strptime(f"{text} {year}", "%b %d %Y")
    except ValueError:
        if text.lower() in ("feb 29", "february 29"):
            return day_of_year(2, 28)
        raise ValueError(f"Unrecognised day label: {label!r}") from None
    return day_of_year(parsed.month, parsed.day)


def days_until_start(start: str | int, today: dt.date | None = None, wrap: bool = True) -> int:
    """
    Signed days from today to the window start (negative: already started).

    With ``wrap`` the difference is taken around the calendar into
    [-182, 182], so a late-December start seen from early January counts
    as recent rather than eleven months away.
    """
    today = today or dt.date.today()
    start_day = start if isinstance(start, int) else parse_day_label(start, today.year)
    difference = start_day - day_of_year(today.month, today.day)
    if wrap:
        half = DAYS_IN_YEAR // 2
        difference = (difference + half) % DAYS_IN_YEAR - half
    return difference


def classify_period(
    start: str | int,
    today: dt.date | None = None,
    horizon: int = ACTIVE_HORIZON_DAYS,
    wrap: bool = True,
) -> PeriodStatus:
    difference = days_until_start(start, today, wrap=wrap)
    if 1 <= difference <= horizon:
        return PeriodStatus.UPCOMING
    if -horizon <= difference <= 0:
        return PeriodStatus.ACTIVE
    return PeriodStatus.INACTIVE


def is_currently_active(
    start: str | int,
    today: dt.date | None = None,
    horizon: int = ACTIVE_HORIZON_DAYS,
    wrap: bool = True,
) -> bool:
    """True if the window started within, or starts within, ``horizon`` days."""
    return classify_period(start, today, horizon, wrap) is not PeriodStatus.INACTIVE
