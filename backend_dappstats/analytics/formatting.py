"""
Window bounds, percentage change, trend labels and number formatting.

Pure functions; no I/O. Windows are half-open [start, end) over hour starts,
anchored at the current UTC hour (the in-progress hour is excluded).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from backend_dappstats.core.time_utils import SECONDS_PER_HOUR, current_hour

TIMEFRAME_HOURS = {"24H": 24, "7D": 24 * 7, "30D": 24 * 30}
TIMEFRAMES = tuple(TIMEFRAME_HOURS)
TREND_THRESHOLD = 0.05

CHANGE_POSITIVE = "positive"
CHANGE_NEGATIVE = "negative"
CHANGE_NEUTRAL = "neutral"


@dataclass(frozen=True)
class TimeWindow:
    """Current window is [t1, t0); previous window is [t_prev1, t1)."""

    timeframe: str
    t0: int
    t1: int
    t_prev1: int

    @property
    def hours(self) -> int:
        return (self.t0 - self.t1) // SECONDS_PER_HOUR


def window_bounds(timeframe: str, now: int | float | None = None) -> TimeWindow:
    hours = TIMEFRAME_HOURS.get(timeframe)
    if hours is None:
        raise ValueError(f"unknown timeframe {timeframe!r}; expected one of {', '.join(TIMEFRAMES)}")
    duration = hours * SECONDS_PER_HOUR
    t0 = current_hour(now)
    t1 = t0 - duration
    return TimeWindow(timeframe=timeframe, t0=t0, t1=t1, t_prev1=t1 - duration)


def _percent_change(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100.0


def calculate_change(current: float, previous: float) -> str:
    """
    Percentage change as display text.

        calculate_change(150, 100) -> "50%"
        calculate_change(100, 150) -> "-33.33%"
        calculate_change(5, 0)     -> "100%"
        calculate_change(0, 0)     -> "0%"
    """
    text = f"{_percent_change(current, previous):.2f}"
    if text.endswith(".00"):
        text = text[:-3]
    if text == "-0":
        text = "0"
    return f"{text}%"


def change_type(current: float, previous: float) -> str:
    pct = _percent_change(current, previous)
    if pct > 0:
        return CHANGE_POSITIVE
    if pct < 0:
        return CHANGE_NEGATIVE
    return CHANGE_NEUTRAL


def trend_from_series(values: Sequence[float]) -> str:
    """up / down / stable from the means of the first and second halves of the series."""
    n = len(values)
    if n < 2:
        return "stable"
    mid = n // 2
    first, second = values[:mid], values[mid:]
    first_mean = sum(first) / len(first)
    second_mean = sum(second) / len(second)
    if first_mean == 0:
        return "up" if second_mean > 0 else "stable"
    rel = (second_mean - first_mean) / first_mean
    if rel > TREND_THRESHOLD:
        return "up"
    if rel < -TREND_THRESHOLD:
        return "down"
    return "stable"


def _one_decimal(value: float) -> str:
    text = f"{value:.1f}"
    return text[:-2] if text.endswith(".0") else text


def format_large_number(n: float) -> str:
    """27200 -> "27.2K", 1_000_000 -> "1M", 999 -> "999"."""
    if n >= 1_000_000:
        return f"{_one_decimal(n / 1_000_000)}M"
    if n >= 1_000:
        return f"{_one_decimal(n / 1_000)}K"
    return str(int(n))
