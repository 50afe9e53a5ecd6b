"""
Analytics: windowed totals, change percentages, trends and display formatting.
"""

from backend_dappstats.analytics.formatting import (
    TIMEFRAMES,
    TimeWindow,
    calculate_change,
    change_type,
    format_large_number,
    trend_from_series,
    window_bounds,
)
from backend_dappstats.analytics.stats_engine import DappWindowStats, StatsEngine

__all__ = [
    "DappWindowStats",
    "StatsEngine",
    "TIMEFRAMES",
    "TimeWindow",
    "calculate_change",
    "change_type",
    "format_large_number",
    "trend_from_series",
    "window_bounds",
]
