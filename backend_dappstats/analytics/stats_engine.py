"""
Windowed analytics over the hourly aggregation store.

For each dApp: current and previous window totals for every timeframe (24H,
7D, 30D), and optionally the dense hourly sparkline of the requested window
with its trend label. Read-only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from backend_dappstats.analytics.formatting import (
    TIMEFRAMES,
    TimeWindow,
    trend_from_series,
    window_bounds,
)
from backend_dappstats.core.time_utils import SECONDS_PER_HOUR, now_ts
from backend_dappstats.database.aggregation import AggregationStore, WindowTotals


@dataclass(frozen=True)
class WindowComparison:
    current: WindowTotals
    previous: WindowTotals


@dataclass
class DappWindowStats:
    dapp_id: int
    timeframe: str
    by_timeframe: dict[str, WindowComparison]
    sparkline: list[int] | None = None
    sparkline_trend: str | None = None
    last_updated: int | None = None
    window: TimeWindow | None = field(default=None, repr=False)

    @property
    def selected(self) -> WindowComparison:
        return self.by_timeframe[self.timeframe]


def densify(series: list[tuple[int, int]], start: int, end: int) -> list[int]:
    """One point per hour in [start, end), zero where no bucket exists."""
    counts = dict(series)
    return [counts.get(h, 0) for h in range(start, end, SECONDS_PER_HOUR)]


class StatsEngine:
    def __init__(self, store: AggregationStore) -> None:
        self.store = store

    def compute(
        self,
        timeframe: str,
        dapp_ids: Iterable[int],
        *,
        include_sparklines: bool = False,
        now: int | None = None,
    ) -> dict[int, DappWindowStats]:
        if timeframe not in TIMEFRAMES:
            raise ValueError(f"unknown timeframe {timeframe!r}")
        ids = list(dict.fromkeys(dapp_ids))
        now = now_ts() if now is None else now

        windows = {tf: window_bounds(tf, now) for tf in TIMEFRAMES}
        comparisons: dict[str, dict[int, WindowComparison]] = {}
        for tf, w in windows.items():
            current = self.store.sum_in_window(ids, w.t1, w.t0)
            previous = self.store.sum_in_window(ids, w.t_prev1, w.t1)
            comparisons[tf] = {
                i: WindowComparison(current=current[i], previous=previous[i]) for i in ids
            }

        selected = windows[timeframe]
        series = (
            self.store.series_in_window(ids, selected.t1, selected.t0) if include_sparklines else {}
        )
        last_updated = self.store.last_updated(ids)

        out: dict[int, DappWindowStats] = {}
        for i in ids:
            stats = DappWindowStats(
                dapp_id=i,
                timeframe=timeframe,
                by_timeframe={tf: comparisons[tf][i] for tf in TIMEFRAMES},
                last_updated=last_updated.get(i),
                window=selected,
            )
            if include_sparklines:
                stats.sparkline = densify(series.get(i, []), selected.t1, selected.t0)
                stats.sparkline_trend = trend_from_series(stats.sparkline)
            out[i] = stats
        return out
