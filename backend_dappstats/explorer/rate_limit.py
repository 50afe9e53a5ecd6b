"""
Request limiter for the explorer: one call in flight, minimum spacing between starts.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class RequestLimiter:
    """
    Serialises calls through an asyncio.Lock held for the whole call and keeps
    at least min_interval_sec between the starts of consecutive calls.
    """

    def __init__(self, min_interval_sec: float) -> None:
        self._interval = max(0.0, float(min_interval_sec))
        self._last_start = 0.0
        self._lock = asyncio.Lock()

    @property
    def min_interval_sec(self) -> float:
        return self._interval

    async def run(self, call: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            elapsed = time.monotonic() - self._last_start
            if elapsed < self._interval:
                await asyncio.sleep(self._interval - elapsed)
            self._last_start = time.monotonic()
            return await call()
