"""
UTC time helpers. Hours are stored as Unix seconds of the hour start.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

SECONDS_PER_HOUR = 3600


def now_ts() -> int:
    return int(time.time())


def floor_to_hour(ts: int | float) -> int:
    """Floor a Unix timestamp to the start of its UTC hour."""
    ts = int(ts)
    return ts - (ts % SECONDS_PER_HOUR)


def current_hour(now: int | float | None = None) -> int:
    return floor_to_hour(now_ts() if now is None else now)


def ingestion_cutoff(hours_back: int, now: int | float | None = None) -> int:
    """Earliest timestamp an ingestion pass accepts: now - hours_back hours (not floored)."""
    base = now_ts() if now is None else int(now)
    return base - hours_back * SECONDS_PER_HOUR


def parse_block_time(value: object) -> int | None:
    """
    Parse an explorer timestamp into Unix seconds.

    Accepts ISO-8601 strings (a trailing "Z" is allowed; naive values are taken
    as UTC), and Unix seconds as int/float or a numeric string. Returns None
    for missing or unparsable values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if not isinstance(value, str):
        return None
    s = value.strip()
    if not s:
        return None
    if s.lstrip("-").isdigit():
        return int(s)
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def to_iso(ts: int | float) -> str:
    """Unix seconds to ISO 8601 UTC string (second precision, Z suffix)."""
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
