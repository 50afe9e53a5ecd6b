"""
Tests for UTC hour flooring and explorer timestamp parsing.
"""

from __future__ import annotations

from backend_dappstats.core.time_utils import (
    floor_to_hour,
    ingestion_cutoff,
    parse_block_time,
    to_iso,
)

# 2024-03-01T12:34:56Z
TS = 1709296496
HOUR = 1709294400  # 2024-03-01T12:00:00Z


def test_floor_to_hour():
    assert floor_to_hour(TS) == HOUR
    assert floor_to_hour(HOUR) == HOUR
    assert floor_to_hour(HOUR + 3599) == HOUR
    assert floor_to_hour(float(TS)) == HOUR


def test_parse_block_time_iso_and_numeric():
    assert parse_block_time("2024-03-01T12:34:56Z") == TS
    assert parse_block_time("2024-03-01T12:34:56.000000Z") == TS
    assert parse_block_time("2024-03-01T14:34:56+02:00") == TS
    assert parse_block_time("2024-03-01T12:34:56") == TS  # naive taken as UTC
    assert parse_block_time(TS) == TS
    assert parse_block_time(str(TS)) == TS


def test_parse_block_time_invalid():
    assert parse_block_time(None) is None
    assert parse_block_time("") is None
    assert parse_block_time("yesterday") is None
    assert parse_block_time({"ts": 1}) is None
    assert parse_block_time(True) is None


def test_ingestion_cutoff_not_floored():
    assert ingestion_cutoff(24, now=TS) == TS - 24 * 3600
    assert ingestion_cutoff(1, now=TS) == TS - 3600


def test_to_iso():
    assert to_iso(HOUR) == "2024-03-01T12:00:00Z"
