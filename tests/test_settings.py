"""
Tests for environment-driven settings and validation.
"""

from __future__ import annotations

import pytest

from backend_dappstats.config.env import env_bool, get_app_env, mask_db_url
from backend_dappstats.config.settings import Settings

_VARS = (
    "DATABASE_URL", "DAPPSTATS_DB_URL", "DB_PATH", "EXPLORER_BASE_URL", "STORYSCAN_BASE",
    "EXPLORER_TIMEOUT_SEC", "RATE_LIMIT_MIN_TIME_MS", "INGEST_HOURS_BACK", "INGEST_INTERVAL_MINUTES",
    "INGEST_MAX_PAGES", "INGEST_DAPP_DELAY_SEC", "SCHEDULER_ENABLED", "SCHEDULER_INITIAL_DELAY_SEC",
    "CHAIN_ID", "API_HOST", "API_PORT", "APP_ENV", "NODE_ENV", "DATA_SOURCE_NAME",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    s = Settings.from_env()
    assert s.database_url == "sqlite:///dappstats.db"
    assert s.explorer_base_url == "https://www.storyscan.io"
    assert s.rate_limit_min_interval_sec == pytest.approx(0.12)
    assert s.ingest_hours_back == 24
    assert s.ingest_interval_sec == 600.0
    assert s.ingest_max_pages == 500
    assert s.scheduler_enabled is True
    assert s.api_port == 8002
    assert s.app_env == "development"
    assert s.is_production is False
    assert s.data_source == "storyscan"


def test_overrides(clean_env):
    clean_env.setenv("DB_PATH", "/tmp/x.db")
    clean_env.setenv("STORYSCAN_BASE", "https://aeneid.storyscan.io/")
    clean_env.setenv("INGEST_HOURS_BACK", "48")
    clean_env.setenv("SCHEDULER_ENABLED", "false")
    clean_env.setenv("NODE_ENV", "production")
    s = Settings.from_env()
    assert s.database_url == "sqlite:////tmp/x.db"
    assert s.explorer_base_url == "https://aeneid.storyscan.io"
    assert s.ingest_hours_back == 48
    assert s.scheduler_enabled is False
    assert s.is_production is True


def test_database_url_wins_over_path(clean_env):
    clean_env.setenv("DB_PATH", "ignored.db")
    clean_env.setenv("DATABASE_URL", "postgresql+psycopg://u:p@db:5432/stats")
    assert Settings.from_env().database_url == "postgresql+psycopg://u:p@db:5432/stats"


@pytest.mark.parametrize(
    "name,value,match",
    [
        ("INGEST_HOURS_BACK", "0", "INGEST_HOURS_BACK"),
        ("INGEST_HOURS_BACK", "169", "INGEST_HOURS_BACK"),
        ("INGEST_INTERVAL_MINUTES", "61", "INGEST_INTERVAL_MINUTES"),
        ("RATE_LIMIT_MIN_TIME_MS", "10", "RATE_LIMIT_MIN_TIME_MS"),
        ("API_PORT", "abc", "API_PORT"),
        ("EXPLORER_BASE_URL", "ftp://x", "EXPLORER_BASE_URL"),
        ("SCHEDULER_ENABLED", "maybe", "SCHEDULER_ENABLED"),
        ("APP_ENV", "staging", "APP_ENV"),
    ],
)
def test_invalid_values_raise(clean_env, name, value, match):
    clean_env.setenv(name, value)
    with pytest.raises(ValueError, match=match):
        Settings.from_env()


def test_env_bool(clean_env):
    clean_env.setenv("SCHEDULER_ENABLED", "ON")
    assert env_bool("SCHEDULER_ENABLED", False) is True
    assert env_bool("MISSING_FLAG_X", True) is True


def test_get_app_env(clean_env):
    assert get_app_env() == "development"
    clean_env.setenv("APP_ENV", "Test")
    assert get_app_env() == "test"


def test_mask_db_url():
    assert mask_db_url("postgresql://user:pw@host:5432/db") == "postgresql://***@host:5432/db"
    assert mask_db_url("sqlite:///dappstats.db") == "sqlite:///dappstats.db"
