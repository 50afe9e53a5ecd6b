"""
Application settings and environment configuration.

Responsibilities:
- Load configuration from environment variables and the project .env file.
- Validate ranges and provide defaults for optional values.
- Expose typed settings (explorer URL, rate limit, ingestion window, API port,
  database URL, ...) for the explorer client, ingestion, scheduler and API server.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass

from backend_dappstats.config.env import (
    env_bool,
    env_float,
    env_int,
    env_str,
    get_app_env,
    load_dappstats_env,
)

DEFAULT_EXPLORER_BASE_URL = "https://www.storyscan.io"
DEFAULT_DB_PATH = "dappstats.db"
DEFAULT_API_PORT = 8002


@dataclass(frozen=True)
class Settings:
    """Validated process configuration. Build with get_settings() or Settings.from_env()."""

    database_url: str
    explorer_base_url: str = DEFAULT_EXPLORER_BASE_URL
    explorer_timeout_sec: float = 30.0
    rate_limit_min_time_ms: int = 120
    ingest_hours_back: int = 24
    ingest_interval_minutes: int = 10
    ingest_max_pages: int = 500
    ingest_dapp_delay_sec: float = 2.0
    scheduler_enabled: bool = True
    scheduler_initial_delay_sec: float = 10.0
    chain_id: int = 1
    api_host: str = "0.0.0.0"
    api_port: int = DEFAULT_API_PORT
    app_env: str = "development"
    data_source: str = "storyscan"

    def __post_init__(self) -> None:
        _check(self.explorer_base_url.startswith(("http://", "https://")),
               "EXPLORER_BASE_URL must be an http(s) URL")
        _check(self.explorer_timeout_sec > 0, "EXPLORER_TIMEOUT_SEC must be > 0")
        _check(self.rate_limit_min_time_ms >= 50, "RATE_LIMIT_MIN_TIME_MS must be >= 50")
        _check(1 <= self.ingest_hours_back <= 168, "INGEST_HOURS_BACK must be between 1 and 168")
        _check(1 <= self.ingest_interval_minutes <= 60, "INGEST_INTERVAL_MINUTES must be between 1 and 60")
        _check(self.ingest_max_pages >= 1, "INGEST_MAX_PAGES must be >= 1")
        _check(self.ingest_dapp_delay_sec >= 0, "INGEST_DAPP_DELAY_SEC must be >= 0")
        _check(self.scheduler_initial_delay_sec >= 0, "SCHEDULER_INITIAL_DELAY_SEC must be >= 0")
        _check(self.chain_id >= 1, "CHAIN_ID must be >= 1")
        _check(1 <= self.api_port <= 65535, "API_PORT must be between 1 and 65535")

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def rate_limit_min_interval_sec(self) -> float:
        return self.rate_limit_min_time_ms / 1000.0

    @property
    def ingest_interval_sec(self) -> float:
        return self.ingest_interval_minutes * 60.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Read and validate all settings from the environment (.env loaded first)."""
        load_dappstats_env()
        db_url = env_str("DAPPSTATS_DB_URL", "DATABASE_URL")
        if not db_url:
            db_url = f"sqlite:///{env_str('DB_PATH', default=DEFAULT_DB_PATH)}"
        return cls(
            database_url=db_url,
            explorer_base_url=env_str(
                "EXPLORER_BASE_URL", "STORYSCAN_BASE", default=DEFAULT_EXPLORER_BASE_URL
            ).rstrip("/"),
            explorer_timeout_sec=env_float("EXPLORER_TIMEOUT_SEC", 30.0),
            rate_limit_min_time_ms=env_int("RATE_LIMIT_MIN_TIME_MS", 120),
            ingest_hours_back=env_int("INGEST_HOURS_BACK", 24),
            ingest_interval_minutes=env_int("INGEST_INTERVAL_MINUTES", 10),
            ingest_max_pages=env_int("INGEST_MAX_PAGES", 500),
            ingest_dapp_delay_sec=env_float("INGEST_DAPP_DELAY_SEC", 2.0),
            scheduler_enabled=env_bool("SCHEDULER_ENABLED", True),
            scheduler_initial_delay_sec=env_float("SCHEDULER_INITIAL_DELAY_SEC", 10.0),
            chain_id=env_int("CHAIN_ID", 1),
            api_host=env_str("API_HOST", default="0.0.0.0"),
            api_port=env_int("API_PORT", DEFAULT_API_PORT),
            app_env=get_app_env(),
            data_source=env_str("DATA_SOURCE_NAME", default="storyscan"),
        )


def _check(ok: bool, message: str) -> None:
    if not ok:
        raise ValueError(message)


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the process-wide settings (read once, then cached).

    Raises:
        ValueError: when an environment variable is out of range or unparsable.
    """
    return Settings.from_env()
