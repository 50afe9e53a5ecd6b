"""
Environment variable loading for dApp Stats.

- Loads .env from the project root when available.
- Raw typed readers (env_str / env_int / env_float / env_bool) used by settings.
- APP_ENV: development | production | test (NODE_ENV accepted as a fallback).
"""

from __future__ import annotations

import os
from pathlib import Path

# Project root: config is backend_dappstats/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

APP_ENVIRONMENTS = ("development", "production", "test")
_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def load_dappstats_env() -> None:
    """Load .env from project root. Safe to call multiple times; real env vars win."""
    from dotenv import load_dotenv

    if _ENV_PATH.is_file():
        load_dotenv(_ENV_PATH, override=False)


def env_str(*names: str, default: str = "") -> str:
    """Return the first non-empty value among names, stripped; else default."""
    for name in names:
        raw = (os.getenv(name) or "").strip()
        if raw:
            return raw
    return default


def env_int(name: str, default: int) -> int:
    raw = env_str(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def env_float(name: str, default: float) -> float:
    raw = env_str(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def env_bool(name: str, default: bool) -> bool:
    raw = env_str(name).lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (1/0, true/false), got {raw!r}")


def get_app_env() -> str:
    """Return APP_ENV (or NODE_ENV); default development."""
    load_dappstats_env()
    raw = env_str("APP_ENV", "NODE_ENV", default="development").lower()
    if raw not in APP_ENVIRONMENTS:
        raise ValueError(f"APP_ENV must be one of {', '.join(APP_ENVIRONMENTS)}, got {raw!r}")
    return raw


def is_production() -> bool:
    return get_app_env() == "production"


def mask_db_url(url: str) -> str:
    """Hide credentials in a database URL for logs: scheme://***@host/db."""
    if "@" not in url or "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    return f"{scheme}://***@{rest.split('@', 1)[1]}"
