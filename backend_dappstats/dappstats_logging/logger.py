"""
structlog setup for the dApp Stats service.

Every event is one JSON object (or a console line with LOG_FORMAT=console)
keyed by event_type, with level, logger and an ISO UTC timestamp. Per-dApp
context travels in contextvars: wrap a sync in dapp_log_context(slug) and
every line logged inside it, the explorer client and the aggregation store
included, carries dapp_slug and ingestion_run_id without passing them around.

No backend_dappstats imports here; every other module imports this one.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from structlog.contextvars import bound_contextvars

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()

# Keys owned by dapp_log_context; pre-bound to None so the context exit resets them
DAPP_CONTEXT_KEYS = ("dapp_slug", "ingestion_run_id")

# Values logged under these keys are chain identifiers and compare case-insensitively
_ADDRESS_KEYS = ("address", "sender", "user_address", "tx_hash")


def drop_unset_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in DAPP_CONTEXT_KEYS:
        if key in event_dict and event_dict[key] is None:
            del event_dict[key]
    return event_dict


def normalize_addresses(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in _ADDRESS_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = value.strip().lower()
    return event_dict


def rename_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's positional event becomes event_type, the aggregation key downstream."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def build_processors(log_format: str = LOG_FORMAT) -> list[Any]:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        drop_unset_context,
        normalize_addresses,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(rename_event)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return processors


def configure_structlog() -> None:
    structlog.configure(
        processors=build_processors(),
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, LOG_LEVEL, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Structured logger for a module:

        logger = get_logger(__name__)
        logger.info("ingestion_dapp_done", transactions_processed=120)
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_dapp(slug: str, run_id: int | None = None) -> structlog.BoundLogger:
    """Logger with dapp_slug (and ingestion_run_id when known) bound explicitly."""
    log = get_logger("backend_dappstats").bind(dapp_slug=slug)
    if run_id is not None:
        log = log.bind(ingestion_run_id=run_id)
    return log


@contextmanager
def dapp_log_context(slug: str, run_id: int | None = None) -> Iterator[None]:
    """
    Bind dapp_slug and ingestion_run_id into contextvars for the duration of the block.

    Safe across asyncio tasks (each task has its own context). A run id bound
    later inside the block with bind_contextvars is reset on exit as well.
    """
    with bound_contextvars(dapp_slug=slug, ingestion_run_id=run_id):
        yield
