"""
FastAPI server for dApp Stats.

create_app() wires the routers, validation error shape, middleware and a
lifespan that owns the database, explorer client and ingestion scheduler.
Tests pass a prepared database (and optionally a scheduler) and skip the
background services.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend_dappstats import __version__
from backend_dappstats.api_server.dapp_stats import invalid_request_response
from backend_dappstats.api_server.dapp_stats import router as dapp_stats_router
from backend_dappstats.api_server.ingestion_admin import router as ingestion_router
from backend_dappstats.api_server.middleware import install_middleware
from backend_dappstats.config.settings import Settings, get_settings
from backend_dappstats.core.time_utils import now_ts, to_iso
from backend_dappstats.dappstats_logging import get_logger
from backend_dappstats.database.database import Database, get_database

logger = get_logger(__name__)


async def _start_background(app: FastAPI) -> None:
    """Explorer client, ingestor and scheduler for a live process."""
    from backend_dappstats.explorer.client import ExplorerClient
    from backend_dappstats.ingestion.orchestrator import DappIngestor
    from backend_dappstats.scheduler.engine import IngestionScheduler, SchedulerConfig

    settings: Settings = app.state.settings
    client = ExplorerClient.from_settings(settings)
    app.state.explorer = client
    if not await client.health_check():
        logger.warning("explorer_unhealthy_at_startup", base_url=settings.explorer_base_url)
    ingestor = DappIngestor.from_settings(client, app.state.database, settings)
    scheduler = IngestionScheduler(ingestor, app.state.database, SchedulerConfig.from_settings(settings))
    app.state.scheduler = scheduler
    scheduler.start()


@asynccontextmanager
async def lifespan(app: FastAPI):
    owns_database = app.state.database is None
    if owns_database:
        app.state.database = get_database(app.state.settings.database_url)
    if app.state.start_background:
        try:
            await _start_background(app)
        except Exception as e:
            logger.exception("api_background_start_failed", error=str(e))
    logger.info("api_started", environment=app.state.settings.app_env)

    yield

    scheduler = app.state.scheduler
    if scheduler is not None and app.state.start_background:
        await scheduler.stop()
    explorer = getattr(app.state, "explorer", None)
    if explorer is not None:
        await explorer.aclose()
    if owns_database:
        app.state.database.dispose()
    logger.info("api_stopped")


def create_app(
    database: Database | None = None,
    settings: Settings | None = None,
    *,
    scheduler: Any = None,
    start_background: bool = True,
) -> FastAPI:
    app = FastAPI(
        title="Backend dApp Stats API",
        description="Hourly transaction and user analytics for tracked dApps.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings or get_settings()
    app.state.database = database
    app.state.scheduler = scheduler
    app.state.explorer = None
    app.state.start_background = start_background
    app.state.started_at = time.monotonic()

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("api_invalid_request", path=request.url.path, errors=len(exc.errors()))
        return invalid_request_response(list(exc.errors()))

    install_middleware(app)
    app.include_router(dapp_stats_router, prefix="/api")
    app.include_router(ingestion_router, prefix="/api")

    @app.get("/health")
    def health(request: Request) -> dict[str, Any]:
        """Liveness check."""
        state = request.app.state
        sched = state.scheduler
        return {
            "status": "ok",
            "timestamp": to_iso(now_ts()),
            "uptime_sec": round(time.monotonic() - state.started_at, 1),
            "environment": state.settings.app_env,
            "version": __version__,
            "scheduler_running": bool(sched is not None and sched.running),
        }

    return app
