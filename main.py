"""
Main entrypoint: FastAPI server with the ingestion scheduler running in its lifespan.

The scheduler ticks on the server's event loop (first cycle after
SCHEDULER_INITIAL_DELAY_SEC, then every INGEST_INTERVAL_MINUTES). On
SIGINT/SIGTERM uvicorn runs the lifespan shutdown, which stops the scheduler
and closes the explorer client.

Env: DATABASE_URL or DB_PATH, EXPLORER_BASE_URL, API_HOST, API_PORT, etc. (see .env)

API-only (no scheduler): SCHEDULER_ENABLED=false uvicorn backend_dappstats.api_server.app:app --port 8002
"""

import os
import sys

# Configure structured JSON logging before other imports that may log
from backend_dappstats.dappstats_logging import get_logger

logger = get_logger("main")


def main() -> None:
    from backend_dappstats.config import get_settings
    from backend_dappstats.config.env import mask_db_url

    try:
        settings = get_settings()
    except ValueError as e:
        logger.error("main_config_error", error=str(e))
        sys.exit(1)

    logger.info(
        "main_server_starting",
        host=settings.api_host,
        port=settings.api_port,
        environment=settings.app_env,
        database=mask_db_url(settings.database_url),
        explorer=settings.explorer_base_url,
        scheduler_enabled=settings.scheduler_enabled,
    )

    import uvicorn

    uvicorn.run(
        "backend_dappstats.api_server.app:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
