"""
HTTP middleware: request timing log and the API version header.
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable

from fastapi import FastAPI, Request
from starlette.responses import Response

from backend_dappstats.dappstats_logging import get_logger

logger = get_logger(__name__)

API_VERSION = "1.0.0"
VERSIONED_PREFIX = "/api/dapps"


def install_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def api_version_and_timing(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.monotonic()
        response = await call_next(request)
        if request.url.path.startswith(VERSIONED_PREFIX):
            response.headers["X-API-Version"] = API_VERSION
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        return response
