"""
FastAPI router: ingestion status and manual trigger.

GET /api/ingestion/status, POST /api/ingestion/trigger. Both need a scheduler
on app.state (503 otherwise); trigger answers 409 while a cycle is running.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from backend_dappstats.dappstats_logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/ingestion", tags=["Ingestion"])


class TriggerRequest(BaseModel):
    dapp_slugs: list[str] | None = Field(None, max_length=50, description="Only these slugs; default all active")


def _no_scheduler() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"success": False, "error": "Ingestion scheduler not running"},
    )


@router.get("/status")
def ingestion_status(request: Request) -> JSONResponse:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return _no_scheduler()
    return JSONResponse(content={"success": True, "data": scheduler.status()})


@router.post("/trigger")
async def ingestion_trigger(request: Request, body: TriggerRequest | None = None) -> JSONResponse:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return _no_scheduler()
    slugs = body.dapp_slugs if body is not None else None
    logger.info("ingestion_trigger_requested", dapp_slugs=slugs)
    results = await scheduler.trigger(slugs)
    if results is None:
        return JSONResponse(
            status_code=409,
            content={"success": False, "error": "Ingestion already running"},
        )
    return JSONResponse(
        content={
            "success": True,
            "data": [r.to_dict() for r in results],
        }
    )
