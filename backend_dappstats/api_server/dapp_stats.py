"""
FastAPI router: POST /api/dapps/stats and GET /api/dapps/stats.

Resolves requested names to tracked dApps, computes windowed totals via the
StatsEngine, and shapes the response (change strings, K/M formatting,
optional sparklines). Reads only.
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError, field_validator

from backend_dappstats.analytics.formatting import (
    TIMEFRAMES,
    calculate_change,
    change_type,
    format_large_number,
)
from backend_dappstats.analytics.stats_engine import DappWindowStats, StatsEngine
from backend_dappstats.core.time_utils import now_ts, to_iso
from backend_dappstats.dappstats_logging import get_logger
from backend_dappstats.database.aggregation import AggregationStore
from backend_dappstats.database.dapps import DappRecord, DappRepository
from backend_dappstats.database.runs import IngestionRunLog

logger = get_logger(__name__)

router = APIRouter(prefix="/dapps", tags=["dApp Stats"])

MAX_DAPP_NAMES = 10


# -----------------------------------------------------------------------------
# Request models
# -----------------------------------------------------------------------------


class DappStatsRequest(BaseModel):
    """POST /api/dapps/stats body."""

    timeframe: Literal["24H", "7D", "30D"] = Field(..., description="Comparison window")
    dapp_names: list[str] = Field(
        ...,
        min_length=1,
        max_length=MAX_DAPP_NAMES,
        description="dApp slugs or titles (1-10)",
    )
    include_sparklines: bool = Field(False, description="Include the hourly tx series and its trend")

    @field_validator("dapp_names")
    @classmethod
    def _names_non_empty(cls, v: list[str]) -> list[str]:
        names = [n.strip() for n in v]
        if any(not n for n in names):
            raise ValueError("dapp_names must not contain empty strings")
        return names


def validation_details(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """JSON-safe subset of pydantic error entries."""
    return [
        {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in errors
    ]


def invalid_request_response(errors: list[dict[str, Any]]) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid request data",
            "details": validation_details(errors),
        },
    )


# -----------------------------------------------------------------------------
# Response shaping
# -----------------------------------------------------------------------------


def _metric_block(stats: DappWindowStats, attr: str) -> dict[str, Any]:
    selected = stats.selected
    current = getattr(selected.current, attr)
    block: dict[str, Any] = {"current": current, "formatted": format_large_number(current)}
    for tf in TIMEFRAMES:
        comp = stats.by_timeframe[tf]
        key = tf.lower()
        block[f"current_{key}"] = getattr(comp.current, attr)
        block[f"change_{key}"] = calculate_change(getattr(comp.current, attr), getattr(comp.previous, attr))
    block["change_type"] = change_type(current, getattr(selected.previous, attr))
    return block


def _dapp_entry(dapp: DappRecord, stats: DappWindowStats, include_sparklines: bool, now: int) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "name": dapp.title,
        "slug": dapp.slug,
        "all_time_txs": dapp.all_time_txs,
        "users": _metric_block(stats, "unique_users"),
        "transactions": _metric_block(stats, "tx_count"),
    }
    if include_sparklines:
        entry["sparkline_data"] = stats.sparkline or []
        entry["sparkline_trend"] = stats.sparkline_trend or "stable"
    entry["last_updated"] = to_iso(stats.last_updated if stats.last_updated is not None else now)
    return entry


def _internal_error(request: Request, e: Exception) -> JSONResponse:
    settings = request.app.state.settings
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "message": "Something went wrong" if settings.is_production else str(e),
        },
    )


def build_stats_response(request: Request, body: DappStatsRequest) -> JSONResponse:
    state = request.app.state
    settings = state.settings
    try:
        repo = DappRepository(state.database, settings.chain_id)
        resolved: list[DappRecord] = []
        seen: set[int] = set()
        for name in body.dapp_names:
            dapp = repo.find_dapp(name)
            if dapp is None:
                logger.warning("dapp_stats_name_unresolved", dapp_name=name)
                continue
            if dapp.id not in seen:
                seen.add(dapp.id)
                resolved.append(dapp)
        if not resolved:
            return JSONResponse(
                status_code=404,
                content={"success": False, "error": "No valid dApps found"},
            )

        now = now_ts()
        engine = StatsEngine(AggregationStore(state.database, settings.chain_id))
        stats = engine.compute(
            body.timeframe,
            [d.id for d in resolved],
            include_sparklines=body.include_sparklines,
            now=now,
        )
        last_crawl = IngestionRunLog(state.database, settings.data_source).last_successful_finish()
        data = [_dapp_entry(d, stats[d.id], body.include_sparklines, now) for d in resolved]
        logger.info(
            "dapp_stats_served",
            timeframe=body.timeframe,
            requested=len(body.dapp_names),
            resolved=len(resolved),
            sparklines=body.include_sparklines,
        )
        return JSONResponse(
            content={
                "success": True,
                "data": data,
                "metadata": {
                    "total_dapps": len(data),
                    "timeframe": body.timeframe,
                    "last_crawl": to_iso(last_crawl if last_crawl is not None else now),
                    "data_sources": [settings.data_source],
                },
            }
        )
    except Exception as e:
        logger.exception("dapp_stats_failed", error=str(e))
        return _internal_error(request, e)


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


@router.post("/stats")
def post_dapp_stats(body: DappStatsRequest, request: Request) -> JSONResponse:
    """Windowed stats for up to 10 dApps. 404 when none of the names resolve."""
    return build_stats_response(request, body)


@router.get("/stats")
def get_dapp_stats(
    request: Request,
    timeframe: str | None = Query(None, description="24H, 7D or 30D"),
    dapp_names: list[str] | None = Query(None, description="Repeated or comma-separated"),
    include_sparklines: bool = Query(False),
) -> JSONResponse:
    """Query-string variant of POST /api/dapps/stats."""
    names: list[str] = []
    for raw in dapp_names or []:
        names.extend(part for part in raw.split(",") if part.strip())
    payload: dict[str, Any] = {"dapp_names": names, "include_sparklines": include_sparklines}
    if timeframe is not None:
        payload["timeframe"] = timeframe
    try:
        body = DappStatsRequest.model_validate(payload)
    except ValidationError as e:
        return invalid_request_response(e.errors())
    return build_stats_response(request, body)
