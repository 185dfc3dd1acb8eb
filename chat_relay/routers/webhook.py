"""Public endpoints: live-chat webhook, test generation, status and analytics."""

import asyncio
import platform
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from chat_relay.dependencies import ServiceContainer, get_container, get_pipeline
from chat_relay.logging_config import get_logger
from chat_relay.schemas.webhook import DebugRequest, DebugResponse
from chat_relay.services.pipeline_service import WebhookPipeline
from chat_relay.services.signature_service import SIGNATURE_HEADER

logger = get_logger("webhook_router")

router = APIRouter(prefix="/api", tags=["webhook"])

PERIOD_DAYS = {"daily": 1, "weekly": 7}


def _client_meta(request: Request) -> dict:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


@router.post("/webhook")
async def tawk_webhook(request: Request, pipeline: WebhookPipeline = Depends(get_pipeline)):
    raw_body = await request.body()
    # Shielded: a client disconnect must not abandon a started request.
    result = await asyncio.shield(
        pipeline.handle(raw_body, request.headers.get(SIGNATURE_HEADER), _client_meta(request))
    )
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.post("/test", response_model=DebugResponse)
async def test_generation(body: DebugRequest, pipeline: WebhookPipeline = Depends(get_pipeline)):
    result = await pipeline.handle_test(body.message)
    if result.status_code != 200:
        return JSONResponse(status_code=result.status_code, content=result.body)
    return result.body


@router.get("/status")
async def status(container: ServiceContainer = Depends(get_container)):
    settings = container.settings
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "system": {
            "status": "operational",
            "uptime": container.uptime_seconds(),
            "pythonVersion": platform.python_version(),
            "environment": settings.environment,
        },
        "services": {
            "openai": {
                "configured": bool(settings.openai_api_key),
                "model": settings.model,
                "provider": container.llm.name,
            },
            "tawk": container.tawk.config_status(),
            "cache": {
                "backend": container.cache.backend_name,
                "connected": await container.cache.ping(),
            },
            "database": container.database.pool_status(),
            "rag": {
                "ready": container.store.is_ready(),
                "mode": container.retriever.mode,
                "info": container.store.info(),
            },
        },
        "usage": container.generator.stats.snapshot(),
        "telemetry": {
            "queueSize": container.telemetry.queue_size(),
            "droppedEvents": container.telemetry.dropped_events,
        },
    }


@router.get("/analytics")
async def analytics(
    period: Literal["daily", "weekly"] = "daily",
    days: Optional[int] = Query(default=None, ge=1, le=365),
    container: ServiceContainer = Depends(get_container),
):
    lookback_days = days or PERIOD_DAYS[period]
    report = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "period": period,
        "days": lookback_days,
        "realtime": await container.telemetry.realtime_counters(),
        "topEvents": [],
        "dailyReport": [],
        "performance": {},
        "usage": container.generator.stats.snapshot(),
    }

    repository = container.analytics
    if repository is None or not container.database.is_connected:
        report["database"] = False
        return report

    report["database"] = True
    try:
        report["topEvents"] = await asyncio.to_thread(repository.top_events, 10, lookback_days)
        if period == "daily":
            report["dailyReport"] = await asyncio.to_thread(repository.daily_report)
        report["performance"] = await asyncio.to_thread(repository.performance_metrics)
    except SQLAlchemyError as exc:
        logger.warning("Analytics query failed", extra={"context": {"error": str(exc)}})
        report["database"] = False
    return report
