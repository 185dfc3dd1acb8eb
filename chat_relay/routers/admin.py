"""Operator endpoints: corpus reload, usage stats reset, cache flush."""

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from chat_relay.dependencies import ServiceContainer, get_container
from chat_relay.logging_config import get_logger

logger = get_logger("admin_router")

router = APIRouter(prefix="/admin", tags=["admin"])


def _require_admin_token(expected: Optional[str], provided: Optional[str]) -> None:
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="ADMIN_TOKEN not configured",
        )
    if not provided or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


@router.post("/corpus/reload")
async def reload_corpus(
    container: ServiceContainer = Depends(get_container),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(container.settings.admin_token, x_admin_token)
    result = container.store.reload()
    if not result.ok:
        logger.warning("Corpus reload failed", extra={"context": {"error": result.error, "code": result.error_code}})
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": result.error, "code": result.error_code, "ready": container.store.is_ready()},
        )
    return {"success": True, "info": container.store.info()}


@router.post("/stats/reset")
async def reset_stats(
    container: ServiceContainer = Depends(get_container),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(container.settings.admin_token, x_admin_token)
    previous = container.generator.stats.snapshot()
    container.generator.stats.reset()
    return {"success": True, "previous": previous}


@router.post("/cache/flush")
async def flush_cache(
    container: ServiceContainer = Depends(get_container),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(container.settings.admin_token, x_admin_token)
    flushed = await container.cache.flush_all()
    return {"success": flushed, "backend": container.cache.backend_name}
