"""Health check endpoint with a cache store connectivity probe.

Always returns 200 so load balancers keep routing; a disconnected cache only
means every search runs the full pipeline.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Depends, Request

from app.api.dependencies import get_cache_store
from app.config import settings
from app.pipeline.cache import CacheStore

logger = structlog.get_logger()

router = APIRouter(tags=["health"])

_CHECK_TIMEOUT = 3.0  # seconds


async def _check_cache(store: CacheStore) -> str:
    try:
        return await asyncio.wait_for(store.ping(), timeout=_CHECK_TIMEOUT)
    except Exception as exc:
        logger.debug("health_cache_failed", error=str(exc))
        return "disconnected"


@router.get("/health")
async def health_check(
    request: Request,
    cache_store: CacheStore = Depends(get_cache_store),
) -> dict:
    """Liveness plus cache and keyword-model status."""
    gemini_client = getattr(request.app.state, "gemini_client", None)
    return {
        "status": "ok",
        "version": "0.1.0",
        "environment": settings.environment,
        "cache": await _check_cache(cache_store),
        "gemini": "configured" if gemini_client is not None else "disabled",
    }
