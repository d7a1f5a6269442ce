"""Health check endpoints for the Tidy API.

- /health - Service health including LLM credential presence
- /health/db - Database connection pool health
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from tidy.api.context import ServiceContext, get_context
from tidy.config import APP_VERSION, GEMINI_BACKEND, GOOGLE_CLOUD_PROJECT
from tidy.storage.database import get_pool_stats

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(ctx: ServiceContext = Depends(get_context)) -> dict[str, Any]:
    """Service status and credential readiness (checks presence only, no API call)."""
    has_project = bool(GOOGLE_CLOUD_PROJECT)
    llm_ready = has_project if GEMINI_BACKEND == "vertex" else ctx.has_api_key

    return {
        "status": "healthy",
        "service": "Tidy API",
        "version": APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "llm": {
            "ready": llm_ready,
            "backend": GEMINI_BACKEND,
            "apiKey": ctx.has_api_key,
            "googleCloudProject": has_project,
        },
    }


@router.get("/health/db")
async def database_health() -> dict[str, Any]:
    """Connection pool metrics; degraded above 80% usage."""
    stats = get_pool_stats()
    usage_percent = stats["usage_percent"]

    return {
        "status": "degraded" if usage_percent > 80 else "healthy",
        "pool": stats,
        "warning": "Pool usage high" if usage_percent > 80 else None,
    }
