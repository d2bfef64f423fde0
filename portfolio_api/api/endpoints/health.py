"""
Health check endpoints.

Liveness for load balancers and a readiness probe that touches the database.
"""

from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, HTTPException, status

from ... import __version__
from ..dependencies import CacheDep, ExecutorDep, SettingsDep

logger = structlog.get_logger()
router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(settings: SettingsDep, cache: CacheDep) -> Dict[str, Any]:
    """
    Basic health check endpoint.

    Always answers while the process is alive; cache tier stats are included
    for a quick look.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "cache": {
            "memory": cache.memory.stats(),
            "redis_connected": cache.redis is not None and cache.redis.is_connected,
        },
    }


@router.get("/api/health")
async def readiness_check(executor: ExecutorDep) -> Dict[str, Any]:
    """Readiness: the database must answer a trivial query."""
    try:
        latency_ms = await executor.ping()
    except Exception as e:
        logger.error("Readiness check failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database disconnected",
        )

    return {
        "success": True,
        "message": "Portfolio API is healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "connected",
        "database_latency_ms": round(latency_ms, 2),
    }
