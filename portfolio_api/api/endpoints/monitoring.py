"""
Monitoring endpoints.

Process and cache introspection for operators:
- Dashboard with process memory, cache tier stats, pool state and counters
- Round-trip latency of the database and the Redis tier
- Manual cache clearing per tier
- Prometheus exposition of the query metrics
"""

import os
import platform
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict

import psutil
import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from ...core import log as app_log
from ...services.cache.cache_manager import InvalidCacheTarget
from ..dependencies import CacheDep, DatabaseDep, ExecutorDep

logger = structlog.get_logger()
router = APIRouter(prefix="/api/monitoring", tags=["monitoring"])

MB = 1024 * 1024


class CacheClearRequest(BaseModel):
    type: str


def _uptime_seconds(request: Request) -> int:
    started_at = getattr(request.app.state, "started_at", None) or time.time()
    return int(time.time() - started_at)


def _process_memory() -> Dict[str, str]:
    memory = psutil.Process(os.getpid()).memory_info()
    return {
        "rss": f"{round(memory.rss / MB)}MB",
        "vms": f"{round(memory.vms / MB)}MB",
    }


@router.get("/dashboard")
async def dashboard(
    request: Request, cache: CacheDep, database: DatabaseDep, executor: ExecutorDep
) -> Dict[str, Any]:
    system = {
        "python_version": sys.version.split()[0],
        "platform": sys.platform,
        "arch": platform.machine(),
        "pid": os.getpid(),
        "uptime": f"{_uptime_seconds(request)}s",
        "memory": _process_memory(),
    }
    return {
        "success": True,
        "data": {
            "system": system,
            "cache": await cache.stats(),
            "database": {
                "pool": database.pool_status(),
                "queries": executor.metrics.snapshot(),
            },
            "requests": app_log.log_stats.snapshot(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }


@router.get("/metrics")
async def metrics(request: Request, cache: CacheDep, executor: ExecutorDep) -> Dict[str, Any]:
    """Database and Redis round-trip latency with connection flags."""
    database: Dict[str, Any]
    try:
        latency_ms = await executor.ping()
        database = {"connected": True, "response_time": f"{round(latency_ms)}ms"}
    except Exception as e:
        logger.error("Database ping failed", error=str(e), error_type=type(e).__name__)
        database = {"connected": False, "response_time": None}

    redis_info: Dict[str, Any] = {"connected": False, "response_time": None}
    if cache.redis is not None:
        start = time.perf_counter()
        await cache.redis.get("test")
        redis_info = {
            "connected": cache.redis.is_connected,
            "response_time": f"{round((time.perf_counter() - start) * 1000)}ms",
        }

    return {
        "success": True,
        "data": {
            "database": database,
            "redis": redis_info,
            "memory": _process_memory(),
            "uptime": _uptime_seconds(request),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }


@router.post("/cache/clear")
async def clear_cache(payload: CacheClearRequest, cache: CacheDep):
    try:
        result = await cache.clear(payload.type)
    except InvalidCacheTarget as e:
        logger.warning("Rejected cache clear", target=payload.type)
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})

    app_log.admin("Cache cleared", target=payload.type, result=result)
    return {"success": True, "message": f"{payload.type} cache cleared", "data": result}


@router.get("/prometheus")
async def prometheus_metrics(executor: ExecutorDep) -> Response:
    return Response(
        content=generate_latest(executor.metrics.registry),
        media_type=CONTENT_TYPE_LATEST,
    )
