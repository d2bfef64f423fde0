"""
Portfolio API - Main FastAPI Application

Wires the portfolio backend together:
- Structured logging with daily rotated JSON files
- Pooled async database engine and the query execution wrapper
- Two-tier cache: bounded in-process TTL cache plus optional Redis over a
  Unix socket, degrading to memory-only when Redis is unreachable
- Public, admin and monitoring routers
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .api.endpoints.admin import router as admin_router
from .api.endpoints.health import router as health_router
from .api.endpoints.monitoring import router as monitoring_router
from .api.endpoints.portfolio import router as portfolio_router
from .core import log as app_log
from .core.config import Settings, get_settings
from .core.database import DatabaseManager
from .db.query_executor import QueryExecutor
from .infrastructure.redis.redis_cache import RedisCache
from .middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from .services.cache.cache_manager import CacheManager
from .services.cache.memory_cache import MemoryCache

logger = structlog.get_logger()


def build_memory_cache(settings: Settings) -> MemoryCache:
    return MemoryCache(
        default_ttl=settings.CACHE_DEFAULT_TTL,
        max_keys=settings.CACHE_MAX_KEYS,
        check_period=settings.CACHE_CHECK_PERIOD,
        single_flight=settings.CACHE_SINGLE_FLIGHT,
    )


def build_redis_cache(settings: Settings) -> Optional[RedisCache]:
    if not settings.REDIS_ENABLED:
        return None
    return RedisCache(
        settings.REDIS_SOCKET,
        connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
        max_attempts=settings.REDIS_MAX_RECONNECT_ATTEMPTS,
        max_delay=settings.REDIS_RECONNECT_MAX_DELAY,
        retry_window=settings.REDIS_RECONNECT_WINDOW,
        default_ttl=settings.REDIS_DEFAULT_TTL,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create shared services, store them in app.state and tear them down on exit."""
    settings: Settings = app.state.settings
    app_log.configure_logging(settings)
    logger.info("Starting Portfolio API", version=__version__, environment=settings.ENVIRONMENT)

    database = DatabaseManager(settings)
    memory = build_memory_cache(settings)
    redis = build_redis_cache(settings)

    try:
        engine = await database.initialize()
        await database.create_tables()
    except Exception:
        logger.exception("Failed to initialize application")
        raise

    memory.start()
    if redis is not None:
        # Connection attempts run in the background; until they succeed the
        # Redis tier answers as a miss.
        redis.start()
    app_log.log_stats.start(settings.LOG_STATS_INTERVAL_SECONDS)

    app.state.database = database
    app.state.cache = CacheManager(memory, redis)
    app.state.executor = QueryExecutor(
        engine,
        memory,
        slow_query_threshold_ms=settings.SLOW_QUERY_THRESHOLD_MS,
        metrics=database.metrics,
    )
    app.state.started_at = time.time()

    logger.info(
        "Portfolio API started",
        redis_enabled=redis is not None,
        cache_max_keys=settings.CACHE_MAX_KEYS,
    )

    yield

    logger.info("Shutting down Portfolio API")
    try:
        await app_log.log_stats.stop()
        await memory.stop()
        if redis is not None:
            await redis.close()
        await database.close()
        logger.info("Application shutdown completed")
    except Exception as e:
        logger.error("Error during application shutdown", error=str(e))
    finally:
        del app.state.executor
        del app.state.cache
        del app.state.database


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Server error", path=request.url.path, detail=exc.detail)
    elif exc.status_code != 404:
        logger.warning(
            "Client error", path=request.url.path, status_code=exc.status_code, detail=exc.detail
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled server error",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    settings: Settings = request.app.state.settings
    content = {"success": False, "message": "Internal server error"}
    if settings.is_development:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use instead of the environment-derived ones

    Returns:
        Configured application; shared services are created by its lifespan
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Portfolio API",
        description="Portfolio website backend with two-tier caching",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, strict=settings.is_production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(portfolio_router)
    app.include_router(admin_router)
    app.include_router(monitoring_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "portfolio_api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
    )
