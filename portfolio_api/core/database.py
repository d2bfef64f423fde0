"""
Portfolio API Database Configuration

Connection management for the relational store:
- Bounded connection pool (pool_size + max_overflow) with a wait timeout,
  so requests queue for at most DATABASE_POOL_TIMEOUT seconds
- Connection retry logic with exponential backoff at startup
- Prometheus metrics for query timing, slow queries and failures
"""

import time
from typing import Any, Dict, Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Histogram
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from .config import Settings, get_settings

logger = structlog.get_logger(__name__)


class QueryMetrics:
    """Prometheus collectors for query execution, bound to one registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.query_duration = Histogram(
            "portfolio_db_query_duration_seconds",
            "Time spent executing database queries",
            ["query_type"],
            registry=self.registry,
        )
        self.slow_queries = Counter(
            "portfolio_db_slow_queries_total",
            "Queries slower than the configured threshold",
            ["query_type"],
            registry=self.registry,
        )
        self.failed_queries = Counter(
            "portfolio_db_failed_queries_total",
            "Queries that raised an error",
            ["query_type"],
            registry=self.registry,
        )
        self.cache_hits = Counter(
            "portfolio_db_cache_hits_total",
            "Read-through cache hits in the query executor",
            registry=self.registry,
        )

    def snapshot(self) -> Dict[str, float]:
        """Flatten counter totals for the monitoring dashboard."""
        totals: Dict[str, float] = {}
        for metric in self.registry.collect():
            for sample in metric.samples:
                if sample.name.endswith("_total") or sample.name.endswith("_count"):
                    totals[sample.name] = totals.get(sample.name, 0) + sample.value
        return totals


class DatabaseManager:
    """
    Owns the async engine and its pool.

    Features:
    - Pool sized from settings, with pre-ping and recycling
    - Startup connectivity probe retried with exponential backoff
    - Pool status reporting for the monitoring endpoints
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.engine: Optional[AsyncEngine] = None
        self.metrics = QueryMetrics()

    def _engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "echo": self.settings.DEBUG,
            "pool_pre_ping": True,
        }
        # In-memory SQLite uses a single static connection and takes no sizing.
        if ":memory:" not in self.settings.DATABASE_URL:
            kwargs.update(
                pool_size=self.settings.DATABASE_POOL_SIZE,
                max_overflow=self.settings.DATABASE_MAX_OVERFLOW,
                pool_timeout=self.settings.DATABASE_POOL_TIMEOUT,
                pool_recycle=self.settings.DATABASE_POOL_RECYCLE,
            )
        return kwargs

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((ConnectionError, OSError)),
        before_sleep=lambda retry_state: logger.warning(
            "Database connection retry",
            attempt=retry_state.attempt_number,
            wait_time=retry_state.next_action.sleep,
        ),
        reraise=True,
    )
    async def _create_engine_with_retry(self) -> AsyncEngine:
        """Create the engine and prove it can reach the database."""
        start_time = time.time()
        engine = create_async_engine(self.settings.DATABASE_URL, **self._engine_kwargs())

        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            await engine.dispose()
            logger.error(
                "Failed to connect to database",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        logger.info(
            "Database engine created successfully",
            duration_seconds=time.time() - start_time,
            pool_size=self.settings.DATABASE_POOL_SIZE,
            max_overflow=self.settings.DATABASE_MAX_OVERFLOW,
            pool_timeout=self.settings.DATABASE_POOL_TIMEOUT,
        )
        return engine

    async def initialize(self) -> AsyncEngine:
        if self.engine is None:
            self.engine = await self._create_engine_with_retry()
        return self.engine

    async def create_tables(self) -> None:
        """Create any missing tables from the model metadata."""
        from ..models import Base

        if self.engine is None:
            raise RuntimeError("Database manager is not initialized")

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")

    def pool_status(self) -> Dict[str, Any]:
        if self.engine is None:
            return {"initialized": False}

        pool = self.engine.pool
        status: Dict[str, Any] = {"initialized": True, "pool_class": type(pool).__name__}
        if hasattr(pool, "checkedout"):
            status.update(
                size=pool.size(),
                checked_out=pool.checkedout(),
                checked_in=pool.checkedin(),
                overflow=pool.overflow(),
            )
        return status

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            logger.info("Database connections closed")
