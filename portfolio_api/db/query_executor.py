"""
Query Execution Wrapper

Thin observability and caching layer over raw SQL execution:
- Wall-clock timing and slow-query warnings
- Structured success/failure records through the database log helper
- Optional read-through caching keyed by a caller-supplied cache key

Database errors are logged with diagnostic context and re-raised. There is no
retry, timeout or circuit breaking at this layer.
"""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence, TypeVar, Union

import structlog
from opentelemetry import trace
from sqlalchemy import text
from sqlalchemy.engine import Result
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql import Executable

from ..core import log as app_log
from ..core.database import QueryMetrics
from ..services.cache.memory_cache import MemoryCache

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

Query = Union[str, Executable]
Params = Optional[Mapping[str, Any]]

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a statement that returns no rows."""

    affected_rows: int


@dataclass
class QueryOptions:
    use_cache: bool = False
    cache_key: Optional[str] = None
    cache_ttl: int = 300


@dataclass
class BatchQuery:
    query: Query
    params: Params = None
    options: QueryOptions = field(default_factory=QueryOptions)


QueryResult = Union[List[dict], WriteResult]


def _normalize(statement: Executable) -> str:
    return _WHITESPACE.sub(" ", str(statement)).strip()


def _query_type(query_text: str) -> str:
    return query_text.split(" ", 1)[0].upper() if query_text else "UNKNOWN"


def driver_error_code(error: BaseException) -> Optional[Any]:
    """Best-effort driver-specific error code (SQLSTATE, errno or SQLite name)."""
    original = getattr(error, "orig", None) or error
    for attribute in ("sqlstate", "pgcode", "sqlite_errorname"):
        code = getattr(original, attribute, None)
        if code:
            return code
    args = getattr(original, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


class QueryExecutor:
    """
    Executes parameterized queries against the pooled engine.

    Each `execute` call runs in its own short transaction that commits on
    success. Use `execute_transaction` to group statements atomically.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        cache: MemoryCache,
        slow_query_threshold_ms: float = 1000,
        metrics: Optional[QueryMetrics] = None,
    ):
        self.engine = engine
        self.cache = cache
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self.metrics = metrics or QueryMetrics()

    @staticmethod
    def _statement(query: Query) -> Executable:
        return text(query) if isinstance(query, str) else query

    @staticmethod
    async def _run(conn: AsyncConnection, statement: Executable, params: Params) -> QueryResult:
        if params is None:
            result: Result = await conn.execute(statement)
        else:
            result = await conn.execute(statement, dict(params))

        if result.returns_rows:
            return [dict(row) for row in result.mappings().all()]
        return WriteResult(affected_rows=result.rowcount)

    async def execute(
        self,
        query: Query,
        params: Params = None,
        *,
        use_cache: bool = False,
        cache_key: Optional[str] = None,
        cache_ttl: int = 300,
    ) -> QueryResult:
        """
        Execute one query, optionally through the read-through cache.

        Args:
            query: SQL text with :named parameters, or a SQLAlchemy Core statement
            params: Parameter mapping for the query
            use_cache: Consult and fill the memory cache under `cache_key`
            cache_key: Caller-chosen cache key
            cache_ttl: TTL in seconds for the cached result

        Returns:
            List of row dicts for row-returning queries, WriteResult otherwise

        Raises:
            SQLAlchemyError: Any database error, after it has been logged
        """
        caching = use_cache and cache_key is not None

        if caching:
            cached = self.cache.get(cache_key)
            if cached.hit:
                self.metrics.cache_hits.inc()
                logger.debug("Database cache hit", cache_key=cache_key)
                return cached.value

        statement = self._statement(query)
        result = await self._execute_with_logging(statement, params, use_cache)

        if caching and result is not None:
            self.cache.set(cache_key, result, cache_ttl)

        return result

    async def execute_on(
        self, conn: AsyncConnection, query: Query, params: Params = None
    ) -> QueryResult:
        """Execute on a connection the caller already holds, e.g. inside a transaction."""
        return await self._execute_with_logging(self._statement(query), params, False, conn)

    async def _execute_with_logging(
        self,
        statement: Executable,
        params: Params,
        use_cache: bool,
        conn: Optional[AsyncConnection] = None,
    ) -> QueryResult:
        query_text = _normalize(statement)
        query_type = _query_type(query_text)

        logger.debug(
            "Executing SQL query", query=query_text, params=params, use_cache=use_cache
        )

        start = time.perf_counter()
        with tracer.start_as_current_span("db.execute") as span:
            span.set_attribute("db.operation", query_type)
            try:
                if conn is not None:
                    result = await self._run(conn, statement, params)
                else:
                    async with self.engine.begin() as own_conn:
                        result = await self._run(own_conn, statement, params)
            except Exception as e:
                duration_ms = (time.perf_counter() - start) * 1000
                self.metrics.failed_queries.labels(query_type=query_type).inc()
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                logger.error(
                    "Database query failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    error_code=driver_error_code(e),
                    query=query_text,
                    params=params,
                    duration_ms=round(duration_ms, 2),
                )
                raise

        duration_ms = (time.perf_counter() - start) * 1000
        self.metrics.query_duration.labels(query_type=query_type).observe(duration_ms / 1000)

        if duration_ms > self.slow_query_threshold_ms:
            self.metrics.slow_queries.labels(query_type=query_type).inc()
            logger.warning(
                "Slow query detected",
                duration_ms=round(duration_ms, 2),
                threshold_ms=self.slow_query_threshold_ms,
                query=query_text,
                params=params,
            )

        row_count = len(result) if isinstance(result, list) else result.affected_rows
        app_log.database(
            f"{query_type} executed",
            duration_ms=round(duration_ms, 2),
            row_count=row_count,
            query_type=query_type,
            use_cache=use_cache,
        )
        return result

    async def execute_single(
        self,
        query: Query,
        params: Params = None,
        *,
        use_cache: bool = False,
        cache_key: Optional[str] = None,
        cache_ttl: int = 300,
    ) -> Optional[dict]:
        """Execute and return the first row, or None."""
        result = await self.execute(
            query, params, use_cache=use_cache, cache_key=cache_key, cache_ttl=cache_ttl
        )
        if isinstance(result, list) and result:
            return result[0]
        return None

    async def execute_batch(self, queries: Sequence[BatchQuery]) -> List[QueryResult]:
        """
        Run queries one after another, without a surrounding transaction.

        The first failure aborts the batch; statements that already ran stay
        committed and the error propagates.
        """
        start = time.perf_counter()
        results: List[QueryResult] = []

        try:
            for item in queries:
                options = item.options
                results.append(
                    await self.execute(
                        item.query,
                        item.params,
                        use_cache=options.use_cache,
                        cache_key=options.cache_key,
                        cache_ttl=options.cache_ttl,
                    )
                )
        except Exception as e:
            logger.error(
                "Batch query execution failed",
                error=str(e),
                completed=len(results),
                query_count=len(queries),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise

        app_log.database(
            "Batch executed",
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            query_count=len(queries),
        )
        return results

    async def execute_transaction(
        self, callback: Callable[[AsyncConnection], Awaitable[T]]
    ) -> T:
        """
        Run `callback` inside one transaction on a dedicated connection.

        Commits when the callback returns, rolls back on any exception, and
        always returns the connection to the pool.
        """
        async with self.engine.connect() as conn:
            transaction = await conn.begin()
            try:
                result = await callback(conn)
            except BaseException as e:
                await transaction.rollback()
                logger.warning(
                    "Transaction rolled back",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
            await transaction.commit()
            return result

    async def ping(self) -> float:
        """Round-trip a trivial query. Returns the latency in milliseconds."""
        start = time.perf_counter()
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return (time.perf_counter() - start) * 1000
