"""
Base Repository

Shared plumbing for the data-access classes: every repository runs its SQL
through the QueryExecutor and caches reads through the CacheManager under its
own key prefix. Writes invalidate the whole prefix family.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import structlog

from ..db.query_executor import QueryExecutor
from ..services.cache.cache_manager import CacheManager
from ..services.cache.memory_cache import MemoryCache

logger = structlog.get_logger()


def serialize_value(value: Any) -> Any:
    """Convert driver types to JSON-friendly primitives."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def serialize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {key: serialize_value(value) for key, value in row.items()}


def serialize_rows(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize_row(row) for row in rows]


class BaseRepository:
    """
    Base class for repositories.

    Rows are serialized before they are cached, so a value read back from the
    Redis tier is identical to one read from memory.
    """

    CACHE_PREFIX = ""
    CACHE_TTL = 600

    def __init__(self, executor: QueryExecutor, cache: CacheManager):
        if not self.CACHE_PREFIX:
            raise TypeError(f"{type(self).__name__} must define CACHE_PREFIX")

        self.executor = executor
        self.cache = cache

    def cache_key(self, *parts: Any) -> str:
        return MemoryCache.generate_key(self.CACHE_PREFIX, *parts)

    async def cached(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        return await self.cache.fetch(key, compute, ttl or self.CACHE_TTL)

    async def invalidate(self) -> None:
        counts = await self.cache.invalidate(f"{self.CACHE_PREFIX}:")
        logger.debug(
            "Repository cache invalidated",
            repository=type(self).__name__,
            prefix=self.CACHE_PREFIX,
            **counts,
        )
