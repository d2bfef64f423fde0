"""
Cache Manager Service

Tiered lookup over the in-process cache and the optional Redis tier:

    memory -> redis -> compute

A slower-tier hit fills the faster tiers. Both tiers fail open, so a broken
or absent cache only costs performance.
"""

import re
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
from opentelemetry import trace

from ...infrastructure.redis.redis_cache import RedisCache
from .memory_cache import MemoryCache

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

CACHE_TARGETS = ("memory", "redis", "all")


class InvalidCacheTarget(ValueError):
    """Raised when a cache clear names something other than memory, redis or all."""

    def __init__(self, target: Any):
        self.target = target
        super().__init__(
            f"Invalid cache type: {target!r}. Expected one of: {', '.join(CACHE_TARGETS)}"
        )


class CacheManager:
    """
    High-level cache service used by the repositories.

    Owns references to both tiers; it is created once per application and
    handed to data-access code explicitly.
    """

    def __init__(self, memory: MemoryCache, redis: Optional[RedisCache] = None):
        self.memory = memory
        self.redis = redis

    async def fetch(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Return the value for `key` from the fastest tier that has it.

        Args:
            key: Cache key
            compute: Coroutine factory producing the value on a full miss
            ttl: Entry TTL in seconds for both tiers

        Returns:
            Cached or freshly computed value

        Raises:
            Whatever `compute` raises
        """
        with tracer.start_as_current_span("cache_manager.fetch") as span:
            span.set_attribute("cache.key", key)
            span.set_attribute("cache.tier", "memory")
            computed = False

            async def load() -> Any:
                nonlocal computed
                if self.redis is not None:
                    remote = await self.redis.get(key)
                    if remote.hit:
                        span.set_attribute("cache.tier", "redis")
                        return remote.value

                span.set_attribute("cache.tier", "source")
                computed = True
                return await compute()

            async def fill_redis(value: Any) -> None:
                if computed and self.redis is not None:
                    await self.redis.set(key, value, ttl)

            # The memory tier does the single lookup, shares one load between
            # concurrent misses and skips both stores when the key was
            # invalidated mid-load.
            return await self.memory.fetch_or_compute(key, load, ttl, on_store=fill_redis)

    async def invalidate(self, prefix: str) -> Dict[str, int]:
        """
        Drop every key of a family, e.g. all `projects:` variants after a write.

        Returns:
            Deleted counts per tier
        """
        memory_count = self.memory.delete_by_pattern(f"^{re.escape(prefix)}")
        redis_count = 0
        if self.redis is not None:
            redis_count = await self.redis.delete_pattern(f"{_escape_glob(prefix)}*")

        logger.debug(
            "Cache family invalidated",
            prefix=prefix,
            memory=memory_count,
            redis=redis_count,
        )
        return {"memory": memory_count, "redis": redis_count}

    async def clear(self, target: str) -> Dict[str, bool]:
        """
        Empty one or both tiers.

        Args:
            target: "memory", "redis" or "all"

        Raises:
            InvalidCacheTarget: If target is anything else; no tier is touched
        """
        if target not in CACHE_TARGETS:
            raise InvalidCacheTarget(target)

        result: Dict[str, bool] = {}
        if target in ("memory", "all"):
            self.memory.flush_all()
            result["memory"] = True
        if target in ("redis", "all"):
            result["redis"] = (
                await self.redis.flush_all() if self.redis is not None else False
            )

        logger.info("Cache cleared", target=target, result=result)
        return result

    async def stats(self) -> Dict[str, Any]:
        return {
            "memory": self.memory.stats(),
            "redis": await self.redis.stats()
            if self.redis is not None
            else {"connected": False},
        }


def _escape_glob(value: str) -> str:
    return re.sub(r"([*?\[\]\\])", r"\\\1", value)
