"""
In-Process TTL Cache

Bounded key/value cache with per-entry expiry that lives inside the API
process. It is the first cache tier: every operation fails closed, so callers
always fall back to recomputing the value when the cache misbehaves.

Entries are stored by reference. Callers must treat cached values as
read-only once they have been handed to the cache.
"""

import asyncio
import re
import sys
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    NamedTuple,
    Optional,
    Pattern,
    Tuple,
    Union,
)

import structlog

logger = structlog.get_logger(__name__)


class CacheLookup(NamedTuple):
    """Result of a cache read: `hit` tells a cached None apart from a miss."""

    hit: bool
    value: Any = None


MISS = CacheLookup(False, None)


@dataclass
class CacheEntry:
    """A stored value and its expiry bookkeeping."""

    value: Any
    ttl: float
    stored_at: float
    expires_at: Optional[float]

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class MemoryCache:
    """
    Process-wide TTL cache.

    Capacity is bounded by `max_keys`. When a new key would exceed it, the
    least-recently-set entries are evicted (reads do not refresh an entry's
    position). A background sweep removes expired entries every
    `check_period` seconds even when nobody reads them.

    The cache is only touched from the event loop and no method awaits while
    mutating state, so no lock guards the storage or the counters.
    """

    def __init__(
        self,
        default_ttl: float = 600,
        max_keys: int = 2000,
        check_period: float = 300,
        single_flight: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_keys < 1:
            raise ValueError("max_keys must be at least 1")

        self.default_ttl = default_ttl
        self.max_keys = max_keys
        self.check_period = check_period
        self.single_flight = single_flight
        self._clock = clock

        self._entries: "OrderedDict[Any, CacheEntry]" = OrderedDict()
        self._inflight: Dict[Any, asyncio.Task] = {}
        # Running computations per key, and a generation bumped whenever such
        # a key is invalidated. A result is only stored if its generation
        # is unchanged.
        self._loading: Dict[Any, int] = {}
        self._generations: Dict[Any, int] = {}
        self._sweep_task: Optional[asyncio.Task] = None

        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0

    # Basic operations

    def set(self, key: Any, value: Any, ttl: Optional[float] = None) -> bool:
        """
        Store a value, replacing any existing entry for the key.

        Args:
            key: Cache key
            value: Value to store (kept by reference)
            ttl: Seconds until expiry; defaults to `default_ttl`, 0 never expires

        Returns:
            True if stored, False on an internal fault
        """
        try:
            ttl = self.default_ttl if ttl is None else ttl
            if ttl < 0:
                raise ValueError(f"ttl must be non-negative, got {ttl}")

            now = self._clock()
            entry = CacheEntry(
                value=value,
                ttl=ttl,
                stored_at=now,
                expires_at=now + ttl if ttl else None,
            )

            self._entries.pop(key, None)
            self._entries[key] = entry
            self._enforce_capacity()
            return True

        except Exception as e:
            logger.error("Memory cache set failed", key=key, error=str(e))
            return False

    def get(self, key: Any) -> CacheLookup:
        """Return a hit with the stored value, or MISS if absent or expired."""
        try:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return MISS

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self.expirations += 1
                self.misses += 1
                return MISS

            self.hits += 1
            return CacheLookup(True, entry.value)

        except Exception as e:
            logger.error("Memory cache get failed", key=key, error=str(e))
            return MISS

    def delete(self, key: Any) -> bool:
        """Remove one entry. Returns False when the key was absent."""
        try:
            self._forget_loads([key])
            return self._entries.pop(key, None) is not None
        except Exception as e:
            logger.error("Memory cache delete failed", key=key, error=str(e))
            return False

    def has(self, key: Any) -> bool:
        """Existence check that neither counts as a read nor extends the TTL."""
        try:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())
        except Exception as e:
            logger.error("Memory cache has failed", key=key, error=str(e))
            return False

    def keys(self) -> List[Any]:
        now = self._clock()
        return [key for key, entry in self._entries.items() if not entry.is_expired(now)]

    def delete_by_pattern(self, pattern: Union[str, Pattern]) -> int:
        """
        Delete every key matching a regular expression.

        Args:
            pattern: Regex (searched anywhere in the key, anchor with ^ for prefixes)

        Returns:
            Number of deleted entries
        """
        try:
            regex = re.compile(pattern) if isinstance(pattern, str) else pattern
            matched = [key for key in self._entries if regex.search(str(key))]
            for key in matched:
                del self._entries[key]
            self._forget_loads([key for key in self._loading if regex.search(str(key))])

            logger.info(
                "Memory cache pattern delete",
                pattern=regex.pattern,
                deleted_count=len(matched),
            )
            return len(matched)

        except Exception as e:
            logger.error("Memory cache pattern delete failed", pattern=str(pattern), error=str(e))
            return 0

    def flush_all(self) -> None:
        """Remove every entry and reset the hit/miss counters."""
        count = len(self._entries)
        self._entries.clear()
        self._forget_loads(list(self._loading))
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0
        logger.info("Memory cache flushed", deleted_count=count)

    def stats(self) -> Dict[str, Any]:
        """Diagnostic snapshot of the cache counters and size."""
        lookups = self.hits + self.misses
        return {
            "keys": len(self._entries),
            "max_keys": self.max_keys,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "approx_memory_bytes": self._approx_memory(),
            "inflight": len(self._inflight),
        }

    # Helpers

    @staticmethod
    def generate_key(prefix: str, *parts: Any) -> str:
        """Build a `prefix:part1:part2` cache key."""
        return ":".join([prefix, *(str(part) for part in parts)])

    async def fetch_or_compute(
        self,
        key: Any,
        compute: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
        on_store: Optional[Callable[[Any], Awaitable[Any]]] = None,
    ) -> Any:
        """
        Return the cached value or compute, store and return it.

        With `single_flight` enabled, concurrent misses on the same key await
        one shared computation instead of each calling `compute`. Deleting or
        flushing the key while it is being computed detaches the computation:
        later readers start a fresh one and the stale result is not stored.

        Args:
            key: Cache key
            compute: Coroutine factory producing the value
            ttl: Entry TTL in seconds
            on_store: Awaited with the result right before it is stored,
                skipped when the result went stale

        Raises:
            Whatever `compute` raises; nothing is cached in that case.
        """
        lookup = self.get(key)
        if lookup.hit:
            return lookup.value

        if not self.single_flight:
            generation = self._begin_load(key)
            return await self._compute_and_store(key, generation, compute, ttl, on_store)

        task = self._inflight.get(key)
        if task is None:
            generation = self._begin_load(key)
            task = asyncio.ensure_future(
                self._compute_and_store(key, generation, compute, ttl, on_store)
            )
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._release_inflight(key, done))
        else:
            logger.debug("Memory cache joined in-flight computation", key=key)

        return await asyncio.shield(task)

    async def _compute_and_store(
        self,
        key: Any,
        generation: int,
        compute: Callable[[], Awaitable[Any]],
        ttl: Optional[float],
        on_store: Optional[Callable[[Any], Awaitable[Any]]] = None,
    ) -> Any:
        try:
            try:
                result = await compute()
            except Exception as e:
                logger.error("Memory cache compute failed", key=key, error=str(e))
                raise

            if self._generations.get(key, 0) != generation:
                logger.debug("Memory cache dropped stale result", key=key)
                return result

            if on_store is not None:
                await on_store(result)
            # on_store may have awaited across an invalidation.
            if self._generations.get(key, 0) == generation:
                self.set(key, result, ttl)
            return result
        finally:
            self._loading[key] -= 1
            if not self._loading[key]:
                del self._loading[key]
                self._generations.pop(key, None)

    def _begin_load(self, key: Any) -> int:
        self._loading[key] = self._loading.get(key, 0) + 1
        return self._generations.get(key, 0)

    def _release_inflight(self, key: Any, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def _forget_loads(self, keys: List[Any]) -> None:
        for key in keys:
            self._inflight.pop(key, None)
            if key in self._loading:
                self._generations[key] = self._generations.get(key, 0) + 1

    async def fetch_batch(
        self,
        keys: Iterable[Any],
        fetch_missing: Callable[[List[Any]], Awaitable[Dict[Any, Any]]],
        ttl: Optional[float] = None,
    ) -> Dict[Any, Any]:
        """
        Resolve several keys, fetching only the missing ones in a single call.

        A failing `fetch_missing` is logged and the cached subset is returned.
        """
        results: Dict[Any, Any] = {}
        missing: List[Any] = []

        for key in keys:
            lookup = self.get(key)
            if lookup.hit:
                results[key] = lookup.value
            else:
                missing.append(key)

        if not missing:
            return results

        try:
            fetched = await fetch_missing(missing)
        except Exception as e:
            logger.error("Memory cache batch fetch failed", keys=missing, error=str(e))
            return results

        for key in missing:
            if key in fetched:
                self.set(key, fetched[key], ttl)
                results[key] = fetched[key]

        return results

    async def warmup(
        self,
        loaders: Iterable[Callable[[], Awaitable[Tuple[Any, Any]]]],
        ttl: Optional[float] = None,
    ) -> int:
        """
        Preload entries from loaders returning `(key, data)`.

        Loaders run concurrently; each failure is logged on its own.

        Returns:
            Number of entries loaded
        """
        outcomes = await asyncio.gather(
            *(loader() for loader in loaders), return_exceptions=True
        )

        loaded = 0
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                logger.error("Memory cache warmup failed", error=str(outcome))
                continue
            key, data = outcome
            if self.set(key, data, ttl):
                loaded += 1

        logger.info("Memory cache warmed up", loaded=loaded)
        return loaded

    # Expiry and capacity

    def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self.expirations += len(expired)

        if expired:
            logger.debug("Memory cache sweep", expired_count=len(expired))
        return len(expired)

    def _enforce_capacity(self) -> None:
        if len(self._entries) <= self.max_keys:
            return

        # Reclaim expired entries before evicting live ones.
        self.sweep()
        while len(self._entries) > self.max_keys:
            key, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug("Memory cache evicted oldest entry", key=key)

    def _approx_memory(self) -> int:
        return sum(
            sys.getsizeof(key) + sys.getsizeof(entry.value)
            for key, entry in self._entries.items()
        )

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_period)
            try:
                self.sweep()
            except Exception as e:
                logger.error("Memory cache sweep failed", error=str(e))

    def start(self) -> None:
        """Start the periodic expiry sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info("Memory cache sweep started", check_period=self.check_period)

    async def stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

    def __len__(self) -> int:
        return len(self._entries)
