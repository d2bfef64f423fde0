"""
Redis Cache Client

Optional second cache tier reached over a local Unix domain socket.

The client is strictly additive: when the socket is missing, refuses
connections or keeps failing, it settles into a degraded mode in which every
operation is a silent no-op returning a neutral value. Nothing here raises to
callers.
"""

import asyncio
import json
import os
from typing import Any, Dict, Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
    RedisError,
)
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from ...services.cache.memory_cache import CacheLookup, MISS
from .exceptions import (
    RedisCacheException,
    RedisConnectionException,
    RedisSocketUnavailableException,
)

logger = structlog.get_logger(__name__)

_MEMORY_FIELDS = (
    "used_memory",
    "used_memory_human",
    "used_memory_peak_human",
    "maxmemory",
    "maxmemory_policy",
)


def _is_refused(error: BaseException) -> bool:
    """True when the error chain shows a missing or refusing socket."""
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, (ConnectionRefusedError, FileNotFoundError)):
            return True
        message = str(current)
        if "Connection refused" in message or "No such file or directory" in message:
            return True
        current = current.__cause__ or current.__context__
    return False


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, RedisConnectionException) and error.retryable


class RedisCache:
    """
    Redis-backed cache with reconnect/backoff and graceful degradation.

    Lifecycle:
        start()  -> schedules connect() without blocking startup
        connect() -> retries with capped exponential backoff, bounded by
                     attempt count and total window, then gives up for good
        close()  -> releases the connection at shutdown
    """

    def __init__(
        self,
        socket_path: str,
        *,
        connect_timeout: float = 2.0,
        max_attempts: int = 10,
        max_delay: float = 3.0,
        retry_window: float = 3600.0,
        default_ttl: int = 3600,
        client: Optional[Redis] = None,
    ):
        self.socket_path = socket_path
        self.connect_timeout = connect_timeout
        self.max_attempts = max_attempts
        self.max_delay = max_delay
        self.retry_window = retry_window
        self.default_ttl = default_ttl

        self._client = client
        self._external_client = client is not None
        self._connect_task: Optional[asyncio.Task] = None

        self.connected = False
        self.gave_up = False

    @property
    def is_connected(self) -> bool:
        return self.connected and self._client is not None

    # Connection management

    def _build_client(self) -> Redis:
        return Redis(
            unix_socket_path=self.socket_path,
            decode_responses=True,
            socket_connect_timeout=self.connect_timeout,
            socket_timeout=self.connect_timeout,
        )

    async def _attempt_connection(self) -> None:
        if not self._external_client and not os.path.exists(self.socket_path):
            raise RedisSocketUnavailableException(self.socket_path)

        if self._client is None:
            self._client = self._build_client()

        try:
            await self._client.ping()
        except (RedisError, OSError) as e:
            if _is_refused(e):
                raise RedisSocketUnavailableException(self.socket_path, e)
            raise RedisConnectionException(
                message=f"Redis ping failed: {e}",
                socket_path=self.socket_path,
                original_error=e,
            )

    def _log_retry(self, retry_state) -> None:
        logger.warning(
            "Redis reconnect retry",
            socket_path=self.socket_path,
            attempt=retry_state.attempt_number,
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        )

    async def connect(self) -> bool:
        """
        Connect to the socket, retrying transient failures.

        Returns:
            True if connected, False once the client is degraded
        """
        if self.gave_up:
            return False

        logger.info("Redis connection attempt", socket_path=self.socket_path)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts) | stop_after_delay(self.retry_window),
            wait=wait_exponential(multiplier=0.1, max=self.max_delay),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._log_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    await self._attempt_connection()
        except RedisCacheException as e:
            self._give_up(e)
            return False
        except Exception as e:
            logger.error("Unexpected Redis connection error", error=str(e), exc_info=True)
            self._give_up(e)
            return False

        self.connected = True
        logger.info("Redis connected", socket_path=self.socket_path)
        return True

    def _give_up(self, error: BaseException) -> None:
        self.connected = False
        self.gave_up = True
        logger.warning(
            "Redis unavailable, continuing with the memory cache only",
            socket_path=self.socket_path,
            error=str(error),
            error_code=getattr(error, "error_code", None),
        )

    def start(self) -> None:
        """Schedule the initial connection on the running event loop."""
        if self._connect_task is None or self._connect_task.done():
            self._connect_task = asyncio.create_task(self.connect())

    async def wait_connected(self) -> bool:
        """Wait for a pending connection attempt to settle."""
        if self._connect_task is not None:
            await self._connect_task
        return self.is_connected

    def _handle_failure(self, operation: str, error: Exception, **fields: Any) -> None:
        logger.error(
            f"Redis {operation} failed", operation=operation, error=str(error), **fields
        )
        if isinstance(error, (RedisConnectionError, RedisTimeoutError, OSError)):
            self.connected = False
            logger.warning("Redis connection lost", socket_path=self.socket_path)
            if not self.gave_up:
                self.start()

    # Cache operations

    async def get(self, key: str) -> CacheLookup:
        if not self.is_connected:
            return MISS

        try:
            raw = await self._client.get(key)
        except Exception as e:
            self._handle_failure("GET", e, key=key)
            return MISS

        if raw is None:
            return MISS

        try:
            return CacheLookup(True, json.loads(raw))
        except ValueError as e:
            logger.error("Redis value is not valid JSON", key=key, error=str(e))
            return MISS

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a JSON value. `ttl` defaults to `default_ttl`; 0 never expires."""
        if not self.is_connected:
            return False

        try:
            serialized = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error("Redis value serialization failed", key=key, error=str(e))
            return False

        try:
            ttl = self.default_ttl if ttl is None else ttl
            await self._client.set(key, serialized, ex=ttl or None)
            return True
        except Exception as e:
            self._handle_failure("SET", e, key=key)
            return False

    async def delete(self, key: str) -> bool:
        if not self.is_connected:
            return False

        try:
            return await self._client.delete(key) > 0
        except Exception as e:
            self._handle_failure("DEL", e, key=key)
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching a Redis glob pattern. Returns the count deleted."""
        if not self.is_connected:
            return 0

        try:
            keys = [key async for key in self._client.scan_iter(match=pattern, count=500)]
            if not keys:
                return 0
            deleted = await self._client.delete(*keys)
            logger.info("Redis pattern delete", pattern=pattern, deleted_count=deleted)
            return deleted
        except Exception as e:
            self._handle_failure("DEL PATTERN", e, pattern=pattern)
            return 0

    async def flush_all(self) -> bool:
        if not self.is_connected:
            return False

        try:
            await self._client.flushdb()
            logger.info("Redis cache flushed")
            return True
        except Exception as e:
            self._handle_failure("FLUSH", e)
            return False

    async def ping(self) -> bool:
        if not self.is_connected:
            return False

        try:
            return bool(await self._client.ping())
        except Exception as e:
            self._handle_failure("PING", e)
            return False

    async def stats(self) -> Dict[str, Any]:
        if not self.is_connected:
            return {"connected": False}

        try:
            info = await self._client.info("memory")
            db_size = await self._client.dbsize()
        except Exception as e:
            self._handle_failure("STATS", e)
            return {"connected": False, "error": str(e)}

        return {
            "connected": True,
            "socket_path": self.socket_path,
            "db_size": db_size,
            "memory": {field: info.get(field) for field in _MEMORY_FIELDS if field in info},
        }

    async def close(self) -> None:
        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()
            try:
                await self._connect_task
            except asyncio.CancelledError:
                pass

        if self._client is not None and not self._external_client:
            try:
                await self._client.aclose()
            except Exception as e:
                logger.warning("Redis close failed", error=str(e))

        self.connected = False
        logger.info("Redis cache closed")
