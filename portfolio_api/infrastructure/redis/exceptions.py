"""
Redis Infrastructure Exceptions

Exceptions raised inside the Redis cache client while connecting.
They never leave the client: every public operation absorbs them and
degrades to a cache miss.
"""

from typing import Optional, Any, Dict


class RedisCacheException(Exception):
    """Base exception for Redis cache errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class RedisConnectionException(RedisCacheException):
    """Raised when a connection attempt to the Redis socket fails."""

    def __init__(
        self,
        message: str = "Redis connection failed",
        socket_path: Optional[str] = None,
        original_error: Optional[Exception] = None,
        retryable: bool = True,
    ):
        details: Dict[str, Any] = {}
        if socket_path:
            details["socket_path"] = socket_path
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=message, error_code="REDIS_CONNECTION_ERROR", details=details
        )
        self.retryable = retryable
        if original_error:
            self.__cause__ = original_error


class RedisSocketUnavailableException(RedisConnectionException):
    """Raised when the socket is missing or refuses connections; not retried."""

    def __init__(self, socket_path: str, original_error: Optional[Exception] = None):
        super().__init__(
            message=f"Redis socket unavailable: {socket_path}",
            socket_path=socket_path,
            original_error=original_error,
            retryable=False,
        )
        self.error_code = "REDIS_SOCKET_UNAVAILABLE"
