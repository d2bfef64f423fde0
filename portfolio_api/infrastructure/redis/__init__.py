"""Redis infrastructure: the optional distributed cache tier."""

from .exceptions import (
    RedisCacheException,
    RedisConnectionException,
    RedisSocketUnavailableException,
)
from .redis_cache import RedisCache

__all__ = [
    "RedisCache",
    "RedisCacheException",
    "RedisConnectionException",
    "RedisSocketUnavailableException",
]
