"""
Cache Module

Fail-soft cache client over a pooled, key-prefixed Redis client.
"""

from .cache_client import CacheClient
from .redis_client import RedisClient

__all__ = [
    "CacheClient",
    "RedisClient",
]
