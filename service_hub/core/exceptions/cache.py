"""
Cache-Related Exceptions

Raised by the low-level Redis client. The public cache client converts them
into miss/False results, so they rarely escape the cache package.
"""

from service_hub.core.exceptions.base import ServiceHubError


class CacheError(ServiceHubError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when unable to reach Redis.

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Authentication failure
    """
    pass


class CacheKeyError(CacheError):
    """Raised when a single cache command fails."""
    pass
