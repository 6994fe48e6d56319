"""
Cache Client (fail-soft facade over RedisClient)

Every operation here converts store failures into a neutral result:
    - reads return None (or an empty mapping)
    - writes return False
    - the rate limiter fails open (never limits)
    - cache_or_compute computes directly

so a Redis outage degrades performance but never availability. Failures
are logged with the operation's stage and counted in Prometheus.

Key namespaces:
    session:<id>                    user sessions (JSON)
    rate_limit:<identifier>         fixed-window counters
    cache:<entityType>:<entityId>*  memoized entity data

Author: Platform Team
Date: 2026-10-02
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import orjson

from service_hub.core.config.constants import (
    CACHE_KEY_RATE_LIMIT,
    CACHE_KEY_SESSION,
)
from service_hub.core.config.settings import Settings, get_settings
from service_hub.core.exceptions import CacheError
from service_hub.core.logging.logger import get_logger
from service_hub.infrastructure.cache.redis_client import RedisClient
from service_hub.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

T = TypeVar("T")


class CacheClient:
    """
    Application-facing key/value cache.

    Usage:
        cache = CacheClient()
        user = await cache.cache_or_compute("cache:user:42", load_user, ttl=600)
        if await cache.is_rate_limited(client_ip, max_requests=100, window_seconds=60):
            ...
    """

    def __init__(self, settings: Settings | None = None, redis_client: RedisClient | None = None):
        """
        Initialize the cache client. No network I/O happens here.

        Args:
            settings: Application settings (defaults to the global settings)
            redis_client: Pre-built low-level client (used by tests)
        """
        self.settings = settings or get_settings()
        self._redis = redis_client or RedisClient(self.settings)
        self._metrics = get_metrics_collector()

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self) -> bool:
        """
        Probe the store once and log the outcome.

        Commands connect lazily, so calling this is optional.
        """
        try:
            await self._redis.connect()
            return True
        except CacheError as e:
            logger.warning("Cache not reachable at startup", stage="CACHE.CONNECT", error=str(e))
            return False

    async def disconnect(self) -> None:
        """Close the connection pool."""
        await self._redis.disconnect()
        logger.info("Cache client disconnected", stage="CACHE.DISCONNECT")

    async def ping(self) -> bool:
        """Check store reachability."""
        return await self._redis.ping()

    # =========================================================================
    # Basic Operations
    # =========================================================================

    async def get(self, key: str) -> str | None:
        """Get a value; None on miss or store failure."""
        try:
            value = await self._redis.get(key)
        except CacheError:
            self._metrics.record_cache_operation("get", "error")
            return None

        self._metrics.record_cache_operation("get", "hit" if value is not None else "miss")
        return value

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Set a value with an optional TTL in seconds."""
        try:
            return await self._redis.set(key, value, ttl)
        except CacheError:
            self._metrics.record_cache_operation("set", "error")
            return False

    async def delete(self, key: str) -> bool:
        """Delete a key; True only if it existed."""
        try:
            return await self._redis.delete(key) > 0
        except CacheError:
            self._metrics.record_cache_operation("delete", "error")
            return False

    async def exists(self, key: str) -> bool:
        try:
            return await self._redis.exists(key) > 0
        except CacheError:
            self._metrics.record_cache_operation("exists", "error")
            return False

    async def increment(self, key: str, by: int = 1) -> int | None:
        """Atomically increment a counter; None on store failure."""
        try:
            return await self._redis.incrby(key, by)
        except CacheError:
            self._metrics.record_cache_operation("increment", "error")
            return None

    async def expire(self, key: str, seconds: int) -> bool:
        try:
            return await self._redis.expire(key, seconds)
        except CacheError:
            self._metrics.record_cache_operation("expire", "error")
            return False

    # =========================================================================
    # Hash Operations
    # =========================================================================

    async def set_hash_field(self, key: str, field: str, value: str) -> bool:
        try:
            await self._redis.hset(key, field, value)
            return True
        except CacheError:
            self._metrics.record_cache_operation("hset", "error")
            return False

    async def get_hash_field(self, key: str, field: str) -> str | None:
        try:
            return await self._redis.hget(key, field)
        except CacheError:
            self._metrics.record_cache_operation("hget", "error")
            return None

    async def get_all_hash_fields(self, key: str) -> dict[str, str]:
        try:
            return await self._redis.hgetall(key)
        except CacheError:
            self._metrics.record_cache_operation("hgetall", "error")
            return {}

    # =========================================================================
    # Pattern Invalidation
    # =========================================================================

    async def flush_by_pattern(self, pattern: str) -> bool:
        """
        Delete every key matching a glob pattern.

        Keys are enumerated with SCAN (never KEYS) and removed in a single
        DEL. Returns True when the pass completed, including when nothing
        matched.
        """
        try:
            keys = await self._redis.scan_keys(pattern)
            deleted = await self._redis.delete_raw(*keys)
        except CacheError:
            self._metrics.record_cache_operation("flush", "error")
            return False

        logger.debug("Flushed cache keys", stage="CACHE.FLUSH", pattern=pattern, deleted=deleted)
        self._metrics.record_cache_operation("flush", "success")
        return True

    # =========================================================================
    # Memoized Compute
    # =========================================================================

    async def cache_or_compute(
        self,
        key: str,
        compute_fn: Callable[[], Awaitable[T]],
        ttl: int | None = None,
    ) -> T:
        """
        Return the cached value for key, computing and storing it on a miss.

        STAGE-CACHE.MEMO: Read-through cache

        Flow:
        1. GET key; a hit is decoded and returned
        2. On miss, await compute_fn() and store the JSON-encoded result
        3. If the store fails at any point the computed value is returned
           uncached

        A value that cannot be decoded is treated as a miss and overwritten.
        Exceptions raised by compute_fn propagate unchanged.

        Args:
            key: Logical cache key
            compute_fn: Zero-argument coroutine function producing the value
            ttl: Expiry in seconds (defaults to CACHE_DEFAULT_TTL)
        """
        ttl = ttl if ttl is not None else self.settings.cache.CACHE_DEFAULT_TTL

        try:
            cached = await self._redis.get(key)
        except CacheError as e:
            logger.warning("Cache read failed, computing directly", stage="CACHE.MEMO", key=key, error=str(e))
            self._metrics.record_cache_operation("cache_or_compute", "error")
            return await compute_fn()

        if cached is not None:
            try:
                value = orjson.loads(cached)
                self._metrics.record_cache_operation("cache_or_compute", "hit")
                return value
            except orjson.JSONDecodeError:
                logger.warning("Corrupt cached value treated as miss", stage="CACHE.MEMO", key=key)

        self._metrics.record_cache_operation("cache_or_compute", "miss")
        value = await compute_fn()

        try:
            await self._redis.set(key, orjson.dumps(value).decode(), ttl)
        except CacheError as e:
            logger.warning("Cache write failed, returning uncached", stage="CACHE.MEMO", key=key, error=str(e))
        except TypeError as e:
            # orjson refuses the value; the caller still gets it
            logger.warning("Computed value is not serializable", stage="CACHE.MEMO", key=key, error=str(e))

        return value

    # =========================================================================
    # Rate Limiting
    # =========================================================================

    async def is_rate_limited(self, identifier: str, max_requests: int, window_seconds: int) -> bool:
        """
        Fixed-window request counter.

        The first increment in a window sets the key's expiry to the window
        length. A counter found without an expiry (its first EXPIRE failed)
        gets the window applied on the next call. Fails open: a store
        failure never limits the caller.

        Returns:
            True once more than max_requests calls happened in the window
        """
        key = f"{CACHE_KEY_RATE_LIMIT}{identifier}"
        try:
            count = await self._redis.incrby(key, 1)
            if count == 1 or await self._redis.ttl(key) == -1:
                await self._redis.expire(key, window_seconds)
        except CacheError as e:
            logger.warning("Rate limiter unavailable, allowing request", stage="CACHE.RATE", identifier=identifier, error=str(e))
            self._metrics.record_cache_operation("rate_limit", "error")
            return False

        if count > max_requests:
            self._metrics.record_rate_limit_exceeded()
            return True
        return False

    # =========================================================================
    # Sessions
    # =========================================================================

    async def set_session(self, session_id: str, data: Any, ttl: int | None = None) -> bool:
        """Store session data as JSON (defaults to CACHE_SESSION_TTL)."""
        ttl = ttl if ttl is not None else self.settings.cache.CACHE_SESSION_TTL
        return await self.set(f"{CACHE_KEY_SESSION}{session_id}", orjson.dumps(data).decode(), ttl)

    async def get_session(self, session_id: str) -> Any | None:
        raw = await self.get(f"{CACHE_KEY_SESSION}{session_id}")
        if raw is None:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("Corrupt session payload", stage="CACHE.SESSION", session_id=session_id)
            return None

    async def delete_session(self, session_id: str) -> bool:
        return await self.delete(f"{CACHE_KEY_SESSION}{session_id}")
