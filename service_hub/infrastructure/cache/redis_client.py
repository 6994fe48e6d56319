"""
Redis Client with Connection Pooling

Architecture:
    RedisClient (Public API)
        ├── ConnectionManager (Connection lifecycle)
        └── OperationExecutor (Command execution, key prefixing, error mapping)

This layer raises CacheError subclasses on every transport failure. The
fail-soft behavior the rest of the application sees (miss instead of error,
False instead of exception) lives one layer up in CacheClient.

Author: Platform Team
Date: 2026-10-02
"""

from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from service_hub.core.config.constants import SCAN_BATCH_SIZE
from service_hub.core.config.settings import Settings, get_settings
from service_hub.core.exceptions import CacheConnectionError, CacheKeyError
from service_hub.core.logging.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# =============================================================================


class ConnectionManager:
    """
    Manages the Redis connection pool.

    Building the pool opens no sockets; connections are created on the first
    command. connect() is only an explicit reachability probe.
    """

    def __init__(self, settings: Settings, client: redis.Redis | None = None):
        """
        Initialize connection manager.

        Args:
            settings: Application settings
            client: Pre-built client (tests inject an in-memory stand-in)
        """
        self._settings = settings
        self._pool: ConnectionPool | None = None

        if client is None:
            redis_settings = settings.redis
            self._pool = ConnectionPool.from_url(
                redis_settings.REDIS_URL,
                password=redis_settings.REDIS_PASSWORD,
                max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
                socket_timeout=redis_settings.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=redis_settings.REDIS_SOCKET_CONNECT_TIMEOUT,
                health_check_interval=redis_settings.REDIS_HEALTH_CHECK_INTERVAL,
                retry_on_timeout=True,
                decode_responses=True,  # Return strings instead of bytes
            )
            client = redis.Redis(connection_pool=self._pool)

        self._client = client

    async def connect(self) -> redis.Redis:
        """
        Verify the server is reachable.

        STAGE-REDIS.2: Connection establishment

        Raises:
            CacheConnectionError: If the ping fails
        """
        try:
            await self._client.ping()
        except (ConnectionError, TimeoutError) as e:
            logger.error("Failed to connect to Redis", stage="REDIS.2", error=str(e))
            raise CacheConnectionError(
                message=f"Failed to connect to Redis: {e}",
                details={"url": self._settings.redis.REDIS_URL},
            )

        logger.info("Redis connected successfully", stage="REDIS.2", url=self._settings.redis.REDIS_URL)
        return self._client

    async def disconnect(self) -> None:
        """
        Close the client and its pool.

        STAGE-REDIS.3: Connection cleanup
        """
        await self._client.aclose()

        if self._pool:
            await self._pool.disconnect()

        logger.info("Redis disconnected", stage="REDIS.3")

    async def ping(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if healthy, False otherwise
        """
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    def get_client(self) -> redis.Redis:
        """Get the Redis client instance."""
        return self._client


# =============================================================================
# LAYER 2: OPERATION EXECUTOR
# =============================================================================


class OperationExecutor:
    """
    Executes Redis commands with consistent key prefixing and error handling.

    Error Handling Strategy:
    - Catch RedisError exceptions
    - Log error with context (stage, key)
    - Raise CacheKeyError with details

    Every logical key is stored as <prefix><key>. Pattern scans return raw
    (already prefixed) keys, which must be deleted with delete_raw().
    """

    def __init__(self, redis_client: redis.Redis, key_prefix: str = ""):
        self._redis = redis_client
        self._prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    # -------------------------------------------------------------------------
    # Basic Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """
        Get value from Redis.

        STAGE-REDIS.GET: Redis GET operation
        """
        try:
            return await self._redis.get(self._key(key))
        except RedisError as e:
            logger.error("Redis GET failed", stage="REDIS.GET", key=key, error=str(e))
            raise CacheKeyError(message=f"Redis GET failed: {e}", details={"key": key})

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """
        Set value in Redis.

        STAGE-REDIS.SET: Redis SET operation

        Args:
            key: Redis key
            value: Value to set
            ttl: Time-to-live in seconds (optional, no expiry when omitted)
        """
        try:
            result = await self._redis.set(self._key(key), value, ex=ttl)
            return bool(result)
        except RedisError as e:
            logger.error("Redis SET failed", stage="REDIS.SET", key=key, error=str(e))
            raise CacheKeyError(message=f"Redis SET failed: {e}", details={"key": key})

    async def delete(self, *keys: str) -> int:
        """
        Delete keys from Redis.

        Returns:
            Number of keys deleted
        """
        try:
            return await self._redis.delete(*(self._key(key) for key in keys))
        except RedisError as e:
            logger.error("Redis DELETE failed", stage="REDIS.DEL", keys=keys, error=str(e))
            raise CacheKeyError(message=f"Redis DELETE failed: {e}", details={"keys": keys})

    async def exists(self, *keys: str) -> int:
        """
        Check if keys exist in Redis.

        Returns:
            Number of keys that exist
        """
        try:
            return await self._redis.exists(*(self._key(key) for key in keys))
        except RedisError as e:
            logger.error("Redis EXISTS failed", stage="REDIS.EXISTS", keys=keys, error=str(e))
            raise CacheKeyError(message=f"Redis EXISTS failed: {e}", details={"keys": keys})

    async def expire(self, key: str, ttl: int) -> bool:
        """
        Set TTL on an existing key.

        Returns:
            True if TTL was set, False if the key does not exist
        """
        try:
            return bool(await self._redis.expire(self._key(key), ttl))
        except RedisError as e:
            logger.error("Redis EXPIRE failed", stage="REDIS.EXPIRE", key=key, error=str(e))
            raise CacheKeyError(message=f"Redis EXPIRE failed: {e}", details={"key": key})

    async def ttl(self, key: str) -> int:
        """
        Get TTL of a key.

        Returns:
            TTL in seconds, -1 if no TTL, -2 if key doesn't exist
        """
        try:
            return await self._redis.ttl(self._key(key))
        except RedisError as e:
            logger.error("Redis TTL failed", stage="REDIS.TTL", key=key, error=str(e))
            raise CacheKeyError(message=f"Redis TTL failed: {e}", details={"key": key})

    # -------------------------------------------------------------------------
    # Counter Operations (for rate limiting)
    # -------------------------------------------------------------------------

    async def incrby(self, key: str, amount: int = 1) -> int:
        """
        Atomically increment a counter on the server.

        Returns:
            New counter value
        """
        try:
            return await self._redis.incrby(self._key(key), amount)
        except RedisError as e:
            logger.error("Redis INCRBY failed", stage="REDIS.INCRBY", key=key, error=str(e))
            raise CacheKeyError(message=f"Redis INCRBY failed: {e}", details={"key": key})

    # -------------------------------------------------------------------------
    # Hash Operations (for structured per-entity data)
    # -------------------------------------------------------------------------

    async def hget(self, name: str, key: str) -> str | None:
        """Get a hash field value."""
        try:
            return await self._redis.hget(self._key(name), key)
        except RedisError as e:
            logger.error("Redis HGET failed", stage="REDIS.HGET", name=name, key=key, error=str(e))
            raise CacheKeyError(
                message=f"Redis HGET failed: {e}",
                details={"name": name, "key": key},
            )

    async def hset(self, name: str, key: str, value: str) -> int:
        """
        Set a hash field value.

        Returns:
            1 if new field, 0 if updated existing field
        """
        try:
            return await self._redis.hset(self._key(name), key, value)
        except RedisError as e:
            logger.error("Redis HSET failed", stage="REDIS.HSET", name=name, key=key, error=str(e))
            raise CacheKeyError(
                message=f"Redis HSET failed: {e}",
                details={"name": name, "key": key},
            )

    async def hgetall(self, name: str) -> dict[str, str]:
        """Get all hash fields."""
        try:
            return await self._redis.hgetall(self._key(name))
        except RedisError as e:
            logger.error("Redis HGETALL failed", stage="REDIS.HGETALL", name=name, error=str(e))
            raise CacheKeyError(
                message=f"Redis HGETALL failed: {e}",
                details={"name": name},
            )

    # -------------------------------------------------------------------------
    # Keyspace Operations (for pattern invalidation)
    # -------------------------------------------------------------------------

    async def scan_keys(self, pattern: str) -> list[str]:
        """
        Enumerate raw keys matching a glob pattern with SCAN.

        O(keyspace): use only for targeted invalidation.

        Returns:
            Matching keys, prefix included
        """
        try:
            return [
                key
                async for key in self._redis.scan_iter(match=self._key(pattern), count=SCAN_BATCH_SIZE)
            ]
        except RedisError as e:
            logger.error("Redis SCAN failed", stage="REDIS.SCAN", pattern=pattern, error=str(e))
            raise CacheKeyError(message=f"Redis SCAN failed: {e}", details={"pattern": pattern})

    async def delete_raw(self, *raw_keys: str) -> int:
        """Delete keys exactly as returned by scan_keys()."""
        if not raw_keys:
            return 0
        try:
            return await self._redis.delete(*raw_keys)
        except RedisError as e:
            logger.error("Redis DELETE failed", stage="REDIS.DEL", count=len(raw_keys), error=str(e))
            raise CacheKeyError(message=f"Redis DELETE failed: {e}", details={"count": len(raw_keys)})


# =============================================================================
# LAYER 3: PUBLIC API
# =============================================================================


class RedisClient:
    """
    Async Redis client with connection pooling.

    Usage:
        client = RedisClient()
        await client.set("key", "value", ttl=3600)
        value = await client.get("key")
        await client.disconnect()

    Architecture:
        RedisClient (this class)
            ├── ConnectionManager (connection lifecycle)
            └── OperationExecutor (command execution)
    """

    def __init__(self, settings: Settings | None = None, client: redis.Redis | None = None):
        """
        Initialize Redis client. No network I/O happens here.

        STAGE-REDIS.1: Client initialization

        Args:
            settings: Application settings (defaults to the global settings)
            client: Pre-built redis client (used by tests)
        """
        self._settings = settings or get_settings()
        self._conn_mgr = ConnectionManager(self._settings, client)
        self._executor = OperationExecutor(
            self._conn_mgr.get_client(), self._settings.redis.REDIS_KEY_PREFIX
        )

        logger.info(
            "Redis client initialized",
            stage="REDIS.1",
            url=self._settings.redis.REDIS_URL,
            key_prefix=self._settings.redis.REDIS_KEY_PREFIX,
        )

    async def connect(self) -> None:
        """Verify Redis is reachable (raises CacheConnectionError)."""
        await self._conn_mgr.connect()

    async def disconnect(self) -> None:
        """Close Redis connection and pool."""
        await self._conn_mgr.disconnect()

    async def ping(self) -> bool:
        """Check Redis connection health."""
        return await self._conn_mgr.ping()

    # -------------------------------------------------------------------------
    # Delegate to OperationExecutor
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Get value from Redis."""
        return await self._executor.get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Set value in Redis."""
        return await self._executor.set(key, value, ttl)

    async def delete(self, *keys: str) -> int:
        """Delete keys from Redis."""
        return await self._executor.delete(*keys)

    async def exists(self, *keys: str) -> int:
        """Check if keys exist in Redis."""
        return await self._executor.exists(*keys)

    async def expire(self, key: str, ttl: int) -> bool:
        """Set TTL on a key."""
        return await self._executor.expire(key, ttl)

    async def ttl(self, key: str) -> int:
        """Get TTL of a key."""
        return await self._executor.ttl(key)

    async def incrby(self, key: str, amount: int = 1) -> int:
        """Increment a counter by amount."""
        return await self._executor.incrby(key, amount)

    async def hget(self, name: str, key: str) -> str | None:
        """Get a hash field value."""
        return await self._executor.hget(name, key)

    async def hset(self, name: str, key: str, value: str) -> int:
        """Set a hash field value."""
        return await self._executor.hset(name, key, value)

    async def hgetall(self, name: str) -> dict[str, Any]:
        """Get all hash fields."""
        return await self._executor.hgetall(name)

    async def scan_keys(self, pattern: str) -> list[str]:
        """Enumerate raw keys matching a pattern."""
        return await self._executor.scan_keys(pattern)

    async def delete_raw(self, *raw_keys: str) -> int:
        """Delete raw (prefixed) keys."""
        return await self._executor.delete_raw(*raw_keys)
