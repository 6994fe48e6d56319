"""
Service Lifecycle Manager

Owns the process's single CacheClient and KafkaClient:

    initialize()  cache client (lazy) -> producer start -> standing consumers
    shutdown()    broker (consumers, then producer) -> cache
    health_check  independent cache and broker probes

Application code reaches the clients through get_cache_client() and
get_broker_client(); neither may be used before initialize() completes.

Author: Platform Team
Date: 2026-10-02
"""

import asyncio

from service_hub.core.config.constants import CACHE_KEY_HEALTH
from service_hub.core.config.settings import Settings, get_settings
from service_hub.core.exceptions import ServiceNotInitializedError
from service_hub.core.logging.logger import get_logger
from service_hub.events.subscriptions import setup_event_consumers
from service_hub.infrastructure.cache.cache_client import CacheClient
from service_hub.infrastructure.message_queue.kafka_client import KafkaClient

logger = get_logger(__name__)


class ServiceManager:
    """
    Creates, connects and tears down the shared clients.

    Usage:
        manager = ServiceManager()
        await manager.initialize()
        broker = manager.get_broker_client()
        ...
        await manager.shutdown()

    Tests inject factories to run against in-memory fakes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cache_factory=CacheClient,
        broker_factory=KafkaClient,
        consumers_setup=setup_event_consumers,
    ):
        self.settings = settings
        self._cache_factory = cache_factory
        self._broker_factory = broker_factory
        self._consumers_setup = consumers_setup

        self._cache: CacheClient | None = None
        self._broker: KafkaClient | None = None
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self, settings: Settings | None = None) -> None:
        """
        Bring up the cache client, the producer and the standing consumers.

        STAGE-LIFECYCLE.INIT

        Idempotent: concurrent or repeated calls construct each client once.
        Any failure propagates; clients already created are kept so a retry
        only redoes the failed step.

        Raises:
            BrokerConnectionError: If the producer cannot connect
            ConsumerError: If a standing consumer cannot subscribe
        """
        async with self._lock:
            if self._initialized:
                return

            if settings is not None:
                self.settings = settings
            if self.settings is None:
                self.settings = get_settings()

            if self._cache is None:
                self._cache = self._cache_factory(self.settings)
                await self._cache.connect()
                logger.info("Cache client initialized", stage="LIFECYCLE.INIT")

            if self._broker is None:
                broker = self._broker_factory(self.settings)
                await broker.initialize()
                self._broker = broker
                logger.info("Broker client initialized", stage="LIFECYCLE.INIT")

            await self._consumers_setup(self._broker, self._cache)

            self._initialized = True
            logger.info("All services initialized", stage="LIFECYCLE.INIT")

    async def shutdown(self) -> None:
        """
        Close the broker, then the cache, and clear both handles.

        STAGE-LIFECYCLE.SHUTDOWN

        A failure in one step is logged and does not stop the next. Waits
        for an initialize() in progress so a client it is still starting
        is closed too.
        """
        async with self._lock:
            broker, self._broker = self._broker, None
            cache, self._cache = self._cache, None
            self._initialized = False

            if broker is not None:
                try:
                    await broker.disconnect()
                except Exception as e:
                    logger.error("Error shutting down broker client", stage="LIFECYCLE.SHUTDOWN", error=str(e))

            if cache is not None:
                try:
                    await cache.disconnect()
                except Exception as e:
                    logger.error("Error shutting down cache client", stage="LIFECYCLE.SHUTDOWN", error=str(e))

        logger.info("All services shut down", stage="LIFECYCLE.SHUTDOWN")

    def get_broker_client(self) -> KafkaClient:
        if self._broker is None:
            raise ServiceNotInitializedError(
                "Broker client not initialized. Call initialize_services first.",
                details={"service": "broker"},
            )
        return self._broker

    def get_cache_client(self) -> CacheClient:
        if self._cache is None:
            raise ServiceNotInitializedError(
                "Cache client not initialized. Call initialize_services first.",
                details={"service": "cache"},
            )
        return self._cache

    async def health_check(self) -> dict[str, bool]:
        """
        Probe cache and broker independently.

        The cache probe reads the health key and writes it (short TTL) when
        absent; the broker probe publishes to the health topic. An error in
        one probe only marks that dependency unhealthy.
        """
        cache_ok, broker_ok = await asyncio.gather(self._probe_cache(), self._probe_broker())
        return {"broker": broker_ok, "cache": cache_ok}

    async def _probe_cache(self) -> bool:
        if self._cache is None:
            return False
        try:
            if await self._cache.exists(CACHE_KEY_HEALTH):
                return True
            return await self._cache.set(
                CACHE_KEY_HEALTH, "ok", self._cache.settings.cache.CACHE_HEALTH_KEY_TTL
            )
        except Exception as e:
            logger.warning("Cache health probe failed", stage="LIFECYCLE.HEALTH", error=str(e))
            return False

    async def _probe_broker(self) -> bool:
        if self._broker is None:
            return False
        try:
            return await self._broker.health_check()
        except Exception as e:
            logger.warning("Broker health probe failed", stage="LIFECYCLE.HEALTH", error=str(e))
            return False


# =============================================================================
# Process-default manager
# =============================================================================

_manager: ServiceManager | None = None


def get_service_manager() -> ServiceManager:
    """Get the process-default service manager."""
    global _manager
    if _manager is None:
        _manager = ServiceManager()
    return _manager


async def initialize_services(settings: Settings | None = None) -> None:
    """Initialize the process-default clients."""
    await get_service_manager().initialize(settings)


async def shutdown_services() -> None:
    """Shut down the process-default clients."""
    await get_service_manager().shutdown()


async def health_check() -> dict[str, bool]:
    """Health of the process-default clients."""
    return await get_service_manager().health_check()


def get_broker_client() -> KafkaClient:
    return get_service_manager().get_broker_client()


def get_cache_client() -> CacheClient:
    return get_service_manager().get_cache_client()
