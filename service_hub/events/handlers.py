"""
Event Handlers

A handler receives one decoded Event and reports what it did with it. The
broker client treats any exception escaping handle() as a per-message
failure: it is logged and counted, and the receive loop moves on to the
next message.

Standing handlers:
    AuditLogHandler           every event kind, structured audit log line
    CacheInvalidationHandler  updated/deleted, drops cache:<entity>:<id>*
    NotificationHandler       created/updated, notification hook
"""

from abc import ABC, abstractmethod
from enum import Enum

from service_hub.core.config.constants import CACHE_KEY_ENTITY, EventType
from service_hub.core.logging.logger import get_logger
from service_hub.events.models import Event

logger = get_logger(__name__)


class HandlerOutcome(str, Enum):
    """Result of handling one event (also the consumed-events metric label)."""

    HANDLED = "handled"
    SKIPPED = "skipped"


class EventHandler(ABC):
    """
    Base class for consumer group handlers.

    Subclasses implement handle(); instances are passed directly to
    KafkaClient.subscribe_to_events, which calls them like coroutines.
    """

    @abstractmethod
    async def handle(self, event: Event) -> HandlerOutcome:
        ...

    async def __call__(self, event: Event) -> HandlerOutcome:
        return await self.handle(event)


class AuditLogHandler(EventHandler):
    """Writes one structured audit record per event."""

    async def handle(self, event: Event) -> HandlerOutcome:
        logger.info(
            "Audit event",
            stage="EVENTS.AUDIT",
            event_type=event.event_type.value,
            entity_type=event.entity_type.value,
            entity_id=event.entity_id,
            user_id=event.user_id,
            tenant_id=event.tenant_id,
            timestamp=event.timestamp,
        )
        return HandlerOutcome.HANDLED


class CacheInvalidationHandler(EventHandler):
    """
    Drops cached data for the entity an event refers to.

    Every key under cache:<entityType>:<entityId> is removed, so derived keys
    (cache:project:42:members, ...) go with the base key. A failed flush is
    logged by the cache client; it is not retried here.
    """

    def __init__(self, cache_client):
        self._cache = cache_client

    @staticmethod
    def pattern_for(event: Event) -> str:
        return f"{CACHE_KEY_ENTITY}{event.entity_type.value}:{event.entity_id}*"

    async def handle(self, event: Event) -> HandlerOutcome:
        if event.event_type not in (EventType.UPDATED, EventType.DELETED):
            return HandlerOutcome.SKIPPED

        pattern = self.pattern_for(event)
        flushed = await self._cache.flush_by_pattern(pattern)

        logger.info(
            "Cache invalidated",
            stage="EVENTS.INVALIDATE",
            pattern=pattern,
            flushed=flushed,
        )
        return HandlerOutcome.HANDLED


class NotificationHandler(EventHandler):
    """
    Notification hook for newly created or updated entities.

    Delivery channels (email, push) are outside this service; the handler
    records the notification intent.
    """

    async def handle(self, event: Event) -> HandlerOutcome:
        if event.event_type not in (EventType.CREATED, EventType.UPDATED):
            return HandlerOutcome.SKIPPED

        logger.info(
            "Notification queued",
            stage="EVENTS.NOTIFY",
            event_type=event.event_type.value,
            entity_type=event.entity_type.value,
            entity_id=event.entity_id,
            tenant_id=event.tenant_id,
        )
        return HandlerOutcome.HANDLED
