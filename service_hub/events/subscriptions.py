"""
Standing Event Subscriptions

The consumer groups every instance of the service runs:

    group                  event kinds                       handler
    audit-logger           all six                           AuditLogHandler
    cache-invalidator      updated, deleted                  CacheInvalidationHandler
    notification-service   created, updated                  NotificationHandler

Each group subscribes to its event kinds across every entity type.
"""

import asyncio
from dataclasses import dataclass

from service_hub.core.config.constants import (
    ALL_EVENT_TYPES,
    GROUP_AUDIT_LOGGER,
    GROUP_CACHE_INVALIDATOR,
    GROUP_NOTIFICATION_SERVICE,
    EventType,
)
from service_hub.core.logging.logger import get_logger
from service_hub.events.handlers import (
    AuditLogHandler,
    CacheInvalidationHandler,
    EventHandler,
    NotificationHandler,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class StandingSubscription:
    group_id: str
    event_kinds: tuple[EventType, ...]
    handler: EventHandler


def standing_subscriptions(cache_client) -> list[StandingSubscription]:
    """Build the standing subscriptions, wiring the cache into the invalidator."""
    return [
        StandingSubscription(GROUP_AUDIT_LOGGER, ALL_EVENT_TYPES, AuditLogHandler()),
        StandingSubscription(
            GROUP_CACHE_INVALIDATOR,
            (EventType.UPDATED, EventType.DELETED),
            CacheInvalidationHandler(cache_client),
        ),
        StandingSubscription(
            GROUP_NOTIFICATION_SERVICE,
            (EventType.CREATED, EventType.UPDATED),
            NotificationHandler(),
        ),
    ]


async def setup_event_consumers(broker_client, cache_client) -> None:
    """
    Register every standing consumer group concurrently.

    Returns only once all groups are subscribed. The first failure
    propagates to the caller.
    """
    subscriptions = standing_subscriptions(cache_client)

    await asyncio.gather(
        *(
            broker_client.subscribe_to_events(sub.group_id, sub.event_kinds, sub.handler)
            for sub in subscriptions
        )
    )

    logger.info(
        "Event consumers set up",
        stage="EVENTS.SETUP",
        groups=[sub.group_id for sub in subscriptions],
    )
