"""
System Constants and Enumerations

Fixed vocabulary shared by the broker client, the cache client and the
standing event consumers: event and entity types, cache key namespaces,
consumer group identifiers and default TTLs.

Author: Platform Team
Date: 2026-10-02
"""

from enum import Enum

# ============================================================================
# Event Vocabulary
# ============================================================================


class EventType(str, Enum):
    """
    State changes an event can describe.

    The value is the wire name and the last segment of the topic name.
    """

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    LOGIN = "login"
    LOGOUT = "logout"
    ACTION_PERFORMED = "action_performed"


class EntityType(str, Enum):
    """Entities whose changes are published on the bus."""

    USER = "user"
    TENANT = "tenant"
    PROJECT = "project"
    ASSIGNMENT = "assignment"
    AUDIT = "audit"


# Order matters: it is the order topics are generated in for a subscription.
ALL_EVENT_TYPES: tuple[EventType, ...] = tuple(EventType)
ALL_ENTITY_TYPES: tuple[EntityType, ...] = tuple(EntityType)

# Event types accepted by each typed publisher
USER_EVENT_TYPES = frozenset(
    {EventType.CREATED, EventType.UPDATED, EventType.DELETED, EventType.LOGIN, EventType.LOGOUT}
)
CRUD_EVENT_TYPES = frozenset({EventType.CREATED, EventType.UPDATED, EventType.DELETED})
AUDIT_EVENT_TYPES = frozenset({EventType.ACTION_PERFORMED})


# ============================================================================
# Broker Wire Format
# ============================================================================

DEFAULT_TOPIC_NAMESPACE = "raally"
DEFAULT_TENANT_ID = "default"

HEALTH_TOPIC_SUFFIX = "health.check"
HEALTH_MESSAGE_KEY = "health"

HEADER_EVENT_TYPE = "eventType"
HEADER_ENTITY_TYPE = "entityType"
HEADER_TENANT_ID = "tenantId"


# ============================================================================
# Consumer Groups
# ============================================================================

GROUP_AUDIT_LOGGER = "audit-logger"
GROUP_CACHE_INVALIDATOR = "cache-invalidator"
GROUP_NOTIFICATION_SERVICE = "notification-service"


class ConsumerState(str, Enum):
    """
    Lifecycle of one consumer group.

    UNREGISTERED -> CONNECTING -> SUBSCRIBED -> RECEIVING -> DISCONNECTED
    FAILED is terminal and only reached when supervised restarts run out.
    """

    UNREGISTERED = "unregistered"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    RECEIVING = "receiving"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


# ============================================================================
# Cache Key Namespaces
# ============================================================================

CACHE_KEY_SESSION = "session:"
CACHE_KEY_RATE_LIMIT = "rate_limit:"
CACHE_KEY_ENTITY = "cache:"
CACHE_KEY_HEALTH = "health:check"

# SCAN page size used by pattern invalidation
SCAN_BATCH_SIZE = 500
