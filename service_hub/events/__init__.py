"""
Events Package

- **models.py**: The Event record and its wire format
- **topics.py**: Topic name derivation
- **handlers.py**: Handler interface and the standing handlers
- **subscriptions.py**: Standing consumer group registration
"""

from .handlers import (
    AuditLogHandler,
    CacheInvalidationHandler,
    EventHandler,
    HandlerOutcome,
    NotificationHandler,
)
from .models import Event
from .subscriptions import setup_event_consumers
from .topics import derive_topic, health_topic, topics_for_event_kinds

__all__ = [
    "Event",
    "derive_topic",
    "health_topic",
    "topics_for_event_kinds",
    "EventHandler",
    "HandlerOutcome",
    "AuditLogHandler",
    "CacheInvalidationHandler",
    "NotificationHandler",
    "setup_event_consumers",
]
