"""
Topic Derivation

Topic names are a pure function of (entity type, event type):

    <namespace>.<entityType>.<eventType>      e.g. raally.project.updated

Subscriptions ask for event kinds, not topics. The topic set for a
subscription is every requested event kind crossed with every entity type
(or with an explicit entity filter). Topics nobody produces to simply stay
empty.
"""

from collections.abc import Iterable

from service_hub.core.config.constants import (
    ALL_ENTITY_TYPES,
    DEFAULT_TOPIC_NAMESPACE,
    HEALTH_TOPIC_SUFFIX,
    EntityType,
    EventType,
)


def derive_topic(
    entity_type: EntityType | str,
    event_type: EventType | str,
    namespace: str = DEFAULT_TOPIC_NAMESPACE,
) -> str:
    """
    Build the topic name for an (entity type, event type) pair.

    Raises:
        ValueError: If either value is outside the known vocabulary
    """
    entity = EntityType(entity_type).value
    event = EventType(event_type).value
    return f"{namespace}.{entity}.{event}"


def topics_for_event_kinds(
    event_kinds: Iterable[EventType | str],
    entity_types: Iterable[EntityType | str] | None = None,
    namespace: str = DEFAULT_TOPIC_NAMESPACE,
) -> list[str]:
    """
    Expand event kinds into the concrete topic list, event kind major.

    Duplicates in either input are dropped while keeping first-seen order.

    Args:
        event_kinds: Event types to receive
        entity_types: Restrict to these entities (default: all known)
        namespace: Topic namespace

    Returns:
        Ordered, de-duplicated list of topic names
    """
    entities = ALL_ENTITY_TYPES if entity_types is None else tuple(entity_types)

    topics: list[str] = []
    for event_kind in event_kinds:
        for entity in entities:
            topic = derive_topic(entity, event_kind, namespace)
            if topic not in topics:
                topics.append(topic)
    return topics


def health_topic(namespace: str = DEFAULT_TOPIC_NAMESPACE) -> str:
    """Topic the broker health probe publishes to."""
    return f"{namespace}.{HEALTH_TOPIC_SUFFIX}"
