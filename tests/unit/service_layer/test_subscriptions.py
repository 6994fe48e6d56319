"""
Unit Tests for the Standing Event Subscriptions

Tests the registered groups, their topic sets, and end-to-end invalidation.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from service_hub.core.config.constants import ConsumerState
from service_hub.events.handlers import AuditLogHandler, CacheInvalidationHandler, NotificationHandler
from service_hub.events.models import Event
from service_hub.events.subscriptions import setup_event_consumers, standing_subscriptions
from tests.test_fixtures import eventually


@pytest.mark.unit
class TestStandingSubscriptions:

    def test_groups_and_kinds(self):
        subs = {sub.group_id: sub for sub in standing_subscriptions(MagicMock())}

        assert len(subs["audit-logger"].event_kinds) == 6
        assert [k.value for k in subs["cache-invalidator"].event_kinds] == ["updated", "deleted"]
        assert [k.value for k in subs["notification-service"].event_kinds] == ["created", "updated"]

    def test_handler_types(self):
        subs = {sub.group_id: sub for sub in standing_subscriptions(MagicMock())}

        assert isinstance(subs["audit-logger"].handler, AuditLogHandler)
        assert isinstance(subs["cache-invalidator"].handler, CacheInvalidationHandler)
        assert isinstance(subs["notification-service"].handler, NotificationHandler)


@pytest.mark.unit
class TestSetupEventConsumers:

    @pytest.mark.asyncio
    async def test_registers_all_groups_with_broad_topics(self, kafka_client, cache_client):
        await setup_event_consumers(kafka_client, cache_client)

        groups = kafka_client.consumer_groups
        assert len(groups["audit-logger"].topics) == 30
        assert len(groups["cache-invalidator"].topics) == 10
        assert len(groups["notification-service"].topics) == 10
        assert "raally.audit.deleted" in groups["cache-invalidator"].topics

        await kafka_client.disconnect()

    @pytest.mark.asyncio
    async def test_failure_propagates(self, cache_client):
        broker = MagicMock()
        broker.subscribe_to_events = AsyncMock(side_effect=[MagicMock(), RuntimeError("join failed"), MagicMock()])

        with pytest.raises(RuntimeError):
            await setup_event_consumers(broker, cache_client)

    @pytest.mark.asyncio
    async def test_update_event_invalidates_cache(self, kafka_client, fake_kafka, cache_client, in_memory_redis):
        await cache_client.set("cache:project:42", "stale")
        await cache_client.set("cache:project:42:members", "stale")
        await setup_event_consumers(kafka_client, cache_client)
        group = kafka_client.consumer_groups["cache-invalidator"]
        await eventually(lambda: group.state is ConsumerState.RECEIVING)

        event = Event(event_type="updated", entity_type="project", entity_id="42", tenant_id="t-1")
        fake_kafka.consumers_for("cache-invalidator")[0].deliver(event.to_json())

        await eventually(lambda: "raally:cache:project:42" not in in_memory_redis.data)
        assert await cache_client.get("cache:project:42:members") is None

        await kafka_client.disconnect()
