"""
Unit Tests for the Kafka Broker Client

Tests producer lifecycle, event publishing, consumer group registration,
the supervised receive loop and shutdown.
"""

import asyncio

import orjson
import pytest
from aiokafka.errors import KafkaConnectionError

from service_hub.core.config.constants import ConsumerState
from service_hub.core.exceptions import BrokerConnectionError, BrokerSendError, ConsumerError
from service_hub.events.handlers import HandlerOutcome
from service_hub.events.models import Event
from tests.test_fixtures import eventually


def wire(event_type="updated", entity_type="project", entity_id="42", **extra):
    return Event(event_type=event_type, entity_type=entity_type, entity_id=entity_id, **extra).to_json()


class RecordingHandler:
    def __init__(self, fail_on=()):
        self.events = []
        self.fail_on = set(fail_on)

    async def __call__(self, event):
        if event.entity_id in self.fail_on:
            raise RuntimeError(f"cannot handle {event.entity_id}")
        self.events.append(event)
        return HandlerOutcome.HANDLED


# ============================================================================
# Producer
# ============================================================================


@pytest.mark.unit
class TestProducerLifecycle:

    @pytest.mark.asyncio
    async def test_initialize_starts_producer(self, kafka_client, fake_kafka):
        await kafka_client.initialize()

        producer = fake_kafka.producers[0]
        assert producer.started is True
        assert producer.config["bootstrap_servers"] == ["localhost:9092"]
        assert producer.config["client_id"] == "raally-app"

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, kafka_client, fake_kafka):
        await kafka_client.initialize()
        await kafka_client.initialize()

        assert len(fake_kafka.producers) == 1

    @pytest.mark.asyncio
    async def test_unreachable_broker_raises(self, kafka_client, fake_kafka):
        fake_kafka.fail_producer_start = True

        with pytest.raises(BrokerConnectionError) as exc_info:
            await kafka_client.initialize()

        assert exc_info.value.details["brokers"] == ["localhost:9092"]


# ============================================================================
# Publishing
# ============================================================================


@pytest.mark.unit
class TestPublishEvent:

    @pytest.mark.asyncio
    async def test_record_layout(self, kafka_client, fake_kafka, sample_event):
        await kafka_client.initialize()

        assert await kafka_client.publish_event(sample_event) is True

        record = fake_kafka.sent[0]
        assert record.topic == "raally.project.updated"
        assert record.key == b"42"
        assert record.headers == [
            ("eventType", b"updated"),
            ("entityType", b"project"),
            ("tenantId", b"t-1"),
        ]
        assert orjson.loads(record.value) == sample_event.to_wire()
        assert record.timestamp_ms == sample_event.timestamp_ms()

    @pytest.mark.asyncio
    async def test_default_tenant_header(self, kafka_client, fake_kafka):
        await kafka_client.initialize()

        await kafka_client.publish_event(Event(event_type="login", entity_type="user", entity_id="u1"))

        assert ("tenantId", b"default") in fake_kafka.sent[0].headers

    @pytest.mark.asyncio
    async def test_send_failure_returns_false(self, kafka_client, fake_kafka, sample_event):
        await kafka_client.initialize()
        fake_kafka.fail_send = True

        assert await kafka_client.publish_event(sample_event) is False

    @pytest.mark.asyncio
    async def test_publish_before_initialize_returns_false(self, kafka_client, sample_event):
        assert await kafka_client.publish_event(sample_event) is False

    @pytest.mark.asyncio
    async def test_unserializable_metadata_returns_false(self, kafka_client, fake_kafka):
        await kafka_client.initialize()
        event = Event(event_type="updated", entity_type="project", entity_id="42", metadata={"blob": object()})

        assert await kafka_client.publish_event(event) is False
        assert fake_kafka.sent == []

    @pytest.mark.asyncio
    async def test_typed_publisher_with_unserializable_metadata(self, kafka_client, fake_kafka):
        await kafka_client.initialize()

        published = await kafka_client.publish_user_event("updated", "u-1", metadata={"at": object()})

        assert published is False
        assert fake_kafka.sent == []

    @pytest.mark.asyncio
    async def test_raw_send_raises(self, kafka_client, fake_kafka):
        await kafka_client.initialize()
        fake_kafka.fail_send = True

        with pytest.raises(BrokerSendError):
            await kafka_client.send("raally.user.created", {"a": 1})


@pytest.mark.unit
class TestTypedPublishers:

    @pytest.mark.asyncio
    async def test_user_event(self, kafka_client, fake_kafka):
        await kafka_client.initialize()

        assert await kafka_client.publish_user_event("login", "u1", tenant_id="t-1") is True

        record = fake_kafka.sent[0]
        payload = orjson.loads(record.value)
        assert record.topic == "raally.user.login"
        assert payload["entityId"] == payload["userId"] == "u1"

    @pytest.mark.asyncio
    async def test_tenant_event_keys_by_tenant(self, kafka_client, fake_kafka):
        await kafka_client.initialize()

        await kafka_client.publish_tenant_event("created", "t-9", user_id="u1")

        record = fake_kafka.sent[0]
        assert record.topic == "raally.tenant.created"
        assert record.key == b"t-9"
        assert ("tenantId", b"t-9") in record.headers

    @pytest.mark.asyncio
    async def test_project_and_assignment_events(self, kafka_client, fake_kafka):
        await kafka_client.initialize()

        await kafka_client.publish_project_event("deleted", "p1", "t-1")
        await kafka_client.publish_assignment_event("updated", "a1", "t-1", user_id="u1")

        assert [r.topic for r in fake_kafka.sent] == ["raally.project.deleted", "raally.assignment.updated"]

    @pytest.mark.asyncio
    async def test_audit_event(self, kafka_client, fake_kafka):
        await kafka_client.initialize()

        await kafka_client.publish_audit_event("action_performed", "audit-1", "t-1", "u1", metadata={"action": "export"})

        payload = orjson.loads(fake_kafka.sent[0].value)
        assert fake_kafka.sent[0].topic == "raally.audit.action_performed"
        assert payload["metadata"] == {"action": "export"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "publisher,args",
        [
            ("publish_project_event", ("login", "p1", "t-1")),
            ("publish_tenant_event", ("action_performed", "t-1")),
            ("publish_audit_event", ("created", "a1", "t-1", "u1")),
            ("publish_user_event", ("archived", "u1")),
        ],
    )
    async def test_out_of_vocabulary_event_raises(self, kafka_client, fake_kafka, publisher, args):
        await kafka_client.initialize()

        with pytest.raises(ValueError):
            await getattr(kafka_client, publisher)(*args)

        assert fake_kafka.sent == []


# ============================================================================
# Consumer groups
# ============================================================================


@pytest.mark.unit
class TestConsumerRegistry:

    @pytest.mark.asyncio
    async def test_concurrent_create_returns_one_group(self, kafka_client, fake_kafka):
        groups = await asyncio.gather(*(kafka_client.create_consumer("audit-logger") for _ in range(5)))

        assert all(group is groups[0] for group in groups)
        assert len(fake_kafka.consumers_for("audit-logger")) == 1

    @pytest.mark.asyncio
    async def test_consumer_configuration(self, kafka_client, fake_kafka):
        await kafka_client.create_consumer("cache-invalidator")

        config = fake_kafka.consumers[0].config
        assert config["group_id"] == "cache-invalidator"
        assert config["session_timeout_ms"] == 30000
        assert config["heartbeat_interval_ms"] == 3000

    @pytest.mark.asyncio
    async def test_new_group_is_unregistered_until_subscribed(self, kafka_client):
        group = await kafka_client.create_consumer("g")

        assert group.state is ConsumerState.UNREGISTERED
        assert "g" in kafka_client.consumer_groups


@pytest.mark.unit
class TestSubscribeToEvents:

    @pytest.mark.asyncio
    async def test_broad_subscribe(self, kafka_client, fake_kafka):
        group = await kafka_client.subscribe_to_events("cache-invalidator", ["updated", "deleted"], RecordingHandler())

        assert len(group.topics) == 10
        assert fake_kafka.consumers[0].subscription == group.topics
        await eventually(lambda: group.state is ConsumerState.RECEIVING)

        await kafka_client.disconnect()

    @pytest.mark.asyncio
    async def test_entity_filter(self, kafka_client):
        group = await kafka_client.subscribe_to_events(
            "projects-only", ["created"], RecordingHandler(), entity_types=["project"]
        )

        assert group.topics == ["raally.project.created"]

        await kafka_client.disconnect()

    @pytest.mark.asyncio
    async def test_second_subscribe_is_ignored(self, kafka_client, fake_kafka):
        first = await kafka_client.subscribe_to_events("g", ["created"], RecordingHandler())
        second = await kafka_client.subscribe_to_events("g", ["deleted"], RecordingHandler())

        assert first is second
        assert fake_kafka.consumers[0].start_calls == 1
        assert all(topic.endswith(".created") for topic in first.topics)

        await kafka_client.disconnect()

    @pytest.mark.asyncio
    async def test_no_event_kinds_raises(self, kafka_client):
        with pytest.raises(ConsumerError):
            await kafka_client.subscribe_to_events("g", [], RecordingHandler())

    @pytest.mark.asyncio
    async def test_unknown_event_kind_raises(self, kafka_client):
        with pytest.raises(ValueError):
            await kafka_client.subscribe_to_events("g", ["archived"], RecordingHandler())

    @pytest.mark.asyncio
    async def test_join_failure_raises(self, kafka_client, fake_kafka):
        fake_kafka.fail_consumer_start = True

        with pytest.raises(ConsumerError):
            await kafka_client.subscribe_to_events("g", ["created"], RecordingHandler())

        assert kafka_client.consumer_groups["g"].state is ConsumerState.FAILED


@pytest.mark.unit
class TestReceiveLoop:

    @pytest.mark.asyncio
    async def test_delivers_in_order(self, kafka_client, fake_kafka):
        handler = RecordingHandler()
        await kafka_client.subscribe_to_events("g", ["updated"], handler)
        consumer = fake_kafka.consumers[0]

        for entity_id in ("1", "2", "3"):
            consumer.deliver(wire(entity_id=entity_id))

        await eventually(lambda: len(handler.events) == 3)
        assert [e.entity_id for e in handler.events] == ["1", "2", "3"]

        await kafka_client.disconnect()

    @pytest.mark.asyncio
    async def test_handler_failure_does_not_stop_loop(self, kafka_client, fake_kafka):
        handler = RecordingHandler(fail_on={"bad"})
        group = await kafka_client.subscribe_to_events("g", ["updated"], handler)
        consumer = fake_kafka.consumers[0]

        consumer.deliver(wire(entity_id="bad"))
        consumer.deliver(wire(entity_id="good"))

        await eventually(lambda: len(handler.events) == 1)
        assert handler.events[0].entity_id == "good"
        assert group.state is ConsumerState.RECEIVING

        await kafka_client.disconnect()

    @pytest.mark.asyncio
    async def test_undecodable_payload_skipped(self, kafka_client, fake_kafka):
        handler = RecordingHandler()
        await kafka_client.subscribe_to_events("g", ["updated"], handler)
        consumer = fake_kafka.consumers[0]

        consumer.deliver(b"not json")
        consumer.deliver(orjson.dumps({"eventType": "updated"}))
        consumer.deliver(wire(entity_id="ok"))

        await eventually(lambda: len(handler.events) == 1)
        assert handler.events[0].entity_id == "ok"

        await kafka_client.disconnect()

    @pytest.mark.asyncio
    async def test_plain_coroutine_handlers_supported(self, kafka_client, fake_kafka):
        seen = []

        async def handler(event):
            seen.append(event.entity_id)

        await kafka_client.subscribe_to_events("g", ["updated"], handler)
        fake_kafka.consumers[0].deliver(wire(entity_id="7"))

        await eventually(lambda: seen == ["7"])

        await kafka_client.disconnect()


@pytest.mark.unit
class TestSupervisedRestart:

    @pytest.mark.asyncio
    async def test_broker_error_restarts_consumer(self, kafka_client, fake_kafka):
        handler = RecordingHandler()
        group = await kafka_client.subscribe_to_events("g", ["updated"], handler)
        first = fake_kafka.consumers[0]

        first.fail(KafkaConnectionError("connection lost"))

        await eventually(lambda: len(fake_kafka.consumers_for("g")) == 2)
        await eventually(lambda: group.state is ConsumerState.RECEIVING)
        second = fake_kafka.consumers_for("g")[1]

        assert first.stopped is True
        assert second.subscription == group.topics
        assert group.restarts == 1

        second.deliver(wire(entity_id="after-restart"))
        await eventually(lambda: len(handler.events) == 1)

        await kafka_client.disconnect()

    @pytest.mark.asyncio
    async def test_group_fails_after_max_restarts(self, kafka_client, fake_kafka):
        group = await kafka_client.subscribe_to_events("g", ["updated"], RecordingHandler())
        fake_kafka.fail_consumer_start = True

        fake_kafka.consumers[0].fail(KafkaConnectionError("connection lost"))

        await eventually(lambda: group.state is ConsumerState.FAILED)
        await eventually(lambda: group.task.done())
        # CONSUMER_MAX_RESTARTS is 2 in the test settings
        assert group.restarts == 2

        await kafka_client.disconnect()

        assert group.state is ConsumerState.FAILED

    @pytest.mark.asyncio
    async def test_restart_budget_resets_after_recovery(self, kafka_client, fake_kafka):
        handler = RecordingHandler()
        group = await kafka_client.subscribe_to_events("g", ["updated"], handler)

        # CONSUMER_MAX_RESTARTS is 2; each error is followed by a good record
        for n in range(3):
            fake_kafka.consumers_for("g")[-1].fail(KafkaConnectionError("connection lost"))
            await eventually(lambda: len(fake_kafka.consumers_for("g")) == n + 2)
            fake_kafka.consumers_for("g")[-1].deliver(wire(entity_id=str(n)))
            await eventually(lambda: len(handler.events) == n + 1)

        await eventually(lambda: group.state is ConsumerState.RECEIVING)
        assert group.restarts == 3
        assert not group.task.done()
        assert [event.entity_id for event in handler.events] == ["0", "1", "2"]

        await kafka_client.disconnect()

    @pytest.mark.asyncio
    async def test_non_broker_error_is_not_retried(self, kafka_client, fake_kafka):
        group = await kafka_client.subscribe_to_events("g", ["updated"], RecordingHandler())

        fake_kafka.consumers[0].fail(RuntimeError("bug in consumer"))

        await eventually(lambda: group.task.done())
        assert group.restarts == 0
        assert group.state is ConsumerState.FAILED
        assert isinstance(group.task.exception(), RuntimeError)

        await kafka_client.disconnect()


# ============================================================================
# Shutdown and health
# ============================================================================


@pytest.mark.unit
class TestDisconnect:

    @pytest.mark.asyncio
    async def test_stops_everything_and_clears_registry(self, kafka_client, fake_kafka):
        await kafka_client.initialize()
        a = await kafka_client.subscribe_to_events("a", ["created"], RecordingHandler())
        b = await kafka_client.subscribe_to_events("b", ["deleted"], RecordingHandler())

        await kafka_client.disconnect()

        assert all(consumer.stopped for consumer in fake_kafka.consumers)
        assert fake_kafka.producers[0].stopped is True
        assert kafka_client.consumer_groups == {}
        assert a.state is ConsumerState.DISCONNECTED
        assert b.state is ConsumerState.DISCONNECTED
        assert a.task.done() and b.task.done()

    @pytest.mark.asyncio
    async def test_one_failing_consumer_does_not_block_others(self, kafka_client, fake_kafka):
        await kafka_client.initialize()
        await kafka_client.subscribe_to_events("a", ["created"], RecordingHandler())
        await kafka_client.subscribe_to_events("b", ["deleted"], RecordingHandler())
        fake_kafka.consumers_for("a")[0].fail_stop = True

        await kafka_client.disconnect()

        assert fake_kafka.consumers_for("b")[0].stopped is True
        assert fake_kafka.producers[0].stopped is True

    @pytest.mark.asyncio
    async def test_waits_for_in_flight_handler(self, kafka_client, fake_kafka):
        gate = asyncio.Event()
        finished = []

        async def slow_handler(event):
            await gate.wait()
            finished.append(event.entity_id)

        group = await kafka_client.subscribe_to_events("g", ["updated"], slow_handler)
        fake_kafka.consumers[0].deliver(wire(entity_id="slow"))
        await eventually(lambda: not group.idle.is_set())

        shutdown = asyncio.create_task(kafka_client.disconnect())
        await asyncio.sleep(0.05)
        assert not shutdown.done()

        gate.set()
        await shutdown

        assert finished == ["slow"]

    @pytest.mark.asyncio
    async def test_disconnect_without_anything_running(self, kafka_client):
        await kafka_client.disconnect()


@pytest.mark.unit
class TestHealthCheck:

    @pytest.mark.asyncio
    async def test_publishes_probe(self, kafka_client, fake_kafka):
        await kafka_client.initialize()

        assert await kafka_client.health_check() is True

        record = fake_kafka.sent[0]
        assert record.topic == "raally.health.check"
        assert record.key == b"health"
        assert orjson.loads(record.value)["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_unhealthy_when_not_initialized(self, kafka_client):
        assert await kafka_client.health_check() is False

    @pytest.mark.asyncio
    async def test_unhealthy_when_send_fails(self, kafka_client, fake_kafka):
        await kafka_client.initialize()
        fake_kafka.fail_send = True

        assert await kafka_client.health_check() is False
