"""
Kafka Broker Client

Architecture:
    KafkaClient (Public API)
        ├── ProducerManager (Producer lifecycle and sending)
        ├── ConsumerGroup registry (one consumer per group id, lock guarded)
        └── Supervised receive loops (one task per consumer group)

Publishing:
    publish_event() derives the topic from (entityType, eventType), keys the
    record by entityId so every change to one entity lands on the same
    partition, and attaches eventType/entityType/tenantId headers. It never
    raises: a failed publish returns False.

Consuming:
    subscribe_to_events() joins a consumer group on every topic derived from
    the requested event kinds and starts a long-lived receive task. Messages
    within a group are handled one at a time, in delivery order. A failing
    handler or an undecodable payload only costs that message.

    Broker errors that escape the receive loop restart the group's consumer
    with exponential backoff and jitter (tenacity). When restarts run out the
    group is marked FAILED.

Author: Platform Team
Date: 2026-10-02
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import orjson
from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.errors import KafkaError
from pydantic import ValidationError
from pydantic_core import PydanticSerializationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from service_hub.core.config.constants import (
    AUDIT_EVENT_TYPES,
    CRUD_EVENT_TYPES,
    HEALTH_MESSAGE_KEY,
    USER_EVENT_TYPES,
    ConsumerState,
    EntityType,
    EventType,
)
from service_hub.core.config.settings import Settings, get_settings
from service_hub.core.exceptions import (
    BrokerConnectionError,
    BrokerSendError,
    ConsumerError,
)
from service_hub.core.logging.logger import (
    clear_correlation_id,
    get_logger,
    set_correlation_id,
)
from service_hub.events.handlers import HandlerOutcome
from service_hub.events.models import Event, utc_timestamp
from service_hub.events.topics import derive_topic, health_topic, topics_for_event_kinds
from service_hub.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

EventCallback = Callable[[Event], Awaitable[Any]]


# =============================================================================
# LAYER 1: PRODUCER MANAGEMENT
# =============================================================================


class ProducerManager:
    """
    Manages the Kafka producer lifecycle.

    One producer is shared by every publisher in the process.
    """

    def __init__(self, settings: Settings, producer_factory=AIOKafkaProducer):
        """
        Initialize producer manager.

        Args:
            settings: Application settings
            producer_factory: Producer class (tests inject a fake)
        """
        self._settings = settings
        self._factory = producer_factory
        self._producer: AIOKafkaProducer | None = None

    async def initialize(self) -> None:
        """
        Create and start the producer.

        STAGE-KAFKA.PRODUCER.INIT

        Raises:
            BrokerConnectionError: If the brokers cannot be reached
        """
        if self._producer:
            return

        kafka = self._settings.kafka
        producer = self._factory(
            bootstrap_servers=kafka.bootstrap_servers,
            client_id=kafka.KAFKA_CLIENT_ID,
            request_timeout_ms=kafka.KAFKA_REQUEST_TIMEOUT_MS,
        )

        try:
            await producer.start()
        except (KafkaError, OSError) as e:
            logger.error("Failed to start Kafka producer", stage="KAFKA.ERR", error=str(e))
            raise BrokerConnectionError(
                message=f"Failed to connect Kafka producer: {e}",
                details={"brokers": kafka.bootstrap_servers, "client_id": kafka.KAFKA_CLIENT_ID},
            )

        self._producer = producer
        logger.info(
            "Kafka producer initialized",
            stage="KAFKA.PRODUCER.INIT",
            brokers=kafka.bootstrap_servers,
            client_id=kafka.KAFKA_CLIENT_ID,
        )

    async def send(
        self,
        topic: str,
        value: bytes,
        key: bytes | None = None,
        headers: list[tuple[str, bytes]] | None = None,
        timestamp_ms: int | None = None,
    ) -> Any:
        """
        Send one record and wait for the broker acknowledgement.

        Returns:
            Record metadata (partition, offset)
        """
        if not self._producer:
            raise BrokerSendError("Producer not initialized", details={"topic": topic})

        # Send message (returns future)
        future = await self._producer.send(
            topic, value=value, key=key, headers=headers, timestamp_ms=timestamp_ms
        )

        # Wait for acknowledgement
        return await future

    async def close(self) -> None:
        """Flush pending records and stop the producer."""
        if self._producer:
            producer, self._producer = self._producer, None
            await producer.stop()

    def is_initialized(self) -> bool:
        """Check if producer is started."""
        return self._producer is not None


# =============================================================================
# LAYER 2: CONSUMER GROUP REGISTRY
# =============================================================================


@dataclass
class ConsumerGroup:
    """
    One registered consumer group.

    `idle` is set whenever no handler is running for the group; shutdown
    waits on it before cancelling the receive task.
    """

    group_id: str
    consumer: Any
    topics: list[str] = field(default_factory=list)
    handler: EventCallback | None = None
    state: ConsumerState = ConsumerState.UNREGISTERED
    task: asyncio.Task | None = None
    restarts: int = 0
    stop_requested: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    idle: asyncio.Event = field(default_factory=asyncio.Event)

    def __post_init__(self):
        self.idle.set()

    @property
    def is_receiving(self) -> bool:
        return self.task is not None and not self.task.done()


# =============================================================================
# LAYER 3: PUBLIC API
# =============================================================================


class KafkaClient:
    """
    Domain event publisher and consumer group host.

    Usage:
        broker = KafkaClient()
        await broker.initialize()
        await broker.publish_project_event("updated", "42", tenant_id="t-1")
        await broker.subscribe_to_events("audit-logger", ["created"], handler)
        await broker.disconnect()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        producer_factory=AIOKafkaProducer,
        consumer_factory=AIOKafkaConsumer,
    ):
        """
        Initialize the broker client. No network I/O happens here.

        Args:
            settings: Application settings (defaults to the global settings)
            producer_factory: Producer class (tests inject a fake)
            consumer_factory: Consumer class (tests inject a fake)
        """
        self.settings = settings or get_settings()
        self._namespace = self.settings.kafka.EVENT_TOPIC_NAMESPACE
        self._producer_mgr = ProducerManager(self.settings, producer_factory)
        self._consumer_factory = consumer_factory
        self._groups: dict[str, ConsumerGroup] = {}
        self._registry_lock = asyncio.Lock()
        self._metrics = get_metrics_collector()

    @property
    def consumer_groups(self) -> Mapping[str, ConsumerGroup]:
        """Registered consumer groups by group id (read-only view)."""
        return dict(self._groups)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """
        Start the producer. Idempotent.

        Raises:
            BrokerConnectionError: If the brokers cannot be reached
        """
        await self._producer_mgr.initialize()

    async def disconnect(self) -> None:
        """
        Stop every consumer group, then the producer.

        STAGE-KAFKA.SHUTDOWN

        Flow:
        1. Ask every receive loop to stop after its current message
        2. Wait (bounded) for in-flight handlers to finish
        3. Cancel the receive tasks
        4. Stop each consumer; one failure never blocks the others
        5. Stop the producer and clear the registry
        """
        groups = list(self._groups.values())

        for group in groups:
            group.stop_requested = True

        if groups:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*(group.idle.wait() for group in groups)),
                    timeout=self.settings.kafka.CONSUMER_SHUTDOWN_TIMEOUT,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Consumer handlers still running at shutdown deadline",
                    stage="KAFKA.SHUTDOWN",
                    timeout=self.settings.kafka.CONSUMER_SHUTDOWN_TIMEOUT,
                )

        tasks = [group.task for group in groups if group.task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for group in groups:
            try:
                await group.consumer.stop()
                logger.info("Consumer disconnected", stage="KAFKA.SHUTDOWN", group_id=group.group_id)
            except Exception as e:
                logger.error(
                    "Error stopping consumer",
                    stage="KAFKA.SHUTDOWN",
                    group_id=group.group_id,
                    error=str(e),
                )
            if group.state != ConsumerState.FAILED:
                group.state = ConsumerState.DISCONNECTED

        try:
            await self._producer_mgr.close()
        except Exception as e:
            logger.error("Error stopping producer", stage="KAFKA.SHUTDOWN", error=str(e))

        self._groups.clear()
        logger.info("Kafka client disconnected", stage="KAFKA.SHUTDOWN", groups=len(groups))

    # =========================================================================
    # Publishing
    # =========================================================================

    async def send(
        self,
        topic: str,
        value: Any,
        key: str | None = None,
        headers: Mapping[str, str] | None = None,
        timestamp: int | None = None,
    ) -> Any:
        """
        Send a raw record.

        Args:
            topic: Destination topic
            value: bytes, str, or a JSON-serializable object
            key: Partitioning key
            headers: String headers (sent UTF-8 encoded)
            timestamp: Record timestamp in epoch milliseconds

        Raises:
            BrokerSendError: If the record was not acknowledged
        """
        if isinstance(value, bytes):
            payload = value
        elif isinstance(value, str):
            payload = value.encode()
        else:
            payload = orjson.dumps(value)

        try:
            return await self._producer_mgr.send(
                topic,
                payload,
                key=key.encode() if key is not None else None,
                headers=[(name, str(val).encode()) for name, val in (headers or {}).items()],
                timestamp_ms=timestamp,
            )
        except KafkaError as e:
            logger.error("Kafka send failed", stage="KAFKA.SEND", topic=topic, error=str(e))
            raise BrokerSendError(message=f"Kafka send failed: {e}", details={"topic": topic})

    async def publish_event(self, event: Event) -> bool:
        """
        Publish a domain event to its derived topic.

        STAGE-KAFKA.PUBLISH

        Returns:
            True if the broker acknowledged the record, False otherwise
        """
        topic = derive_topic(event.entity_type, event.event_type, self._namespace)

        try:
            payload = event.to_wire()
            await self.send(
                topic,
                payload,
                key=event.entity_id,
                headers=event.headers(),
                timestamp=event.timestamp_ms(),
            )
        except BrokerSendError as e:
            logger.error(
                "Failed to publish event",
                stage="KAFKA.PUBLISH",
                topic=topic,
                entity_id=event.entity_id,
                error=e.message,
            )
            self._metrics.record_event_published(event.entity_type.value, event.event_type.value, "failure")
            return False
        except (PydanticSerializationError, TypeError, ValueError) as e:
            # metadata carried a value with no JSON form
            logger.error(
                "Event could not be serialized",
                stage="KAFKA.PUBLISH",
                topic=topic,
                entity_id=event.entity_id,
                error=str(e),
            )
            self._metrics.record_event_published(event.entity_type.value, event.event_type.value, "failure")
            return False

        logger.debug("Event published", stage="KAFKA.PUBLISH", topic=topic, entity_id=event.entity_id)
        self._metrics.record_event_published(event.entity_type.value, event.event_type.value, "success")
        return True

    async def _publish_typed(
        self,
        entity_type: EntityType,
        allowed: frozenset[EventType],
        event_type: EventType | str,
        entity_id: str,
        user_id: str | None,
        tenant_id: str | None,
        metadata: dict[str, Any] | None,
    ) -> bool:
        kind = EventType(event_type)
        if kind not in allowed:
            raise ValueError(
                f"{kind.value!r} is not a valid {entity_type.value} event "
                f"(expected one of {sorted(k.value for k in allowed)})"
            )

        event = Event(
            event_type=kind,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            tenant_id=tenant_id,
            metadata=metadata,
        )
        return await self.publish_event(event)

    async def publish_user_event(
        self,
        event_type: EventType | str,
        user_id: str,
        tenant_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Publish created/updated/deleted/login/logout for a user."""
        return await self._publish_typed(
            EntityType.USER, USER_EVENT_TYPES, event_type, user_id, user_id, tenant_id, metadata
        )

    async def publish_tenant_event(
        self,
        event_type: EventType | str,
        tenant_id: str,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Publish created/updated/deleted for a tenant."""
        return await self._publish_typed(
            EntityType.TENANT, CRUD_EVENT_TYPES, event_type, tenant_id, user_id, tenant_id, metadata
        )

    async def publish_project_event(
        self,
        event_type: EventType | str,
        project_id: str,
        tenant_id: str,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Publish created/updated/deleted for a project."""
        return await self._publish_typed(
            EntityType.PROJECT, CRUD_EVENT_TYPES, event_type, project_id, user_id, tenant_id, metadata
        )

    async def publish_assignment_event(
        self,
        event_type: EventType | str,
        assignment_id: str,
        tenant_id: str,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Publish created/updated/deleted for an assignment."""
        return await self._publish_typed(
            EntityType.ASSIGNMENT, CRUD_EVENT_TYPES, event_type, assignment_id, user_id, tenant_id, metadata
        )

    async def publish_audit_event(
        self,
        event_type: EventType | str,
        audit_id: str,
        tenant_id: str,
        user_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Publish action_performed for an audit record."""
        return await self._publish_typed(
            EntityType.AUDIT, AUDIT_EVENT_TYPES, event_type, audit_id, user_id, tenant_id, metadata
        )

    # =========================================================================
    # Consumer Groups
    # =========================================================================

    def _new_consumer(self, group_id: str) -> AIOKafkaConsumer:
        kafka = self.settings.kafka
        return self._consumer_factory(
            bootstrap_servers=kafka.bootstrap_servers,
            client_id=kafka.KAFKA_CLIENT_ID,
            group_id=group_id,
            session_timeout_ms=kafka.KAFKA_SESSION_TIMEOUT_MS,
            heartbeat_interval_ms=kafka.KAFKA_HEARTBEAT_INTERVAL_MS,
            auto_offset_reset=kafka.KAFKA_AUTO_OFFSET_RESET,
        )

    async def create_consumer(self, group_id: str) -> ConsumerGroup:
        """
        Get or create the consumer group for group_id.

        Concurrent callers with the same id always receive the same group.
        The consumer is created but not started.
        """
        async with self._registry_lock:
            group = self._groups.get(group_id)
            if group is None:
                group = ConsumerGroup(group_id=group_id, consumer=self._new_consumer(group_id))
                self._groups[group_id] = group
                logger.debug("Consumer group registered", stage="KAFKA.CONSUMER.CREATE", group_id=group_id)
            return group

    async def subscribe_to_events(
        self,
        group_id: str,
        event_kinds: Iterable[EventType | str],
        handler: EventCallback,
        entity_types: Iterable[EntityType | str] | None = None,
    ) -> ConsumerGroup:
        """
        Subscribe a consumer group to event kinds and start receiving.

        STAGE-KAFKA.SUBSCRIBE

        The topic set is every requested event kind crossed with every entity
        type, unless entity_types narrows it. Returns once the group is
        subscribed; messages are handled by a background task.

        Raises:
            ConsumerError: If the group cannot join or subscribe
            ValueError: If an event kind or entity type is unknown
        """
        topics = topics_for_event_kinds(event_kinds, entity_types, self._namespace)
        if not topics:
            raise ConsumerError("No event kinds requested", details={"group_id": group_id})

        group = await self.create_consumer(group_id)

        async with group.lock:
            if group.is_receiving:
                logger.warning(
                    "Consumer group already receiving, ignoring subscribe",
                    stage="KAFKA.SUBSCRIBE",
                    group_id=group_id,
                )
                return group

            group.state = ConsumerState.CONNECTING
            group.topics = topics
            group.handler = handler
            group.stop_requested = False

            try:
                await group.consumer.start()
                group.consumer.subscribe(topics=topics)
            except (KafkaError, OSError) as e:
                group.state = ConsumerState.FAILED
                logger.error("Consumer subscribe failed", stage="KAFKA.SUBSCRIBE", group_id=group_id, error=str(e))
                raise ConsumerError(
                    message=f"Failed to subscribe consumer group {group_id}: {e}",
                    details={"group_id": group_id, "topics": topics},
                )

            group.state = ConsumerState.SUBSCRIBED
            group.task = asyncio.create_task(self._supervise(group), name=f"consumer:{group_id}")

        logger.info(
            "Consumer group subscribed",
            stage="KAFKA.SUBSCRIBE",
            group_id=group_id,
            topics=len(topics),
        )
        return group

    # -------------------------------------------------------------------------
    # Receive loop
    # -------------------------------------------------------------------------

    def _restart_policy(self, group: ConsumerGroup) -> AsyncRetrying:
        """Retry controller for one outage of a group's receive loop."""
        kafka = self.settings.kafka

        def log_restart(retry_state: RetryCallState) -> None:
            logger.warning(
                "Consumer loop failed, restarting",
                stage="KAFKA.CONSUMER.RESTART",
                group_id=group.group_id,
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()),
            )

        return AsyncRetrying(
            retry=retry_if_exception_type(KafkaError),
            stop=stop_after_attempt(kafka.CONSUMER_MAX_RESTARTS + 1),
            wait=wait_exponential_jitter(
                initial=kafka.CONSUMER_RESTART_BASE_DELAY,
                max=kafka.CONSUMER_RESTART_MAX_DELAY,
                jitter=kafka.CONSUMER_RESTART_BASE_DELAY,
            ),
            before_sleep=log_restart,
            reraise=True,
        )

    async def _supervise(self, group: ConsumerGroup) -> None:
        """
        Run the receive loop, restarting the consumer on broker errors.

        Each outage gets CONSUMER_MAX_RESTARTS restarts. The first record
        received after a restart ends the outage, so the next broker error
        starts a fresh budget. An exhausted budget marks the group FAILED.
        """
        try:
            while not group.stop_requested:
                async for attempt in self._restart_policy(group):
                    with attempt:
                        restarted = attempt.retry_state.attempt_number > 1
                        if restarted:
                            await self._restart_consumer(group)
                        await self._receive(group, until_recovered=restarted)
        except KafkaError as e:
            group.state = ConsumerState.FAILED
            logger.error(
                "Consumer group failed permanently",
                stage="KAFKA.CONSUMER.FAILED",
                group_id=group.group_id,
                restarts=group.restarts,
                error=str(e),
            )
        except Exception:
            group.state = ConsumerState.FAILED
            logger.error(
                "Consumer loop crashed",
                stage="KAFKA.CONSUMER.FAILED",
                group_id=group.group_id,
                exc_info=True,
            )
            raise

    async def _restart_consumer(self, group: ConsumerGroup) -> None:
        try:
            await group.consumer.stop()
        except Exception as e:
            logger.debug("Stopping failed consumer raised", group_id=group.group_id, error=str(e))

        group.restarts += 1
        group.state = ConsumerState.CONNECTING
        self._metrics.record_consumer_restart(group.group_id)

        group.consumer = self._new_consumer(group.group_id)
        await group.consumer.start()
        group.consumer.subscribe(topics=group.topics)
        group.state = ConsumerState.SUBSCRIBED

    async def _receive(self, group: ConsumerGroup, until_recovered: bool = False) -> None:
        """
        Fetch and dispatch records until a stop is requested.

        With until_recovered, returns after the first record so the
        supervisor can close the outage.
        """
        group.state = ConsumerState.RECEIVING
        while not group.stop_requested:
            record = await group.consumer.getone()
            group.idle.clear()
            try:
                await self._dispatch(group, record)
            finally:
                group.idle.set()
            if until_recovered:
                logger.info("Consumer recovered", stage="KAFKA.CONSUMER.RESTART", group_id=group.group_id)
                return

    async def _dispatch(self, group: ConsumerGroup, record: Any) -> None:
        """Decode one record and hand it to the group's handler."""
        set_correlation_id(f"{record.topic}:{record.partition}:{record.offset}")
        try:
            try:
                event = Event.from_json(record.value)
            except (orjson.JSONDecodeError, ValidationError) as e:
                logger.warning(
                    "Undecodable event skipped",
                    stage="KAFKA.CONSUME",
                    group_id=group.group_id,
                    topic=record.topic,
                    error=str(e),
                )
                self._metrics.record_event_consumed(group.group_id, "decode_error")
                return

            try:
                outcome = await group.handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    stage="KAFKA.CONSUME",
                    group_id=group.group_id,
                    topic=record.topic,
                    entity_id=event.entity_id,
                    error=str(e),
                    exc_info=True,
                )
                self._metrics.record_event_consumed(group.group_id, "handler_error")
                return

            status = outcome.value if isinstance(outcome, HandlerOutcome) else HandlerOutcome.HANDLED.value
            self._metrics.record_event_consumed(group.group_id, status)
        finally:
            clear_correlation_id()

    # =========================================================================
    # Health
    # =========================================================================

    async def health_check(self) -> bool:
        """
        Publish a synthetic message to the health topic.

        Returns:
            True if the broker acknowledged it
        """
        if not self._producer_mgr.is_initialized():
            return False

        try:
            await self.send(
                health_topic(self._namespace),
                {"status": "healthy", "timestamp": utc_timestamp()},
                key=HEALTH_MESSAGE_KEY,
            )
        except BrokerSendError:
            return False
        return True
