"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tests.test_fixtures import ALL_COMMANDS, FakeKafka, InMemoryRedis  # noqa: E402


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def make_settings():
    """
    Build isolated Settings (no .env file) with fast restart/shutdown timings.

    Keyword arguments override individual fields.
    """
    from service_hub.core.config.settings import Settings

    def _make(**overrides):
        values = {
            "ENVIRONMENT": "test",
            "CONSUMER_MAX_RESTARTS": 2,
            "CONSUMER_RESTART_BASE_DELAY": 0.0,
            "CONSUMER_RESTART_MAX_DELAY": 0.0,
            "CONSUMER_SHUTDOWN_TIMEOUT": 0.5,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def test_settings(make_settings):
    return make_settings()


# ============================================================================
# Redis Fixtures
# ============================================================================


@pytest.fixture
def in_memory_redis():
    """In-memory Redis with a test-controlled clock."""
    return InMemoryRedis()


@pytest.fixture
def unreachable_redis():
    """Redis stand-in whose every command fails with a connection error."""
    return InMemoryRedis(fail_on=ALL_COMMANDS)


@pytest.fixture
def redis_client(test_settings, in_memory_redis):
    from service_hub.infrastructure.cache.redis_client import RedisClient

    return RedisClient(test_settings, client=in_memory_redis)


@pytest.fixture
def cache_client(test_settings, redis_client):
    from service_hub.infrastructure.cache.cache_client import CacheClient

    return CacheClient(test_settings, redis_client=redis_client)


@pytest.fixture
def unreachable_cache_client(test_settings, unreachable_redis):
    from service_hub.infrastructure.cache.cache_client import CacheClient
    from service_hub.infrastructure.cache.redis_client import RedisClient

    return CacheClient(test_settings, redis_client=RedisClient(test_settings, client=unreachable_redis))


# ============================================================================
# Kafka Fixtures
# ============================================================================


@pytest.fixture
def fake_kafka():
    """In-memory broker shared by the producer and consumer factories."""
    return FakeKafka()


@pytest.fixture
def kafka_client(test_settings, fake_kafka):
    from service_hub.infrastructure.message_queue.kafka_client import KafkaClient

    return KafkaClient(
        test_settings,
        producer_factory=fake_kafka.producer,
        consumer_factory=fake_kafka.consumer,
    )


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def sample_event():
    """A project update as a publisher would build it."""
    from service_hub.core.config.constants import EntityType, EventType
    from service_hub.events.models import Event

    return Event(
        event_type=EventType.UPDATED,
        entity_type=EntityType.PROJECT,
        entity_id="42",
        user_id="u-7",
        tenant_id="t-1",
        metadata={"field": "name"},
        timestamp="2026-10-02T09:15:00.123Z",
    )
