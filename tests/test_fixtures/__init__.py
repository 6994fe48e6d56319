"""
Test Fixtures Package

In-memory stand-ins for Redis and Kafka shared across the unit tests.
"""

from .kafka_fakes import FakeConsumer, FakeKafka, FakeProducer, eventually
from .redis_fakes import ALL_COMMANDS, InMemoryRedis

__all__ = [
    "ALL_COMMANDS",
    "InMemoryRedis",
    "FakeKafka",
    "FakeProducer",
    "FakeConsumer",
    "eventually",
]
