"""
Message Queue Package

Kafka producer and consumer groups for domain events.
"""

from .kafka_client import ConsumerGroup, KafkaClient

__all__ = [
    "KafkaClient",
    "ConsumerGroup",
]
