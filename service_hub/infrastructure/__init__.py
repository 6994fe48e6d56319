"""
Infrastructure Package

Adapters for external systems: Redis cache, Kafka broker, Prometheus metrics.
"""
