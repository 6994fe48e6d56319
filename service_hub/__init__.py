"""
Service Hub

Event bus and cache orchestration for the Raally backend: a Kafka client for
domain events, a fail-soft Redis cache client, and the lifecycle manager that
owns both.
"""

__version__ = "1.0.0"
