#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

Counters for the orchestration layer:
- Events published, by entity/event type and outcome
- Events consumed, by consumer group and outcome
- Cache operations, by operation and result (hit, miss, error, ...)
- Rate limit rejections
- Supervised consumer restarts

Architectural Decision: prometheus-client for industry-standard metrics

Author: Platform Team
Date: 2026-10-02
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Info,
    generate_latest,
)

from service_hub.core.config.settings import get_settings
from service_hub.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

APP_INFO = Info(
    'service_hub_app',
    'Application information'
)

EVENTS_PUBLISHED = Counter(
    'service_hub_events_published_total',
    'Events handed to the broker',
    ['entity_type', 'event_type', 'status']  # success, failure
)

EVENTS_CONSUMED = Counter(
    'service_hub_events_consumed_total',
    'Events delivered to a consumer group handler',
    ['group_id', 'status']  # handled, skipped, handler_error, decode_error
)

CACHE_OPERATIONS = Counter(
    'service_hub_cache_operations_total',
    'Cache operations by result',
    ['operation', 'result']
)

RATE_LIMIT_EXCEEDED = Counter(
    'service_hub_rate_limit_exceeded_total',
    'Requests rejected by the rate limiter'
)

CONSUMER_RESTARTS = Counter(
    'service_hub_consumer_restarts_total',
    'Supervised restarts of consumer receive loops',
    ['group_id']
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_event_published("project", "updated", "success")
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        """Initialize metrics collector."""
        self.settings = get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage="M.0")

    def record_event_published(self, entity_type: str, event_type: str, status: str) -> None:
        """Record the outcome of one publish."""
        EVENTS_PUBLISHED.labels(entity_type=entity_type, event_type=event_type, status=status).inc()

    def record_event_consumed(self, group_id: str, status: str) -> None:
        """Record the outcome of one delivered message."""
        EVENTS_CONSUMED.labels(group_id=group_id, status=status).inc()

    def record_cache_operation(self, operation: str, result: str) -> None:
        """Record a cache operation result."""
        CACHE_OPERATIONS.labels(operation=operation, result=result).inc()

    def record_rate_limit_exceeded(self) -> None:
        """Record a rate limit rejection."""
        RATE_LIMIT_EXCEEDED.inc()

    def record_consumer_restart(self, group_id: str) -> None:
        """Record a supervised consumer restart."""
        CONSUMER_RESTARTS.labels(group_id=group_id).inc()

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
