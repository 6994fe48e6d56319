"""
Monitoring Package

Prometheus counters for publishing, consuming and cache operations.
"""

from .metrics_collector import MetricsCollector, get_metrics_collector

__all__ = [
    "MetricsCollector",
    "get_metrics_collector",
]
