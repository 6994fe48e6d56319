"""
Services Package

Lifecycle of the shared broker and cache clients.
"""

from .lifecycle import (
    ServiceManager,
    get_broker_client,
    get_cache_client,
    get_service_manager,
    health_check,
    initialize_services,
    shutdown_services,
)

__all__ = [
    "ServiceManager",
    "get_service_manager",
    "initialize_services",
    "shutdown_services",
    "health_check",
    "get_broker_client",
    "get_cache_client",
]
