"""
Core Module

Foundational components: configuration, logging and exceptions.
"""

from .exceptions import (
    BrokerConnectionError,
    BrokerError,
    BrokerSendError,
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    ConfigurationError,
    ConsumerError,
    ServiceHubError,
    ServiceNotInitializedError,
)
from .logging import (
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "ServiceHubError",
    "ConfigurationError",
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    "BrokerError",
    "BrokerConnectionError",
    "BrokerSendError",
    "ConsumerError",
    "ServiceNotInitializedError",
]
