"""
Exception Module

Structured exception hierarchy for the service orchestration layer.

Module Structure:
-----------------
- **base.py**: ServiceHubError base class + ConfigurationError
- **cache.py**: Redis cache exceptions
- **broker.py**: Kafka producer/consumer exceptions
- **lifecycle.py**: Service lifecycle exceptions

Usage:
------
```python
from service_hub.core.exceptions import BrokerSendError, ServiceNotInitializedError
```
"""

# Base exception
from service_hub.core.exceptions.base import ConfigurationError, ServiceHubError

# Broker exceptions
from service_hub.core.exceptions.broker import (
    BrokerConnectionError,
    BrokerError,
    BrokerSendError,
    ConsumerError,
)

# Cache exceptions
from service_hub.core.exceptions.cache import CacheConnectionError, CacheError, CacheKeyError

# Lifecycle exceptions
from service_hub.core.exceptions.lifecycle import ServiceNotInitializedError

__all__ = [
    # Base
    "ServiceHubError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    # Broker
    "BrokerError",
    "BrokerConnectionError",
    "BrokerSendError",
    "ConsumerError",
    # Lifecycle
    "ServiceNotInitializedError",
]
