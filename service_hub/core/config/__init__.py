"""
Configuration Module

- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Event vocabulary, cache key namespaces, consumer group ids

Usage:
------
```python
from service_hub.core.config import get_settings
from service_hub.core.config.constants import EventType, EntityType

settings = get_settings()
brokers = settings.kafka.bootstrap_servers
```
"""

from .settings import Settings, get_settings, reload_settings

__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
]
