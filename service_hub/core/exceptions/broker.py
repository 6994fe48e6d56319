"""
Message Broker Exceptions

All exceptions related to the Kafka producer and consumer groups.
"""

from service_hub.core.exceptions.base import ServiceHubError


class BrokerError(ServiceHubError):
    """Base exception for message broker errors."""
    pass


class BrokerConnectionError(BrokerError):
    """
    Raised when the producer cannot connect at startup.

    Fatal to the owning process: it propagates out of initialize_services.
    """
    pass


class BrokerSendError(BrokerError):
    """Raised when a message cannot be delivered to the broker."""
    pass


class ConsumerError(BrokerError):
    """
    Raised when a consumer group cannot be created or subscribed.

    Common causes:
    - Broker unreachable while joining the group
    - Empty subscription (no event kinds requested)
    """
    pass
