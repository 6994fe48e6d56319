"""
Service Lifecycle Exceptions
"""

from service_hub.core.exceptions.base import ServiceHubError


class ServiceNotInitializedError(ServiceHubError):
    """
    Raised when a shared client is requested before initialize_services().

    This is a programmer error, not a runtime condition to recover from.
    """
    pass
