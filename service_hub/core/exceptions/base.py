"""
Base Exception Class

Base class every service hub exception inherits from, plus the configuration
error. Specialized exceptions live in their themed modules.

Author: Platform Team
Date: 2026-10-02
"""

from typing import Any


class ServiceHubError(Exception):
    """
    Base exception for all service hub errors.

    Attributes:
        message: Error message
        details: Additional error details (dict)

    Example:
        raise BrokerSendError(
            "Failed to send to raally.user.created",
            details={"topic": "raally.user.created", "key": "42"},
        )
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging/API responses.

        Returns:
            Dict with error_type, message and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }

    def with_context(self, **context) -> "ServiceHubError":
        """
        Add additional context to the error details.

        Returns:
            Self (for method chaining)
        """
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        return f"{self.__class__.__name__}(message='{self.message}'{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        **details
    ) -> "ServiceHubError":
        """
        Wrap a third-party exception with additional context.

        Example:
            >>> try:
            ...     await producer.start()
            ... except KafkaError as e:
            ...     raise BrokerConnectionError.from_exception(e, brokers="localhost:9092")
        """
        error_message = message or str(exc)
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, details=error_details)


class ConfigurationError(ServiceHubError):
    """Raised when configuration is invalid or missing."""
    pass
