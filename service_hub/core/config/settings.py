#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
service orchestration layer: the Kafka broker client, the Redis cache client,
the standing event consumers, logging and the HTTP health surface.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms (pass a Settings instance explicitly)

Author: Platform Team
Date: 2026-10-02
"""

from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from service_hub.core.exceptions.base import ConfigurationError


class KafkaSettings(BaseSettings):
    """
    Kafka broker configuration.

    STAGE-0.1: Broker connection configuration

    KAFKA_BROKERS is a comma-separated endpoint list, exactly as it appears in
    the deployment environment ("kafka-1:9092,kafka-2:9092").
    """

    KAFKA_BROKERS: str = Field(default="localhost:9092", description="Comma-separated broker endpoints")
    KAFKA_CLIENT_ID: str = Field(default="raally-app", description="Logical producer identity")
    KAFKA_REQUEST_TIMEOUT_MS: int = Field(default=30000, description="Producer request timeout")
    KAFKA_SESSION_TIMEOUT_MS: int = Field(default=30000, description="Consumer group session timeout")
    KAFKA_HEARTBEAT_INTERVAL_MS: int = Field(default=3000, description="Consumer heartbeat interval")
    KAFKA_AUTO_OFFSET_RESET: Literal["earliest", "latest"] = Field(
        default="latest", description="Where a new consumer group starts reading"
    )
    EVENT_TOPIC_NAMESPACE: str = Field(default="raally", description="Topic namespace prefix")

    # Supervised receive loop
    CONSUMER_MAX_RESTARTS: int = Field(default=5, description="Restarts before a consumer group is marked failed")
    CONSUMER_RESTART_BASE_DELAY: float = Field(default=0.1, description="Initial restart backoff (seconds)")
    CONSUMER_RESTART_MAX_DELAY: float = Field(default=30.0, description="Maximum restart backoff (seconds)")
    CONSUMER_SHUTDOWN_TIMEOUT: float = Field(
        default=10.0, description="Seconds to wait for in-flight handlers on disconnect"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)

    @property
    def bootstrap_servers(self) -> list[str]:
        """Broker endpoints as a list, blanks removed."""
        return [broker.strip() for broker in self.KAFKA_BROKERS.split(",") if broker.strip()]


class RedisSettings(BaseSettings):
    """
    Redis configuration for the shared cache client.

    STAGE-0.2: Cache connection configuration

    Every key is stored under REDIS_KEY_PREFIX so several applications can
    share one Redis database without colliding.
    """

    REDIS_URL: str = Field(default="redis://localhost:6379", description="Redis connection URL")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_KEY_PREFIX: str = Field(default="raally:", description="Prefix applied to every key")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Cache TTL defaults.

    STAGE-2: Cache TTL configuration
    """

    CACHE_DEFAULT_TTL: int = Field(default=3600, description="Memoized compute TTL (1 hour)")
    CACHE_SESSION_TTL: int = Field(default=86400, description="Session TTL (24 hours)")
    CACHE_HEALTH_KEY_TTL: int = Field(default=60, description="Health probe key TTL")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Raally Service Hub", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    SHUTDOWN_TIMEOUT: float = Field(default=30.0, description="Overall shutdown deadline in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from service_hub.core.config.settings import get_settings

        settings = get_settings()
        brokers = settings.kafka.bootstrap_servers
        redis_url = settings.redis.REDIS_URL
    """

    # Kafka settings
    KAFKA_BROKERS: str = Field(default="localhost:9092", description="Comma-separated broker endpoints")
    KAFKA_CLIENT_ID: str = Field(default="raally-app", description="Logical producer identity")
    KAFKA_REQUEST_TIMEOUT_MS: int = Field(default=30000, description="Producer request timeout")
    KAFKA_SESSION_TIMEOUT_MS: int = Field(default=30000, description="Consumer group session timeout")
    KAFKA_HEARTBEAT_INTERVAL_MS: int = Field(default=3000, description="Consumer heartbeat interval")
    KAFKA_AUTO_OFFSET_RESET: Literal["earliest", "latest"] = Field(
        default="latest", description="Where a new consumer group starts reading"
    )
    EVENT_TOPIC_NAMESPACE: str = Field(default="raally", description="Topic namespace prefix")
    CONSUMER_MAX_RESTARTS: int = Field(default=5, description="Restarts before a consumer group is marked failed")
    CONSUMER_RESTART_BASE_DELAY: float = Field(default=0.1, description="Initial restart backoff (seconds)")
    CONSUMER_RESTART_MAX_DELAY: float = Field(default=30.0, description="Maximum restart backoff (seconds)")
    CONSUMER_SHUTDOWN_TIMEOUT: float = Field(
        default=10.0, description="Seconds to wait for in-flight handlers on disconnect"
    )

    # Redis settings
    REDIS_URL: str = Field(default="redis://localhost:6379", description="Redis connection URL")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_KEY_PREFIX: str = Field(default="raally:", description="Prefix applied to every key")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    # Cache settings
    CACHE_DEFAULT_TTL: int = Field(default=3600, description="Memoized compute TTL (1 hour)")
    CACHE_SESSION_TTL: int = Field(default=86400, description="Session TTL (24 hours)")
    CACHE_HEALTH_KEY_TTL: int = Field(default=60, description="Health probe key TTL")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Raally Service Hub", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    SHUTDOWN_TIMEOUT: float = Field(default=30.0, description="Overall shutdown deadline in seconds")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("KAFKA_BROKERS")
    @classmethod
    def validate_brokers(cls, v):
        """Reject an endpoint list with no usable entries."""
        if not any(broker.strip() for broker in v.split(",")):
            raise ValueError("KAFKA_BROKERS must contain at least one endpoint")
        return v

    # Nested configuration views
    @property
    def kafka(self) -> KafkaSettings:
        """Get Kafka settings."""
        return KafkaSettings(
            KAFKA_BROKERS=self.KAFKA_BROKERS,
            KAFKA_CLIENT_ID=self.KAFKA_CLIENT_ID,
            KAFKA_REQUEST_TIMEOUT_MS=self.KAFKA_REQUEST_TIMEOUT_MS,
            KAFKA_SESSION_TIMEOUT_MS=self.KAFKA_SESSION_TIMEOUT_MS,
            KAFKA_HEARTBEAT_INTERVAL_MS=self.KAFKA_HEARTBEAT_INTERVAL_MS,
            KAFKA_AUTO_OFFSET_RESET=self.KAFKA_AUTO_OFFSET_RESET,
            EVENT_TOPIC_NAMESPACE=self.EVENT_TOPIC_NAMESPACE,
            CONSUMER_MAX_RESTARTS=self.CONSUMER_MAX_RESTARTS,
            CONSUMER_RESTART_BASE_DELAY=self.CONSUMER_RESTART_BASE_DELAY,
            CONSUMER_RESTART_MAX_DELAY=self.CONSUMER_RESTART_MAX_DELAY,
            CONSUMER_SHUTDOWN_TIMEOUT=self.CONSUMER_SHUTDOWN_TIMEOUT,
        )

    @property
    def redis(self) -> RedisSettings:
        """Get Redis settings."""
        return RedisSettings(
            REDIS_URL=self.REDIS_URL,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_KEY_PREFIX=self.REDIS_KEY_PREFIX,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
        )

    @property
    def cache(self) -> CacheSettings:
        """Get cache TTL settings."""
        return CacheSettings(
            CACHE_DEFAULT_TTL=self.CACHE_DEFAULT_TTL,
            CACHE_SESSION_TTL=self.CACHE_SESSION_TTL,
            CACHE_HEALTH_KEY_TTL=self.CACHE_HEALTH_KEY_TTL,
        )

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            SHUTDOWN_TIMEOUT=self.SHUTDOWN_TIMEOUT,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def _load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(
            message="Invalid service configuration",
            details={"errors": [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()]},
        ) from e


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance

    Raises:
        ConfigurationError: If the environment holds an invalid value
    """
    global _settings

    if _settings is None:
        _settings = _load_settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = _load_settings()
    return _settings
