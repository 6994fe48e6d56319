#!/usr/bin/env python3
"""
Structured Logging Module using structlog

This module provides structured logging with:
- Correlation ID binding (one per delivered broker message)
- Stage identifiers for execution flow (CACHE.*, REDIS.*, KAFKA.*, EVENTS.*, LIFECYCLE.*)
- JSON formatting for log aggregation
- Automatic secret redaction (connection URLs with credentials, emails)

Audit and notification consumers emit their records through this logger, so
the JSON renderer is the audit sink in production.

Author: Platform Team
Date: 2026-10-02
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from service_hub.core.config.settings import get_settings

# Context variable for the correlation ID of the message being handled
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_URL_CREDENTIALS = re.compile(r"(\w+://)([^:/@\s]*):([^@\s]+)@")
_EMAIL = re.compile(r"\b[\w.-]+@[\w.-]+\.\w+\b")


def add_correlation_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add the correlation ID from context to every log entry.

    STAGE-L.1: Correlation ID injection
    """
    correlation_id = correlation_id_ctx.get()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add ISO timestamp to log event.

    STAGE-L.2: Timestamp injection
    """
    event_dict.setdefault("logged_at", datetime.now(timezone.utc).isoformat())
    return event_dict


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact secrets from log messages and string fields.

    STAGE-L.3: Secret redaction

    Patterns redacted:
    - Credentials embedded in URLs (redis://:secret@host) → redis://[REDACTED]@host
    - Email addresses → [EMAIL]
    """
    for key, value in event_dict.items():
        if isinstance(value, str):
            value = _URL_CREDENTIALS.sub(r"\1[REDACTED]@", value)
            event_dict[key] = _EMAIL.sub("[EMAIL]", value) if key == "event" else value

    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Uppercase the log level.

    STAGE-L.4: Log level injection
    """
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Setup structured logging with structlog.

    STAGE-L: Logging initialization

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    settings = get_settings()

    log_level = log_level or settings.logging.LOG_LEVEL
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper())
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_correlation_id,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_secrets,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("message", key="value", stage="KAFKA.PUB")
    """
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the message currently being handled."""
    correlation_id_ctx.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get the current correlation ID, if any."""
    return correlation_id_ctx.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID once a message has been handled."""
    correlation_id_ctx.set(None)
