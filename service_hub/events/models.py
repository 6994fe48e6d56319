"""
Event Model

The unit of cross-service communication. An Event is built synchronously by a
publisher, encoded once for the broker and never retained afterwards.

Python attributes are snake_case; the wire format keeps the camelCase field
names every consumer of the topics already relies on:

    {"eventType": "updated", "entityType": "project", "entityId": "42",
     "tenantId": "t-1", "timestamp": "2026-10-02T09:15:00.123Z"}
"""

from datetime import datetime, timezone
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator

from service_hub.core.config.constants import (
    DEFAULT_TENANT_ID,
    HEADER_ENTITY_TYPE,
    HEADER_EVENT_TYPE,
    HEADER_TENANT_ID,
    EntityType,
    EventType,
)


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting the Z suffix."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class Event(BaseModel):
    """
    A structured record of a state change.

    Identity is (entity_type, event_type, entity_id); only the first two
    affect routing.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event_type: EventType = Field(..., alias="eventType", description="What happened")
    entity_type: EntityType = Field(..., alias="entityType", description="What it happened to")
    entity_id: str = Field(..., alias="entityId", min_length=1, description="Identifier of the entity")
    user_id: str | None = Field(default=None, alias="userId", description="Acting user")
    tenant_id: str | None = Field(default=None, alias="tenantId", description="Owning tenant")
    metadata: dict[str, Any] | None = Field(default=None, description="Opaque extra data")
    timestamp: str = Field(default_factory=utc_timestamp, description="ISO-8601 creation time")

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: str) -> str:
        """Reject timestamps that are not ISO-8601."""
        try:
            parse_timestamp(v)
        except ValueError:
            raise ValueError(f"timestamp must be ISO-8601, got {v!r}")
        return v

    def to_wire(self) -> dict[str, Any]:
        """Wire representation: camelCase keys, absent optionals omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> bytes:
        """Encode the wire representation as JSON bytes."""
        return orjson.dumps(self.to_wire())

    @classmethod
    def from_json(cls, data: bytes | str) -> "Event":
        """Decode a broker payload produced by to_json()."""
        return cls.model_validate(orjson.loads(data))

    def headers(self) -> dict[str, str]:
        """Routing headers readable without decoding the value."""
        return {
            HEADER_EVENT_TYPE: self.event_type.value,
            HEADER_ENTITY_TYPE: self.entity_type.value,
            HEADER_TENANT_ID: self.tenant_id or DEFAULT_TENANT_ID,
        }

    def timestamp_ms(self) -> int:
        """Event timestamp as epoch milliseconds (broker record timestamp)."""
        return int(parse_timestamp(self.timestamp).timestamp() * 1000)
