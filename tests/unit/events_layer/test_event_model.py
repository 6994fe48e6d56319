"""
Unit Tests for the Event Model

Tests construction, validation, wire encoding and routing headers.
"""

from datetime import datetime

import orjson
import pytest
from pydantic import ValidationError

from service_hub.core.config.constants import EntityType, EventType
from service_hub.events.models import Event, parse_timestamp, utc_timestamp


@pytest.mark.unit
class TestEventConstruction:

    def test_accepts_wire_names(self):
        event = Event.model_validate(
            {"eventType": "created", "entityType": "user", "entityId": "u1", "userId": "u1"}
        )

        assert event.event_type is EventType.CREATED
        assert event.entity_type is EntityType.USER
        assert event.user_id == "u1"

    def test_timestamp_defaults_to_now(self):
        event = Event(event_type="created", entity_type="user", entity_id="u1")

        assert event.timestamp.endswith("Z")
        assert isinstance(parse_timestamp(event.timestamp), datetime)

    def test_empty_entity_id_rejected(self):
        with pytest.raises(ValidationError):
            Event(event_type="created", entity_type="user", entity_id="")

    def test_unknown_event_type_rejected(self):
        with pytest.raises(ValidationError):
            Event(event_type="archived", entity_type="user", entity_id="u1")

    def test_unparseable_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            Event(event_type="created", entity_type="user", entity_id="u1", timestamp="yesterday")

    def test_event_is_immutable(self, sample_event):
        with pytest.raises(ValidationError):
            sample_event.entity_id = "43"


@pytest.mark.unit
class TestEventWireFormat:

    def test_wire_uses_camel_case(self, sample_event):
        assert sample_event.to_wire() == {
            "eventType": "updated",
            "entityType": "project",
            "entityId": "42",
            "userId": "u-7",
            "tenantId": "t-1",
            "metadata": {"field": "name"},
            "timestamp": "2026-10-02T09:15:00.123Z",
        }

    def test_absent_optionals_are_omitted(self):
        event = Event(event_type="deleted", entity_type="tenant", entity_id="t-9")

        assert set(event.to_wire()) == {"eventType", "entityType", "entityId", "timestamp"}

    def test_json_decodes_to_equal_event(self, sample_event):
        decoded = Event.from_json(sample_event.to_json())

        assert decoded == sample_event

    def test_from_json_rejects_garbage(self):
        with pytest.raises(orjson.JSONDecodeError):
            Event.from_json(b"not json")


@pytest.mark.unit
class TestEventHeaders:

    def test_headers(self, sample_event):
        assert sample_event.headers() == {
            "eventType": "updated",
            "entityType": "project",
            "tenantId": "t-1",
        }

    def test_tenant_header_defaults(self):
        event = Event(event_type="login", entity_type="user", entity_id="u1")

        assert event.headers()["tenantId"] == "default"

    def test_timestamp_ms(self, sample_event):
        expected = int(parse_timestamp("2026-10-02T09:15:00.123Z").timestamp() * 1000)

        assert sample_event.timestamp_ms() == expected


@pytest.mark.unit
def test_utc_timestamp_has_millisecond_precision():
    value = utc_timestamp()

    # 2026-10-02T09:15:00.123Z
    assert len(value.split(".")[-1]) == 4
