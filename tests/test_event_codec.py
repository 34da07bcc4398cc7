"""Tests for the event codec: topics, upcasting and unknown kinds."""

from __future__ import annotations

import json
from dataclasses import replace
from typing import TYPE_CHECKING

import pytest
from eventsourcing.persistence import StoredEvent

from hearth.domain.tasks.events import TaskCompleted, TaskCreated
from hearth.domain.tasks.infrastructure.event_codec import upcast_task_created_v1
from hearth.foundation.domain.events import UnknownEvent
from hearth.foundation.domain.exceptions import MalformedEventError, ValidationError
from hearth.infra.eventsourcing.codec import EventCodec, parse_topic

if TYPE_CHECKING:
    from conftest import EventFactory


@pytest.mark.unit
class TestParseTopic:
    def test_valid(self) -> None:
        assert parse_topic("task_created.v2") == ("task_created", 2)

    @pytest.mark.parametrize("topic", ["task_created", "task_created.vx", "hearth.tasks:TaskCreated"])
    def test_invalid(self, topic: str) -> None:
        assert parse_topic(topic) is None


@pytest.mark.unit
class TestEncodeDecode:
    def test_round_trip_preserves_event(self, codec: EventCodec, events: EventFactory) -> None:
        created = events.created(description="Blue bin", tags=("chores",), correlation_id="req-1")
        decoded = codec.decode(codec.encode(created))
        assert decoded == created

    def test_topic_is_kind_and_schema(self, codec: EventCodec, events: EventFactory) -> None:
        stored = codec.encode(events.created())
        assert stored.topic == "task_created.v2"
        assert stored.originator_version == 1

    def test_encode_unregistered_kind(self, events: EventFactory) -> None:
        codec = EventCodec([TaskCreated])
        events.created()
        with pytest.raises(ValidationError):
            codec.encode(events.completed())

    def test_duplicate_kind(self) -> None:
        class ImpostorCreated(TaskCreated):
            pass

        codec = EventCodec([TaskCreated])
        codec.register(TaskCreated)
        with pytest.raises(ValueError, match="task_created"):
            codec.register(ImpostorCreated)


@pytest.mark.unit
class TestUpcasting:
    def test_created_v1_gains_empty_tags(self, codec: EventCodec, events: EventFactory) -> None:
        stored = codec.encode(events.created(tags=("x",)))
        data = json.loads(stored.state)
        del data["tags"]
        v1 = replace(stored, topic="task_created.v1", state=json.dumps(data).encode())

        decoded = codec.decode(v1)

        assert isinstance(decoded, TaskCreated)
        assert decoded.tags == ()

    def test_missing_upcaster_step(self, events: EventFactory) -> None:
        codec = EventCodec([TaskCreated])
        stored = replace(codec.encode(events.created()), topic="task_created.v1")
        with pytest.raises(MalformedEventError, match="No upcaster"):
            codec.decode(stored)


@pytest.mark.unit
class TestUnknownAndMalformed:
    def test_unknown_kind_decodes_to_placeholder(
        self, codec: EventCodec, events: EventFactory
    ) -> None:
        events.created()
        stored = events.stored_unknown(codec, topic="task_archived.v1")

        decoded = codec.decode(stored)

        assert isinstance(decoded, UnknownEvent)
        assert decoded.topic == "task_archived.v1"
        assert decoded.originator_version == 2
        assert decoded.task_id == events.task_id

    def test_newer_schema_decodes_to_placeholder(
        self, codec: EventCodec, events: EventFactory
    ) -> None:
        stored = replace(codec.encode(events.created()), topic="task_created.v3")
        assert isinstance(codec.decode(stored), UnknownEvent)

    def test_undecodable_state(self, codec: EventCodec, events: EventFactory) -> None:
        stored = replace(codec.encode(events.created()), state=b"not json")
        with pytest.raises(MalformedEventError):
            codec.decode(stored)

    def test_missing_envelope_field(self, codec: EventCodec, events: EventFactory) -> None:
        stored = codec.encode(events.created())
        broken = StoredEvent(
            originator_id=stored.originator_id,
            originator_version=1,
            topic=TaskCompleted.get_topic(),
            state=b'{"tenant_id": "smith-family"}',
        )
        with pytest.raises(MalformedEventError, match="lacks"):
            codec.decode(broken)

    def test_invalid_payload(self, codec: EventCodec, events: EventFactory) -> None:
        stored = codec.encode(events.created())
        broken = replace(stored, state=stored.state.replace(b'"smith-family"', b'"Smith Family"'))
        with pytest.raises(MalformedEventError, match="TaskCreated"):
            codec.decode(broken)

    def test_payload_breaking_task_rules(self, codec: EventCodec, events: EventFactory) -> None:
        stored = codec.encode(events.created())
        data = json.loads(stored.state)
        data["title"] = "   "
        broken = replace(stored, state=json.dumps(data).encode())
        with pytest.raises(MalformedEventError, match="title"):
            codec.decode(broken)


@pytest.mark.unit
class TestTaskCreatedUpcaster:
    def test_adds_missing_tags(self) -> None:
        assert upcast_task_created_v1({"title": "Shop"}) == {"title": "Shop", "tags": []}

    def test_keeps_existing_tags(self) -> None:
        assert upcast_task_created_v1({"tags": ["x"]})["tags"] == ["x"]
