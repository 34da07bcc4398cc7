"""Codec for the task event stream.

Registers every task event kind and the upcasters that lift historical
schemas to the current ones.
"""

from __future__ import annotations

from typing import Any

from hearth.domain.tasks.events import TASK_EVENT_TYPES, EventKind
from hearth.infra.eventsourcing.codec import EventCodec


def upcast_task_created_v1(data: dict[str, Any]) -> dict[str, Any]:
    """task_created v1 had no tags."""
    return {**data, "tags": data.get("tags") or []}


def build_task_event_codec() -> EventCodec:
    """Codec with all task event kinds and their upcasters registered."""
    codec = EventCodec(TASK_EVENT_TYPES)
    codec.add_upcaster(EventKind.TASK_CREATED.value, 1, upcast_task_created_v1)
    return codec
