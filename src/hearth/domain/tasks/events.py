"""Task lifecycle events.

Every change to a task is one of the kinds below. Payload fields that a
later schema adds get a default or an upcaster on the task event codec
(``hearth.domain.tasks.infrastructure.event_codec``).

Payloads are checked against the task value objects on construction, so an
event that reaches the event store always satisfies the same rules as the
commands that produce it. A violation raises ``ValidationError``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, ClassVar

from hearth.domain.tasks.value_objects import (
    DeletionReason,
    TaskDescription,
    TaskTags,
    TaskTitle,
)
from hearth.foundation.domain.events import BaseEvent


class EventKind(StrEnum):
    """Closed set of task event kinds."""

    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_COMPLETED = "task_completed"
    TASK_REOPENED = "task_reopened"
    TASK_DELETED = "task_deleted"


class TaskCreated(BaseEvent):
    """A task came into existence.

    Schema v2 added ``tags``; v1 records are upcast with an empty list.
    """

    kind: ClassVar[str] = EventKind.TASK_CREATED.value
    schema_version: ClassVar[int] = 2

    title: str = ""
    description: str | None = None
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "title", TaskTitle(self.title).value)
        object.__setattr__(self, "description", TaskDescription(self.description).value)
        object.__setattr__(self, "tags", TaskTags(self.tags).values)

    def payload(self) -> dict[str, Any]:
        return {"title": self.title, "description": self.description, "tags": list(self.tags)}


class TaskUpdated(BaseEvent):
    """Some of title, description or tags changed.

    ``None`` leaves a field unchanged; an empty ``description`` clears it.
    """

    kind: ClassVar[str] = EventKind.TASK_UPDATED.value

    title: str | None = None
    description: str | None = None
    tags: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.title is not None:
            object.__setattr__(self, "title", TaskTitle(self.title).value)
        if self.description is not None:
            object.__setattr__(
                self, "description", TaskDescription(self.description).value or ""
            )
        if self.tags is not None:
            object.__setattr__(self, "tags", TaskTags(self.tags).values)

    def payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags) if self.tags is not None else None,
        }


class TaskCompleted(BaseEvent):
    kind: ClassVar[str] = EventKind.TASK_COMPLETED.value


class TaskReopened(BaseEvent):
    """A completed task became active again."""

    kind: ClassVar[str] = EventKind.TASK_REOPENED.value


class TaskDeleted(BaseEvent):
    """Tombstone. No event may follow it in the stream."""

    kind: ClassVar[str] = EventKind.TASK_DELETED.value

    reason: str | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        DeletionReason(self.reason)

    def payload(self) -> dict[str, Any]:
        return {"reason": self.reason}


TASK_EVENT_TYPES: tuple[type[BaseEvent], ...] = (
    TaskCreated,
    TaskUpdated,
    TaskCompleted,
    TaskReopened,
    TaskDeleted,
)
