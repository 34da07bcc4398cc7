"""Task aggregate state and its reconstruction from events.

A task is never mutated in place. Its current state is the left fold of its
event stream, optionally started from a snapshot::

    state = reconstruct(events)                       # from genesis
    state = reconstruct(delta, base=snapshot.state)   # from a snapshot

Lifecycle::

                 complete
        ACTIVE -----------> COMPLETED
          ^                     |
          +-------reopen--------+
          |                     |
          +--delete--> DELETED <+ delete   (terminal, tombstone)

Stream rules enforced during the fold (violations raise
``CorruptStreamError``):

- the first event of a stream is ``task_created``, and only the first;
- every event carries ``originator_version == state.version + 1``;
- every event belongs to the same tenant and task;
- nothing follows a ``task_deleted`` tombstone.

The fold never catches errors raised while applying an event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime  # noqa: TC003
from typing import TYPE_CHECKING

from hearth.domain.tasks.events import (
    TaskCompleted,
    TaskCreated,
    TaskDeleted,
    TaskReopened,
    TaskUpdated,
)
from hearth.domain.tasks.value_objects import TaskStatus
from hearth.foundation.domain.events import UnknownEvent, UnknownEventPolicy
from hearth.foundation.domain.exceptions import CorruptStreamError, UnknownEventKindError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from hearth.foundation.domain.events import BaseEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TaskState:
    """Current state of one task.

    Attributes:
        version: Stream position of the last incorporated event, which is
            also the number of events since genesis.
        last_event_id: ULID of the last incorporated event. New events of
            this stream must sort after it.
    """

    tenant_id: str
    task_id: str
    title: str
    description: str | None
    tags: tuple[str, ...]
    completed: bool
    deleted: bool
    created_by: str
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None
    deleted_at: datetime | None
    version: int
    last_event_id: str

    @property
    def status(self) -> TaskStatus:
        if self.deleted:
            return TaskStatus.DELETED
        if self.completed:
            return TaskStatus.COMPLETED
        return TaskStatus.ACTIVE


def reconstruct(
    events: Iterable[BaseEvent],
    base: TaskState | None = None,
    *,
    unknown_policy: UnknownEventPolicy = UnknownEventPolicy.SKIP,
) -> TaskState:
    """Fold events into a task state.

    Args:
        events: Events in stream order. Without ``base`` they must start at
            the beginning of the stream; with it, right after ``base.version``.
        base: State to start from, typically a snapshot.
        unknown_policy: What to do with events of a kind this code base does
            not know.

    Returns:
        The state after the last event, or ``base`` if ``events`` is empty.

    Raises:
        CorruptStreamError: The stream breaks one of its structural rules,
            or there is neither a base nor any event.
        UnknownEventKindError: An unknown event kind met ``REJECT``.
    """
    state = base
    for event in events:
        state = apply_event(state, event, unknown_policy)
    if state is None:
        raise CorruptStreamError("Cannot reconstruct a task from an empty stream")
    return state


def apply_event(
    state: TaskState | None,
    event: BaseEvent,
    unknown_policy: UnknownEventPolicy = UnknownEventPolicy.SKIP,
) -> TaskState:
    """Apply one event to a state (``None`` before genesis)."""
    if state is None:
        return _genesis(event)

    _check_continuity(state, event)

    match event:
        case TaskCreated():
            raise CorruptStreamError(
                "task_created after genesis",
                _where(event),
            )
        case TaskUpdated():
            return _advance(
                state,
                event,
                title=event.title if event.title is not None else state.title,
                description=(
                    state.description
                    if event.description is None
                    else (event.description or None)
                ),
                tags=event.tags if event.tags is not None else state.tags,
                updated_at=event.timestamp,
            )
        case TaskCompleted():
            if state.completed:
                return _advance(state, event)
            return _advance(
                state,
                event,
                completed=True,
                completed_at=event.timestamp,
                updated_at=event.timestamp,
            )
        case TaskReopened():
            if not state.completed:
                return _advance(state, event)
            return _advance(
                state,
                event,
                completed=False,
                completed_at=None,
                updated_at=event.timestamp,
            )
        case TaskDeleted():
            return _advance(
                state,
                event,
                deleted=True,
                deleted_at=event.timestamp,
                updated_at=event.timestamp,
            )
        case UnknownEvent():
            if unknown_policy is UnknownEventPolicy.REJECT:
                raise UnknownEventKindError(
                    f"Unknown event topic {event.topic!r}",
                    _where(event),
                )
            logger.warning(
                "replay_unknown_event_skipped",
                extra={"topic": event.topic, **_where(event)},
            )
            return _advance(state, event)
        case _:
            raise CorruptStreamError(
                f"{type(event).__name__} does not belong to a task stream",
                _where(event),
            )


def _genesis(event: BaseEvent) -> TaskState:
    if not isinstance(event, TaskCreated):
        raise CorruptStreamError(
            f"Stream starts with {event.kind}, expected task_created",
            _where(event),
        )
    if event.originator_version != 1:
        raise CorruptStreamError(
            f"Stream starts at version {event.originator_version}, expected 1",
            _where(event),
        )
    return TaskState(
        tenant_id=event.tenant_id,
        task_id=event.task_id,
        title=event.title,
        description=event.description,
        tags=tuple(event.tags),
        completed=False,
        deleted=False,
        created_by=event.user_id,
        created_at=event.timestamp,
        updated_at=event.timestamp,
        completed_at=None,
        deleted_at=None,
        version=1,
        last_event_id=event.event_id,
    )


def _check_continuity(state: TaskState, event: BaseEvent) -> None:
    if event.tenant_id != state.tenant_id or event.task_id != state.task_id:
        raise CorruptStreamError(
            "Event belongs to another aggregate",
            {**_where(event), "stream_tenant_id": state.tenant_id, "stream_task_id": state.task_id},
        )
    if event.originator_version != state.version + 1:
        raise CorruptStreamError(
            f"Expected version {state.version + 1}, got {event.originator_version}",
            _where(event),
        )
    if state.deleted:
        raise CorruptStreamError("Event after task_deleted tombstone", _where(event))


def _advance(state: TaskState, event: BaseEvent, **changes: object) -> TaskState:
    return replace(
        state,
        version=event.originator_version,
        last_event_id=event.event_id,
        **changes,
    )


def _where(event: BaseEvent) -> dict[str, object]:
    return {
        "tenant_id": event.tenant_id,
        "task_id": event.task_id,
        "event_id": event.event_id,
        "version": event.originator_version,
    }
