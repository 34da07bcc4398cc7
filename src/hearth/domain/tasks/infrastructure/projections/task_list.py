"""Projection materializing task events into the task list read model.

Consumes every task event from the change feed. One row per task holds a
denormalized copy of its state plus a status index:

- ``task_created`` / ``task_reopened`` -> ``active``
- ``task_completed`` -> ``completed``
- ``task_deleted`` -> NULL, row soft-deleted

Deliveries are at-least-once and may arrive out of order after a partial
batch failure, so ``apply`` is idempotent:

1. An event whose id is not greater than the row's ``last_event_id`` is
   already incorporated and skipped.
2. An event that is not the row's next version reveals a gap; the row is
   rebuilt by replaying the stream from the event store up to the event.
3. The write is conditional on the ``last_event_id`` that was read. A
   concurrent consumer that got there first makes it fail with a transient
   error, and the delivery is retried.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import TYPE_CHECKING, ClassVar

from hearth.domain.tasks.task import apply_event, reconstruct
from hearth.foundation.domain.events import UnknownEvent
from hearth.foundation.domain.exceptions import (
    TransientInfrastructureError,
    UnknownEventKindError,
)
from hearth.infra.eventsourcing.projections.base import BaseProjection
from hearth.infra.eventsourcing.settings import ReplaySettings, get_replay_settings

if TYPE_CHECKING:
    from hearth.domain.tasks.infrastructure.task_projection_repository import (
        TaskProjectionRepository,
    )
    from hearth.domain.tasks.task import TaskState
    from hearth.foundation.domain.events import BaseEvent
    from hearth.foundation.domain.ports import DeadLetterPort
    from hearth.infra.eventsourcing.codec import EventCodec
    from hearth.infra.eventsourcing.event_store import EventStore

logger = logging.getLogger(__name__)


class TaskListProjection(BaseProjection):
    """Maintains the task_projection table.

    Args:
        codec: Task event codec.
        dead_letters: Channel for events that cannot be applied.
        repository: Row storage.
        store: Event store used to fill gaps.
        replay_settings: Unknown event policy applied while filling gaps.
    """

    name: ClassVar[str] = "task_list"

    def __init__(
        self,
        codec: EventCodec,
        dead_letters: DeadLetterPort,
        repository: TaskProjectionRepository,
        store: EventStore,
        replay_settings: ReplaySettings | None = None,
    ) -> None:
        super().__init__(codec, dead_letters)
        self._repo = repository
        self._store = store
        self._replay = replay_settings or get_replay_settings()

    async def apply(self, event: BaseEvent) -> bool:
        if isinstance(event, UnknownEvent):
            raise UnknownEventKindError(
                f"Cannot project unknown event topic {event.topic!r}",
                {"tenant_id": event.tenant_id, "task_id": event.task_id},
            )

        row = await asyncio.to_thread(partial(self._repo.load, event.tenant_id, event.task_id))
        if row is not None and (
            event.event_id <= row.last_event_id or event.originator_version <= row.version
        ):
            return False

        if row is None and event.originator_version == 1:
            new_state = apply_event(None, event)
        elif row is not None and event.originator_version == row.version + 1:
            new_state = apply_event(row, event, self._replay.unknown_event_policy)
        else:
            new_state = await self._fill_gap(row, event)

        saved = await asyncio.to_thread(
            partial(
                self._repo.save,
                new_state,
                row.last_event_id if row is not None else None,
            )
        )
        if not saved:
            raise TransientInfrastructureError(
                "Task row changed concurrently",
                {"tenant_id": event.tenant_id, "task_id": event.task_id},
            )
        return True

    async def erase(self, tenant_id: str, task_id: str) -> bool:
        """Hard-delete a task's row for the erasure flow.

        The events stay in the store; a rebuild would bring the row back.
        """
        erased = await asyncio.to_thread(partial(self._repo.erase, tenant_id, task_id))
        logger.info(
            "task_projection_erased",
            extra={"tenant_id": tenant_id, "task_id": task_id, "erased": erased},
        )
        return erased

    def clear_read_model(self) -> None:
        self._repo.truncate()

    async def _fill_gap(self, row: TaskState | None, event: BaseEvent) -> TaskState:
        after_version = row.version if row is not None else 0
        logger.info(
            "task_projection_gap",
            extra={
                "tenant_id": event.tenant_id,
                "task_id": event.task_id,
                "row_version": after_version,
                "event_version": event.originator_version,
            },
        )
        events = await self._store.read_range(
            event.tenant_id,
            event.task_id,
            after_version=after_version,
            up_to_version=event.originator_version,
        )
        return reconstruct(events, base=row, unknown_policy=self._replay.unknown_event_policy)
