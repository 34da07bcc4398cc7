"""Read side of the tasks bounded context.

Task lookups and lists read the task list projection; their results lag
writes by the change feed delay. A task's history is the one query served
from the event store, so it is always current.
"""

from __future__ import annotations

import asyncio
from datetime import datetime  # noqa: TC003
from functools import partial
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from hearth.domain.tasks.value_objects import TaskStatus
from hearth.foundation.domain.exceptions import NotFoundError, ValidationError
from hearth.foundation.domain.identifiers import parse_ulid

if TYPE_CHECKING:
    from hearth.domain.tasks.infrastructure.task_projection_repository import (
        TaskProjectionRepository,
    )
    from hearth.domain.tasks.task import TaskState
    from hearth.foundation.domain.events import BaseEvent
    from hearth.infra.eventsourcing.event_store import EventStore

MAX_PAGE_SIZE = 200


class TaskView(BaseModel):
    """A task as presented to family members."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    tenant_id: str
    title: str
    description: str | None
    tags: list[str]
    status: TaskStatus
    created_by: str
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None
    version: int

    @classmethod
    def from_state(cls, state: TaskState) -> TaskView:
        return cls(
            task_id=state.task_id,
            tenant_id=state.tenant_id,
            title=state.title,
            description=state.description,
            tags=list(state.tags),
            status=state.status,
            created_by=state.created_by,
            created_at=state.created_at,
            updated_at=state.updated_at,
            completed_at=state.completed_at,
            version=state.version,
        )


class TaskEventView(BaseModel):
    """One entry of a task's history."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    kind: str
    version: int
    timestamp: datetime
    user_id: str
    correlation_id: str | None
    data: dict[str, Any]

    @classmethod
    def from_event(cls, event: BaseEvent) -> TaskEventView:
        return cls(
            event_id=event.event_id,
            kind=event.kind,
            version=event.originator_version,
            timestamp=event.timestamp,
            user_id=event.user_id,
            correlation_id=event.correlation_id,
            data=event.payload(),
        )


class TaskQueryService:
    """Reads tasks from the task list projection and their history from the store.

    Args:
        repository: Projection row storage.
        store: Event store, read for task histories.
    """

    def __init__(self, repository: TaskProjectionRepository, store: EventStore) -> None:
        self._repo = repository
        self._store = store

    async def get(self, tenant_id: str, task_id: str) -> TaskView:
        """One visible task.

        Raises:
            NotFoundError: No such task in the tenant, or it was deleted.
        """
        state = await asyncio.to_thread(partial(self._repo.load, tenant_id, task_id))
        if state is None or state.deleted:
            raise NotFoundError("Task", task_id, tenant_id=tenant_id)
        return TaskView.from_state(state)

    async def history(self, tenant_id: str, task_id: str) -> list[TaskEventView]:
        """Every event of a task, oldest first, including its deletion.

        Raises:
            ValidationError: ``task_id`` is not a ULID.
            NotFoundError: The tenant has no stream for the task.
        """
        parse_ulid(task_id, field="task_id")
        events = await self._store.read(tenant_id, task_id)
        if not events:
            raise NotFoundError("Task", task_id, tenant_id=tenant_id)
        return [TaskEventView.from_event(event) for event in events]

    async def list_all(
        self,
        tenant_id: str,
        limit: int = 50,
        after: str | None = None,
    ) -> list[TaskView]:
        """Active and completed tasks together, newest first."""
        return await self._list(tenant_id, None, limit, after)

    async def list_active(
        self,
        tenant_id: str,
        limit: int = 50,
        after: str | None = None,
    ) -> list[TaskView]:
        """Active tasks, newest first.

        Args:
            after: Task id of the last item of the previous page.
        """
        return await self._list(tenant_id, TaskStatus.ACTIVE, limit, after)

    async def list_completed(
        self,
        tenant_id: str,
        limit: int = 50,
        after: str | None = None,
    ) -> list[TaskView]:
        """Completed tasks, newest first."""
        return await self._list(tenant_id, TaskStatus.COMPLETED, limit, after)

    async def _list(
        self,
        tenant_id: str,
        status: TaskStatus | None,
        limit: int,
        after: str | None,
    ) -> list[TaskView]:
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError("limit", f"must be between 1 and {MAX_PAGE_SIZE}")
        states = await asyncio.to_thread(
            partial(self._repo.list_by_status, tenant_id, status, limit, after)
        )
        return [TaskView.from_state(state) for state in states]
