"""Hearth tasks bounded context: event-sourced family tasks.

Write side: :class:`TaskCommandProcessor` handles commands and appends
events. Read side: :class:`TaskQueryService` over the task list projection.
"""

from hearth.domain.tasks.commands import (
    CommandResult,
    CompleteTask,
    CreateTask,
    DeleteTask,
    ReopenTask,
    UpdateTask,
)
from hearth.domain.tasks.events import (
    TASK_EVENT_TYPES,
    EventKind,
    TaskCompleted,
    TaskCreated,
    TaskDeleted,
    TaskReopened,
    TaskUpdated,
)
from hearth.domain.tasks.queries import TaskQueryService, TaskView
from hearth.domain.tasks.task import TaskState, apply_event, reconstruct
from hearth.domain.tasks.task_app import TaskCommandProcessor
from hearth.domain.tasks.value_objects import TaskStatus

__all__ = [
    "TASK_EVENT_TYPES",
    "CommandResult",
    "CompleteTask",
    "CreateTask",
    "DeleteTask",
    "EventKind",
    "ReopenTask",
    "TaskCommandProcessor",
    "TaskCompleted",
    "TaskCreated",
    "TaskDeleted",
    "TaskQueryService",
    "TaskReopened",
    "TaskState",
    "TaskStatus",
    "TaskUpdated",
    "TaskView",
    "UpdateTask",
    "apply_event",
    "reconstruct",
]
