"""Commands accepted by the task command processor.

Commands are plain immutable requests. The processor validates them
against the loaded task state; constructing one never fails.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, kw_only=True)
class TaskCommand:
    """Fields shared by every task command.

    Attributes:
        tenant_id: Family the task belongs to.
        user_id: Acting user. Must be a member of the tenant.
        correlation_id: Request identifier propagated onto the events.
    """

    tenant_id: str
    user_id: str
    correlation_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class CreateTask(TaskCommand):
    """Create a task. ``task_id`` is minted when not supplied."""

    title: str
    description: str | None = None
    tags: tuple[str, ...] = ()
    task_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class ExistingTaskCommand(TaskCommand):
    """Command on an existing task.

    Attributes:
        expected_version: Version the caller last saw. When set, a mismatch
            with the stored version fails at once instead of retrying.
    """

    task_id: str
    expected_version: int | None = None


@dataclass(frozen=True, kw_only=True)
class UpdateTask(ExistingTaskCommand):
    """Change title, description or tags. ``None`` leaves a field as is."""

    title: str | None = None
    description: str | None = None
    tags: tuple[str, ...] | None = None


@dataclass(frozen=True, kw_only=True)
class CompleteTask(ExistingTaskCommand):
    pass


@dataclass(frozen=True, kw_only=True)
class ReopenTask(ExistingTaskCommand):
    pass


@dataclass(frozen=True, kw_only=True)
class DeleteTask(ExistingTaskCommand):
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of a handled command.

    Attributes:
        task_id: Aggregate the command acted on.
        event_ids: Identifiers of the appended events, in order.
        version: Stream version after the append.
    """

    task_id: str
    event_ids: tuple[str, ...]
    version: int
