"""Command processor for the Task aggregate.

Every command runs the same cycle:

1. Load the task (latest snapshot plus the events after it).
2. Validate the command against the acting user's membership, its inputs
   and the task's current state.
3. Mint event ids that sort after the stream's last event.
4. Append under a version guard at the loaded version.

A ``VersionConflictError`` from the append means another writer got there
first; the whole cycle runs again on fresh state with jittered exponential
backoff. When the attempts run out the caller gets a
``ConcurrencyConflictError``. No other error is retried here. A corrupt
or undecodable stream is logged and the task flagged for manual inspection.

The processor holds no per-task state; any number of them may serve the
same streams concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from structlog.contextvars import bound_contextvars
from tenacity import RetryError

from hearth.domain.tasks.commands import (
    CommandResult,
    CompleteTask,
    CreateTask,
    DeleteTask,
    ExistingTaskCommand,
    ReopenTask,
    TaskCommand,
    UpdateTask,
)
from hearth.domain.tasks.events import (
    TaskCompleted,
    TaskCreated,
    TaskDeleted,
    TaskReopened,
    TaskUpdated,
)
from hearth.domain.tasks.value_objects import (
    DeletionReason,
    TaskDescription,
    TaskTags,
    TaskTitle,
)
from hearth.foundation.application.context import get_optional_correlation_id
from hearth.foundation.domain.exceptions import (
    AuthorizationError,
    ConcurrencyConflictError,
    ConflictError,
    CorruptStreamError,
    InvalidStateTransitionError,
    MalformedEventError,
    NotFoundError,
    ValidationError,
)
from hearth.foundation.domain.ports import QuarantinedStream
from hearth.foundation.domain.identifiers import (
    TenantId,
    new_event_id,
    new_ulid,
    parse_ulid,
    stream_id,
)
from hearth.infra.eventsourcing.retry import version_conflict_retrying
from hearth.infra.eventsourcing.settings import CommandRetrySettings, get_command_retry_settings

if TYPE_CHECKING:
    from hearth.domain.tasks.infrastructure.snapshot_manager import SnapshotManager
    from hearth.domain.tasks.task import TaskState
    from hearth.foundation.domain.events import BaseEvent
    from hearth.foundation.domain.ports import StreamQuarantinePort, TenantMembershipPort
    from hearth.infra.eventsourcing.event_store import EventStore

logger = logging.getLogger(__name__)

TENANT_ID_MAX_LENGTH = 63


def _check_identity(command: TaskCommand) -> None:
    if not 2 <= len(command.tenant_id) <= TENANT_ID_MAX_LENGTH:
        raise ValidationError("tenant_id", "must be 2-63 characters")
    try:
        TenantId(command.tenant_id)
    except ValueError as exc:
        raise ValidationError("tenant_id", str(exc)) from exc
    if not command.user_id or not command.user_id.strip():
        raise ValidationError("user_id", "must not be empty")


class TaskCommandProcessor:
    """Handles task commands against the event store.

    Args:
        store: Event store, the sole arbiter of stream versions.
        snapshots: Loader of current task state.
        membership: Answers whether a user belongs to a tenant.
        retry_settings: Optimistic-lock retry policy.
        quarantine: Where aggregates with a corrupt stream are flagged.
    """

    def __init__(
        self,
        store: EventStore,
        snapshots: SnapshotManager,
        membership: TenantMembershipPort,
        retry_settings: CommandRetrySettings | None = None,
        quarantine: StreamQuarantinePort | None = None,
    ) -> None:
        self._store = store
        self._snapshots = snapshots
        self._membership = membership
        self._retry_settings = retry_settings or get_command_retry_settings()
        self._quarantine = quarantine

    async def handle(self, command: TaskCommand) -> CommandResult:
        """Validate a command and append its events.

        Raises:
            AuthorizationError: The user is not a member of the tenant.
            ValidationError: Malformed identifiers or input.
            NotFoundError: The task does not exist or is deleted.
            InvalidStateTransitionError: The task's state forbids the command.
            ConcurrencyConflictError: ``expected_version`` did not match, or
                every retry lost a version race.
            CorruptStreamError: The stored stream cannot be folded. The task
                is logged and flagged on the quarantine before re-raising.
            MalformedEventError: A stored event cannot be decoded; handled
                like a corrupt stream.
            TransientInfrastructureError: Storage is unavailable.
        """
        _check_identity(command)
        correlation_id = command.correlation_id or get_optional_correlation_id()
        with bound_contextvars(
            correlation_id=correlation_id,
            tenant_id=command.tenant_id,
            user_id=command.user_id,
        ):
            if not await self._membership.is_member(command.tenant_id, command.user_id):
                raise AuthorizationError(
                    "User is not a member of this family",
                    {"tenant_id": command.tenant_id, "user_id": command.user_id},
                )

            attempts = 0
            try:
                async for attempt in version_conflict_retrying(self._retry_settings):
                    with attempt:
                        attempts = attempt.retry_state.attempt_number
                        result = await self._run_cycle(command, correlation_id)
            except (CorruptStreamError, MalformedEventError) as exc:
                await self._flag_corrupt(command, exc)
                raise
            except RetryError as exc:
                task_id = getattr(command, "task_id", None)
                logger.warning(
                    "task_command_conflict_exhausted",
                    extra={"task_id": task_id, "attempts": attempts},
                )
                raise ConcurrencyConflictError(
                    "Task was modified concurrently; retry with fresh data",
                    task_id=task_id,
                    attempts=attempts,
                ) from exc.last_attempt.exception()

            logger.info(
                "task_command_handled",
                extra={
                    "command": type(command).__name__,
                    "task_id": result.task_id,
                    "version": result.version,
                    "attempts": attempts,
                },
            )
            return result

    async def _flag_corrupt(
        self,
        command: TaskCommand,
        error: CorruptStreamError | MalformedEventError,
    ) -> None:
        task_id = getattr(command, "task_id", None)
        logger.error(
            "task_stream_corrupt",
            extra={
                "tenant_id": command.tenant_id,
                "task_id": task_id,
                "error_code": error.error_code,
                "error": error.message,
            },
        )
        if self._quarantine is None or task_id is None:
            return
        entry = QuarantinedStream(
            tenant_id=command.tenant_id,
            aggregate_id=task_id,
            error_code=error.error_code,
            error_message=error.message,
        )
        await asyncio.to_thread(self._quarantine.flag, entry)

    async def _run_cycle(self, command: TaskCommand, correlation_id: str | None) -> CommandResult:
        if isinstance(command, CreateTask):
            return await self._create(command, correlation_id)
        if isinstance(command, ExistingTaskCommand):
            return await self._change(command, correlation_id)
        raise ValidationError("command", f"unsupported command {type(command).__name__}")

    async def _create(self, command: CreateTask, correlation_id: str | None) -> CommandResult:
        if command.task_id is not None:
            parse_ulid(command.task_id, field="task_id")
        task_id = command.task_id or new_ulid()
        title = TaskTitle(command.title)
        description = TaskDescription(command.description)
        tags = TaskTags(command.tags)

        if await self._store.current_version(command.tenant_id, task_id) != 0:
            raise ConflictError("Task already exists", task_id=task_id)

        event = TaskCreated(
            **self._envelope(command, task_id, None, correlation_id),
            title=title.value,
            description=description.value,
            tags=tags.values,
        )
        return await self._append(command.tenant_id, task_id, 0, event)

    async def _change(
        self,
        command: ExistingTaskCommand,
        correlation_id: str | None,
    ) -> CommandResult:
        parse_ulid(command.task_id, field="task_id")
        state = await self._snapshots.load(command.tenant_id, command.task_id)
        if state is None or state.deleted:
            raise NotFoundError("Task", command.task_id, tenant_id=command.tenant_id)
        if command.expected_version is not None and command.expected_version != state.version:
            raise ConcurrencyConflictError(
                "Task version does not match the expected version",
                task_id=command.task_id,
                expected_version=command.expected_version,
                actual_version=state.version,
            )

        envelope = self._envelope(command, command.task_id, state, correlation_id)
        event = self._decide(command, state, envelope)
        return await self._append(command.tenant_id, command.task_id, state.version, event)

    def _decide(
        self,
        command: ExistingTaskCommand,
        state: TaskState,
        envelope: dict[str, Any],
    ) -> BaseEvent:
        match command:
            case UpdateTask():
                if command.title is None and command.description is None and command.tags is None:
                    raise ValidationError("command", "nothing to update")
                return TaskUpdated(
                    **envelope,
                    title=TaskTitle(command.title).value if command.title is not None else None,
                    description=(
                        (TaskDescription(command.description).value or "")
                        if command.description is not None
                        else None
                    ),
                    tags=TaskTags(command.tags).values if command.tags is not None else None,
                )
            case CompleteTask():
                if state.completed:
                    raise InvalidStateTransitionError(
                        "Task is already completed",
                        task_id=state.task_id,
                        current_state=state.status.value,
                    )
                return TaskCompleted(**envelope)
            case ReopenTask():
                if not state.completed:
                    raise InvalidStateTransitionError(
                        "Only completed tasks can be reopened",
                        task_id=state.task_id,
                        current_state=state.status.value,
                    )
                return TaskReopened(**envelope)
            case DeleteTask():
                return TaskDeleted(**envelope, reason=DeletionReason(command.reason).value)
            case _:
                raise ValidationError("command", f"unsupported command {type(command).__name__}")

    def _envelope(
        self,
        command: TaskCommand,
        task_id: str,
        state: TaskState | None,
        correlation_id: str | None,
    ) -> dict[str, Any]:
        return {
            "originator_id": stream_id(command.tenant_id, task_id),
            "originator_version": (state.version if state is not None else 0) + 1,
            "timestamp": datetime.now(UTC),
            "tenant_id": command.tenant_id,
            "task_id": task_id,
            "event_id": new_event_id(after=state.last_event_id if state is not None else None),
            "user_id": command.user_id,
            "correlation_id": correlation_id,
        }

    async def _append(
        self,
        tenant_id: str,
        task_id: str,
        expected_version: int,
        event: BaseEvent,
    ) -> CommandResult:
        result = await self._store.append(tenant_id, task_id, expected_version, [event])
        return CommandResult(
            task_id=task_id,
            event_ids=(event.event_id,),
            version=result.new_version,
        )
