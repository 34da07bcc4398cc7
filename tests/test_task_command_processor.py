"""Tests for the task command processor."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest

from hearth.domain.tasks.commands import (
    CompleteTask,
    CreateTask,
    DeleteTask,
    ReopenTask,
    UpdateTask,
)
from hearth.domain.tasks.events import TaskCompleted, TaskCreated, TaskUpdated
from hearth.foundation.application.context import clear_request_context, set_request_context
from hearth.foundation.domain.exceptions import (
    AuthorizationError,
    ConcurrencyConflictError,
    ConflictError,
    CorruptStreamError,
    InvalidStateTransitionError,
    NotFoundError,
    TransientInfrastructureError,
    ValidationError,
    VersionConflictError,
)
from hearth.foundation.domain.identifiers import new_ulid

if TYPE_CHECKING:
    from conftest import EventFactory

    from hearth.domain.tasks.bootstrap import TaskServices

TENANT = "smith-family"


async def _create(services: TaskServices, **kwargs: Any) -> str:
    command = CreateTask(tenant_id=TENANT, user_id="alice", title="Water plants", **kwargs)
    return (await services.processor.handle(command)).task_id


@pytest.mark.integration
class TestCreate:
    @pytest.mark.asyncio
    async def test_create_appends_first_event(self, services: TaskServices) -> None:
        result = await services.processor.handle(
            CreateTask(
                tenant_id=TENANT,
                user_id="alice",
                title="  Water plants ",
                tags=("garden", "garden", "weekly"),
                correlation_id="req-1",
            )
        )

        assert result.version == 1
        [event] = await services.store.read(TENANT, result.task_id)
        assert isinstance(event, TaskCreated)
        assert event.title == "Water plants"
        assert event.tags == ("garden", "weekly")
        assert event.user_id == "alice"
        assert event.correlation_id == "req-1"
        assert result.event_ids == (event.event_id,)

    @pytest.mark.asyncio
    async def test_correlation_id_from_request_context(self, services: TaskServices) -> None:
        token = set_request_context(TENANT, "alice", "req-ctx")
        try:
            task_id = await _create(services)
        finally:
            clear_request_context(token)

        [event] = await services.store.read(TENANT, task_id)
        assert event.correlation_id == "req-ctx"

    @pytest.mark.asyncio
    async def test_supplied_id_cannot_be_reused(self, services: TaskServices) -> None:
        task_id = new_ulid()
        await _create(services, task_id=task_id)

        with pytest.raises(ConflictError, match="already exists"):
            await _create(services, task_id=task_id)

    @pytest.mark.asyncio
    async def test_malformed_task_id(self, services: TaskServices) -> None:
        with pytest.raises(ValidationError):
            await _create(services, task_id="not-a-ulid")

    @pytest.mark.asyncio
    async def test_blank_title(self, services: TaskServices) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await services.processor.handle(CreateTask(tenant_id=TENANT, user_id="alice", title=" "))
        assert exc_info.value.field == "title"


@pytest.mark.integration
class TestAuthorization:
    @pytest.mark.asyncio
    async def test_non_member_is_rejected(self, services: TaskServices) -> None:
        task_id = new_ulid()

        with pytest.raises(AuthorizationError):
            await services.processor.handle(
                CreateTask(tenant_id=TENANT, user_id="mallory", title="x", task_id=task_id)
            )

        assert await services.store.current_version(TENANT, task_id) == 0

    @pytest.mark.asyncio
    async def test_member_of_another_family(self, services: TaskServices) -> None:
        task_id = await _create(services)

        with pytest.raises(AuthorizationError):
            await services.processor.handle(
                CompleteTask(tenant_id="jones-family", user_id="alice", task_id=task_id)
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tenant_id", ["s", "Smith Family", "-smith"])
    async def test_invalid_tenant(self, services: TaskServices, tenant_id: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await services.processor.handle(CreateTask(tenant_id=tenant_id, user_id="alice", title="x"))
        assert exc_info.value.field == "tenant_id"

    @pytest.mark.asyncio
    async def test_blank_user(self, services: TaskServices) -> None:
        with pytest.raises(ValidationError):
            await services.processor.handle(CreateTask(tenant_id=TENANT, user_id=" ", title="x"))


@pytest.mark.integration
class TestLifecycle:
    @pytest.mark.asyncio
    async def test_complete_and_reopen(self, services: TaskServices) -> None:
        task_id = await _create(services)

        completed = await services.processor.handle(
            CompleteTask(tenant_id=TENANT, user_id="bob", task_id=task_id)
        )
        reopened = await services.processor.handle(
            ReopenTask(tenant_id=TENANT, user_id="alice", task_id=task_id)
        )

        assert (completed.version, reopened.version) == (2, 3)
        stream = await services.store.read(TENANT, task_id)
        assert isinstance(stream[1], TaskCompleted)
        assert stream[1].user_id == "bob"
        assert stream[0].event_id < stream[1].event_id < stream[2].event_id

    @pytest.mark.asyncio
    async def test_complete_twice(self, services: TaskServices) -> None:
        task_id = await _create(services)
        command = CompleteTask(tenant_id=TENANT, user_id="alice", task_id=task_id)
        await services.processor.handle(command)

        with pytest.raises(InvalidStateTransitionError):
            await services.processor.handle(command)

        assert await services.store.current_version(TENANT, task_id) == 2

    @pytest.mark.asyncio
    async def test_reopen_active_task(self, services: TaskServices) -> None:
        task_id = await _create(services)
        with pytest.raises(InvalidStateTransitionError, match="completed tasks"):
            await services.processor.handle(
                ReopenTask(tenant_id=TENANT, user_id="alice", task_id=task_id)
            )

    @pytest.mark.asyncio
    async def test_update(self, services: TaskServices) -> None:
        task_id = await _create(services, description="Ferns only")

        await services.processor.handle(
            UpdateTask(tenant_id=TENANT, user_id="alice", task_id=task_id, description="")
        )

        state = await services.snapshots.load(TENANT, task_id)
        assert state is not None
        assert state.description is None
        assert state.title == "Water plants"
        update = (await services.store.read(TENANT, task_id))[-1]
        assert isinstance(update, TaskUpdated)
        assert update.title is None

    @pytest.mark.asyncio
    async def test_empty_update(self, services: TaskServices) -> None:
        task_id = await _create(services)
        with pytest.raises(ValidationError, match="nothing to update"):
            await services.processor.handle(UpdateTask(tenant_id=TENANT, user_id="alice", task_id=task_id))

    @pytest.mark.asyncio
    async def test_deleted_task_is_gone(self, services: TaskServices) -> None:
        task_id = await _create(services)
        await services.processor.handle(
            DeleteTask(tenant_id=TENANT, user_id="alice", task_id=task_id, reason="done elsewhere")
        )

        with pytest.raises(NotFoundError):
            await services.processor.handle(
                CompleteTask(tenant_id=TENANT, user_id="alice", task_id=task_id)
            )

    @pytest.mark.asyncio
    async def test_delete_reason_too_long(self, services: TaskServices) -> None:
        task_id = await _create(services)
        with pytest.raises(ValidationError):
            await services.processor.handle(
                DeleteTask(tenant_id=TENANT, user_id="alice", task_id=task_id, reason="r" * 501)
            )

    @pytest.mark.asyncio
    async def test_unknown_task(self, services: TaskServices) -> None:
        with pytest.raises(NotFoundError):
            await services.processor.handle(
                CompleteTask(tenant_id=TENANT, user_id="alice", task_id=new_ulid())
            )


@pytest.mark.integration
class TestConcurrency:
    @pytest.mark.asyncio
    async def test_expected_version_mismatch_fails_at_once(
        self, services: TaskServices, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        task_id = await _create(services)
        append = AsyncMock()
        monkeypatch.setattr(services.store, "append", append)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await services.processor.handle(
                CompleteTask(tenant_id=TENANT, user_id="alice", task_id=task_id, expected_version=4)
            )

        assert exc_info.value.context["actual_version"] == 1
        append.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lost_race_is_retried_on_fresh_state(
        self, services: TaskServices, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        task_id = await _create(services)
        real_append = services.store.append
        calls = 0

        async def racing_append(*args: Any) -> Any:
            nonlocal calls
            calls += 1
            if calls == 1:
                # Bob renames the task between Alice's load and append
                await services.processor.handle(
                    UpdateTask(tenant_id=TENANT, user_id="bob", task_id=task_id, title="Renamed")
                )
            return await real_append(*args)

        monkeypatch.setattr(services.store, "append", racing_append)

        result = await services.processor.handle(
            CompleteTask(tenant_id=TENANT, user_id="alice", task_id=task_id)
        )

        assert result.version == 3
        assert calls == 3
        state = await services.snapshots.load(TENANT, task_id)
        assert state is not None
        assert state.title == "Renamed"
        assert state.completed

    @pytest.mark.asyncio
    async def test_conflicts_exhaust_attempts(
        self, services: TaskServices, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        task_id = await _create(services)
        append = AsyncMock(side_effect=VersionConflictError(1, 2))
        monkeypatch.setattr(services.store, "append", append)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await services.processor.handle(
                CompleteTask(tenant_id=TENANT, user_id="alice", task_id=task_id)
            )

        assert append.await_count == 3
        assert exc_info.value.context["attempts"] == 3
        assert exc_info.value.http_status == 409
        assert isinstance(exc_info.value.__cause__, VersionConflictError)

    @pytest.mark.asyncio
    async def test_transient_failure_is_not_retried(
        self, services: TaskServices, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        task_id = await _create(services)
        append = AsyncMock(side_effect=TransientInfrastructureError("down"))
        monkeypatch.setattr(services.store, "append", append)

        with pytest.raises(TransientInfrastructureError):
            await services.processor.handle(
                CompleteTask(tenant_id=TENANT, user_id="alice", task_id=task_id)
            )

        assert append.await_count == 1


@pytest.mark.integration
class TestCorruptStream:
    @pytest.mark.asyncio
    async def test_command_on_corrupt_stream_is_flagged(
        self,
        services: TaskServices,
        events: EventFactory,
        raw_append: Any,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        raw_append(events.updated(title="No genesis"))

        with caplog.at_level(logging.ERROR), pytest.raises(CorruptStreamError):
            await services.processor.handle(
                CompleteTask(tenant_id=TENANT, user_id="alice", task_id=events.task_id)
            )

        assert "task_stream_corrupt" in [record.getMessage() for record in caplog.records]
        [entry] = services.quarantine.list_flagged(TENANT)
        assert entry.aggregate_id == events.task_id
        assert entry.error_code == CorruptStreamError.error_code

    @pytest.mark.asyncio
    async def test_healthy_stream_is_not_flagged(self, services: TaskServices) -> None:
        task_id = await _create(services)
        await services.processor.handle(
            CompleteTask(tenant_id=TENANT, user_id="alice", task_id=task_id)
        )

        assert services.quarantine.list_flagged() == []


@pytest.mark.integration
class TestTagInput:
    @pytest.mark.asyncio
    async def test_bare_string_tags_are_rejected(self, services: TaskServices) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await _create(services, tags="food")
        assert exc_info.value.field == "tags"

    @pytest.mark.asyncio
    async def test_list_of_tags(self, services: TaskServices) -> None:
        task_id = await _create(services, tags=["food", "weekly"])

        [event] = await services.store.read(TENANT, task_id)
        assert event.tags == ("food", "weekly")
