"""Tests for the SQL read-side repositories."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from hearth.domain.tasks.infrastructure.membership_repository import (
    SqlTenantMembershipRepository,
)
from hearth.domain.tasks.infrastructure.task_projection_repository import (
    TaskProjectionRepository,
    status_index,
)
from hearth.domain.tasks.task import reconstruct
from hearth.foundation.domain.ports import (
    DeadLetter,
    DeadLetterPort,
    QuarantinedStream,
    StreamQuarantinePort,
    TenantMembershipPort,
)
from hearth.infra.persistence.database import DatabaseManager, DatabaseSettings
from hearth.infra.persistence.dead_letter import SqlDeadLetterChannel
from hearth.infra.persistence.quarantine import SqlStreamQuarantine
from hearth.infra.persistence.tracking import TrackingRepository

if TYPE_CHECKING:
    from conftest import EventFactory
    from sqlalchemy.orm import Session, sessionmaker


def _letter(notification_id: int, error_code: str = "MALFORMED_EVENT") -> DeadLetter:
    return DeadLetter(
        consumer="task_list",
        notification_id=notification_id,
        topic="task_created.v2",
        originator_id="3f2b1c7e-0000-0000-0000-000000000000",
        originator_version=1,
        error_code=error_code,
        error_message="Undecodable event state",
        state=b"\x00\x01",
    )


@pytest.mark.unit
class TestDatabaseManager:
    def test_engine_and_factory_are_reused(self) -> None:
        manager = DatabaseManager(DatabaseSettings(url="sqlite://"))
        try:
            assert manager.get_sync_engine() is manager.get_sync_engine()
            assert manager.get_sync_session_factory() is manager.get_sync_session_factory()
        finally:
            manager.dispose()

    def test_dispose_twice(self) -> None:
        manager = DatabaseManager(DatabaseSettings(url="sqlite://"))
        manager.get_sync_engine()
        manager.dispose()
        manager.dispose()


@pytest.mark.integration
class TestTrackingRepository:
    def test_unknown_consumer_starts_at_zero(
        self, session_factory: sessionmaker[Session]
    ) -> None:
        assert TrackingRepository(session_factory).get_position("task_list") == 0

    def test_position_only_moves_forward(self, session_factory: sessionmaker[Session]) -> None:
        tracking = TrackingRepository(session_factory)
        tracking.save_position("task_list", 7)
        tracking.save_position("task_list", 3)

        assert tracking.get_position("task_list") == 7

    def test_reset(self, session_factory: sessionmaker[Session]) -> None:
        tracking = TrackingRepository(session_factory)
        tracking.save_position("task_list", 7)
        tracking.reset("task_list")

        assert tracking.get_position("task_list") == 0

    def test_failed_deliveries_are_counted(
        self, session_factory: sessionmaker[Session]
    ) -> None:
        tracking = TrackingRepository(session_factory)

        assert tracking.record_attempt("task_list", 4, "db down") == 1
        assert tracking.record_attempt("task_list", 4, "db still down") == 2
        assert tracking.record_attempt("task_list", 5) == 1
        assert tracking.record_attempt("other", 4) == 1

    def test_clear_attempts_up_to_position(
        self, session_factory: sessionmaker[Session]
    ) -> None:
        tracking = TrackingRepository(session_factory)
        tracking.record_attempt("task_list", 4)
        tracking.record_attempt("task_list", 6)
        tracking.clear_attempts("task_list", 5)

        assert tracking.record_attempt("task_list", 4) == 1
        assert tracking.record_attempt("task_list", 6) == 2

    def test_reset_forgets_failures(self, session_factory: sessionmaker[Session]) -> None:
        tracking = TrackingRepository(session_factory)
        tracking.record_attempt("task_list", 4)
        tracking.reset("task_list")

        assert tracking.record_attempt("task_list", 4) == 1


@pytest.mark.integration
class TestStreamQuarantine:
    def test_satisfies_port(self, session_factory: sessionmaker[Session]) -> None:
        assert isinstance(SqlStreamQuarantine(session_factory), StreamQuarantinePort)

    def test_flag_is_an_upsert(self, session_factory: sessionmaker[Session]) -> None:
        quarantine = SqlStreamQuarantine(session_factory)
        quarantine.flag(QuarantinedStream("smith-family", "01A", "CORRUPT_STREAM", "gap"))
        quarantine.flag(QuarantinedStream("smith-family", "01A", "MALFORMED_EVENT", "bad json"))
        quarantine.flag(QuarantinedStream("jones-family", "01B", "CORRUPT_STREAM", "gap"))

        [entry] = quarantine.list_flagged("smith-family")

        assert entry.error_code == "MALFORMED_EVENT"
        assert entry.error_message == "bad json"
        assert len(quarantine.list_flagged()) == 2

    def test_release(self, session_factory: sessionmaker[Session]) -> None:
        quarantine = SqlStreamQuarantine(session_factory)
        quarantine.flag(QuarantinedStream("smith-family", "01A", "CORRUPT_STREAM", "gap"))

        assert quarantine.release("smith-family", "01A") is True
        assert quarantine.release("smith-family", "01A") is False
        assert quarantine.list_flagged() == []


@pytest.mark.integration
class TestDeadLetterChannel:
    def test_satisfies_port(self, session_factory: sessionmaker[Session]) -> None:
        assert isinstance(SqlDeadLetterChannel(session_factory), DeadLetterPort)

    def test_send_is_idempotent_per_position(
        self, session_factory: sessionmaker[Session]
    ) -> None:
        channel = SqlDeadLetterChannel(session_factory)
        channel.send(_letter(4))
        channel.send(_letter(4, error_code="CORRUPT_STREAM"))
        channel.send(_letter(2))

        letters = channel.list_letters("task_list")

        assert [letter.notification_id for letter in letters] == [2, 4]
        assert letters[1].error_code == "MALFORMED_EVENT"
        assert letters[1].state == b"\x00\x01"

    def test_discard(self, session_factory: sessionmaker[Session]) -> None:
        channel = SqlDeadLetterChannel(session_factory)
        channel.send(_letter(4))
        channel.discard("task_list", 4)

        assert channel.list_letters("task_list") == []


@pytest.mark.integration
class TestMembershipRepository:
    def test_satisfies_port(self, session_factory: sessionmaker[Session]) -> None:
        assert isinstance(SqlTenantMembershipRepository(session_factory), TenantMembershipPort)

    @pytest.mark.asyncio
    async def test_add_and_remove(self, session_factory: sessionmaker[Session]) -> None:
        members = SqlTenantMembershipRepository(session_factory)
        members.add("smith-family", "alice")
        members.add("smith-family", "alice", role="owner")

        assert await members.is_member("smith-family", "alice")
        assert not await members.is_member("jones-family", "alice")

        members.remove("smith-family", "alice")
        assert not await members.is_member("smith-family", "alice")


@pytest.mark.integration
class TestTaskProjectionRepository:
    def test_insert_only_when_absent(
        self, session_factory: sessionmaker[Session], events: EventFactory
    ) -> None:
        repo = TaskProjectionRepository(session_factory)
        state = reconstruct([events.created(tags=("x", "y"))])

        assert repo.save(state, None)
        assert not repo.save(state, None)
        assert repo.load(events.tenant_id, events.task_id) == state

    def test_update_is_conditional_on_last_event(
        self, session_factory: sessionmaker[Session], events: EventFactory
    ) -> None:
        repo = TaskProjectionRepository(session_factory)
        created = reconstruct([events.created()])
        repo.save(created, None)
        completed = reconstruct([events.completed()], base=created)

        assert not repo.save(completed, "01J00000000000000000000000")
        assert repo.save(completed, created.last_event_id)
        assert repo.load(events.tenant_id, events.task_id) == completed

    def test_status_index(self, events: EventFactory) -> None:
        state = reconstruct([events.created()])
        assert status_index(state) == "active"
        state = reconstruct([events.completed()], base=state)
        assert status_index(state) == "completed"
        state = reconstruct([events.deleted()], base=state)
        assert status_index(state) is None

    def test_list_keys_pages_across_tenants(
        self, session_factory: sessionmaker[Session], make_events: type[EventFactory]
    ) -> None:
        repo = TaskProjectionRepository(session_factory)
        for tenant in ("jones-family", "smith-family", "jones-family"):
            stream = make_events(tenant_id=tenant)
            repo.save(reconstruct([stream.created()]), None)

        first = repo.list_keys(limit=2)
        rest = repo.list_keys(after=first[-1], limit=2)

        keys = first + rest
        assert len(keys) == 3
        assert keys == sorted(keys)
        assert [tenant for tenant, _ in keys] == ["jones-family", "jones-family", "smith-family"]

    def test_truncate(
        self, session_factory: sessionmaker[Session], events: EventFactory
    ) -> None:
        repo = TaskProjectionRepository(session_factory)
        repo.save(reconstruct([events.created()]), None)
        repo.truncate()

        assert repo.list_keys() == []
