"""Shared fixtures: in-memory event recorder and SQLite read models."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

import pytest
from eventsourcing.persistence import StoredEvent
from eventsourcing.popo import POPOApplicationRecorder
from sqlalchemy.orm import Session, sessionmaker

from hearth.domain.tasks.bootstrap import TaskServices
from hearth.domain.tasks.events import (
    TaskCompleted,
    TaskCreated,
    TaskDeleted,
    TaskReopened,
    TaskUpdated,
)
from hearth.domain.tasks.infrastructure.event_codec import build_task_event_codec
from hearth.foundation.domain.events import BaseEvent
from hearth.foundation.domain.identifiers import new_event_id, new_ulid, stream_id
from hearth.infra.eventsourcing.codec import EventCodec
from hearth.infra.eventsourcing.event_store import EventStore
from hearth.infra.eventsourcing.settings import (
    ChangeFeedSettings,
    CommandRetrySettings,
    ReplaySettings,
    SnapshotSettings,
)
from hearth.infra.persistence.database import DatabaseManager, DatabaseSettings

TENANT = "smith-family"
OTHER_TENANT = "jones-family"
ALICE = "alice"
BOB = "bob"


class EventFactory:
    """Builds consecutive events of one task stream."""

    def __init__(self, tenant_id: str = TENANT, task_id: str | None = None, user_id: str = ALICE):
        self.tenant_id = tenant_id
        self.task_id = task_id or new_ulid()
        self.user_id = user_id
        self.version = 0
        self.last_event_id: str | None = None

    def envelope(self, version: int | None = None) -> dict[str, Any]:
        self.version = version if version is not None else self.version + 1
        self.last_event_id = new_event_id(after=self.last_event_id)
        return {
            "originator_id": stream_id(self.tenant_id, self.task_id),
            "originator_version": self.version,
            "timestamp": datetime.now(UTC),
            "tenant_id": self.tenant_id,
            "task_id": self.task_id,
            "event_id": self.last_event_id,
            "user_id": self.user_id,
        }

    def created(self, title: str = "Take out the bins", **kwargs: Any) -> TaskCreated:
        return TaskCreated(**self.envelope(kwargs.pop("version", None)), title=title, **kwargs)

    def updated(self, **kwargs: Any) -> TaskUpdated:
        return TaskUpdated(**self.envelope(kwargs.pop("version", None)), **kwargs)

    def completed(self, **kwargs: Any) -> TaskCompleted:
        return TaskCompleted(**self.envelope(kwargs.pop("version", None)), **kwargs)

    def reopened(self, **kwargs: Any) -> TaskReopened:
        return TaskReopened(**self.envelope(kwargs.pop("version", None)), **kwargs)

    def deleted(self, reason: str | None = None, **kwargs: Any) -> TaskDeleted:
        return TaskDeleted(**self.envelope(kwargs.pop("version", None)), reason=reason, **kwargs)

    def stored_unknown(self, codec: EventCodec, topic: str = "task_archived.v1") -> StoredEvent:
        """A stored record of a kind this code base does not know."""
        placeholder = TaskCompleted(**self.envelope())
        return replace(codec.encode(placeholder), topic=topic)


@pytest.fixture()
def events() -> EventFactory:
    return EventFactory()


@pytest.fixture()
def make_events() -> type[EventFactory]:
    """The factory class, for tests that need several streams."""
    return EventFactory


@pytest.fixture()
def recorder() -> POPOApplicationRecorder:
    return POPOApplicationRecorder()


@pytest.fixture()
def codec() -> EventCodec:
    return build_task_event_codec()


@pytest.fixture()
def store(recorder: POPOApplicationRecorder, codec: EventCodec) -> EventStore:
    return EventStore(recorder, codec)


@pytest.fixture()
def database() -> Iterator[DatabaseManager]:
    manager = DatabaseManager(DatabaseSettings(url="sqlite://"))
    manager.create_schema()
    yield manager
    manager.dispose()


@pytest.fixture()
def session_factory(database: DatabaseManager) -> sessionmaker[Session]:
    return database.get_sync_session_factory()


@pytest.fixture()
def retry_settings() -> CommandRetrySettings:
    return CommandRetrySettings(
        max_attempts=3,
        initial_delay=0.0,
        max_delay=0.0,
        jitter=0.0,
    )


@pytest.fixture()
def snapshot_settings() -> SnapshotSettings:
    return SnapshotSettings(event_threshold=3, age_threshold_days=7, keep_count=2, ttl_days=90)


@pytest.fixture()
def change_feed_settings() -> ChangeFeedSettings:
    return ChangeFeedSettings(batch_size=10, poll_interval=0.01, shutdown_timeout=1.0)


@pytest.fixture()
def services(
    recorder: POPOApplicationRecorder,
    session_factory: sessionmaker[Session],
    retry_settings: CommandRetrySettings,
    snapshot_settings: SnapshotSettings,
    change_feed_settings: ChangeFeedSettings,
) -> TaskServices:
    built = TaskServices.build(
        recorder,
        session_factory,
        retry_settings=retry_settings,
        snapshot_settings=snapshot_settings,
        change_feed_settings=change_feed_settings,
        replay_settings=ReplaySettings(),
    )
    built.membership.add(TENANT, ALICE)
    built.membership.add(TENANT, BOB)
    return built


@pytest.fixture()
def raw_append(recorder: POPOApplicationRecorder, codec: EventCodec) -> Any:
    def _append(*batch: BaseEvent | StoredEvent) -> None:
        recorder.insert_events(
            [item if isinstance(item, StoredEvent) else codec.encode(item) for item in batch]
        )

    return _append
