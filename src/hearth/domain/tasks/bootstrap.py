"""Composition root of the tasks bounded context.

Wires the event store, read-side repositories, the command processor, the
task list projection and its change feed. Processes that serve tasks (API
workers, taskiq workers) build one ``TaskServices`` and share it::

    services = get_task_services()
    result = await services.processor.handle(CreateTask(...))
    await services.runner().drain()

Tests build their own from an in-memory recorder and SQLite::

    services = TaskServices.build(recorder, session_factory)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

from hearth.domain.tasks.infrastructure.event_codec import build_task_event_codec
from hearth.domain.tasks.infrastructure.membership_repository import (
    SqlTenantMembershipRepository,
)
from hearth.domain.tasks.infrastructure.projections.task_list import TaskListProjection
from hearth.domain.tasks.infrastructure.snapshot_manager import SnapshotManager
from hearth.domain.tasks.infrastructure.snapshot_repository import SnapshotRepository
from hearth.domain.tasks.infrastructure.task_projection_repository import (
    TaskProjectionRepository,
)
from hearth.domain.tasks.queries import TaskQueryService
from hearth.domain.tasks.task_app import TaskCommandProcessor
from hearth.infra.eventsourcing.change_feed import ChangeFeed, ChangeFeedRunner
from hearth.infra.eventsourcing.event_store import EventStore, get_event_store
from hearth.infra.eventsourcing.projections.rebuilder import ProjectionRebuilder
from hearth.infra.persistence.database import get_database_manager
from hearth.infra.persistence.dead_letter import SqlDeadLetterChannel
from hearth.infra.persistence.quarantine import SqlStreamQuarantine
from hearth.infra.persistence.tracking import TrackingRepository

if TYPE_CHECKING:
    from collections.abc import Callable

    from eventsourcing.persistence import ApplicationRecorder
    from sqlalchemy.orm import Session

    from hearth.infra.eventsourcing.codec import EventCodec
    from hearth.infra.eventsourcing.settings import (
        ChangeFeedSettings,
        CommandRetrySettings,
        ReplaySettings,
        SnapshotSettings,
    )

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskServices:
    """Every service of the tasks bounded context, wired together."""

    codec: EventCodec
    store: EventStore
    membership: SqlTenantMembershipRepository
    dead_letters: SqlDeadLetterChannel
    quarantine: SqlStreamQuarantine
    projection_repository: TaskProjectionRepository
    snapshot_repository: SnapshotRepository
    snapshots: SnapshotManager
    processor: TaskCommandProcessor
    queries: TaskQueryService
    projection: TaskListProjection
    feed: ChangeFeed
    change_feed_settings: ChangeFeedSettings | None = None

    @classmethod
    def build(
        cls,
        recorder: ApplicationRecorder,
        session_factory: Callable[[], Session],
        *,
        retry_settings: CommandRetrySettings | None = None,
        snapshot_settings: SnapshotSettings | None = None,
        change_feed_settings: ChangeFeedSettings | None = None,
        replay_settings: ReplaySettings | None = None,
    ) -> TaskServices:
        codec = build_task_event_codec()
        store = EventStore(recorder, codec)
        membership = SqlTenantMembershipRepository(session_factory)
        dead_letters = SqlDeadLetterChannel(session_factory)
        quarantine = SqlStreamQuarantine(session_factory)
        projection_repository = TaskProjectionRepository(session_factory)
        snapshot_repository = SnapshotRepository(session_factory)
        snapshots = SnapshotManager(
            store,
            snapshot_repository,
            projection_repository,
            settings=snapshot_settings,
            replay_settings=replay_settings,
        )
        projection = TaskListProjection(
            codec,
            dead_letters,
            projection_repository,
            store,
            replay_settings=replay_settings,
        )
        return cls(
            codec=codec,
            store=store,
            membership=membership,
            dead_letters=dead_letters,
            quarantine=quarantine,
            projection_repository=projection_repository,
            snapshot_repository=snapshot_repository,
            snapshots=snapshots,
            processor=TaskCommandProcessor(
                store,
                snapshots,
                membership,
                retry_settings=retry_settings,
                quarantine=quarantine,
            ),
            queries=TaskQueryService(projection_repository, store),
            projection=projection,
            feed=ChangeFeed(
                recorder,
                TrackingRepository(session_factory),
                TaskListProjection.name,
                settings=change_feed_settings,
            ),
            change_feed_settings=change_feed_settings,
        )

    def runner(self) -> ChangeFeedRunner:
        """A runner feeding the task list projection. Create one per loop."""
        return ChangeFeedRunner(self.feed, self.projection, settings=self.change_feed_settings)

    def rebuilder(self) -> ProjectionRebuilder:
        return ProjectionRebuilder(self.feed)


@lru_cache(maxsize=1)
def get_task_services() -> TaskServices:
    """Process-wide services configured from the environment.

    A SQLite read-model database gets its tables created on first use.
    Clear the cache with ``get_task_services.cache_clear()`` in tests.
    """
    database = get_database_manager()
    if database.settings.is_sqlite:
        database.create_schema()
    services = TaskServices.build(
        get_event_store().recorder,
        database.get_sync_session_factory(),
    )
    logger.info("task_services_built", extra={"sqlite": database.settings.is_sqlite})
    return services
