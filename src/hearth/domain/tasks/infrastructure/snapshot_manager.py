"""Snapshot management for task streams.

Snapshots bound the cost of loading a task: the loader folds only the
events after the latest snapshot's cutoff. Per task the manager moves
between two states::

    NoSnapshot --snapshot()--> HasSnapshot(cutoff) --snapshot()--> HasSnapshot(cutoff')

A new snapshot is due when the task has none, when ``event_threshold``
events accumulated since the cutoff, or when the latest snapshot is older
than ``age_threshold_days`` and the stream moved on since.

A snapshot whose cutoff is no longer in the stream, or whose stored state
cannot be decoded, is ignored and the stream is replayed in full. An
undecodable snapshot is also deleted so the next snapshot can replace it.

Retention: the newest ``keep_count`` snapshots stay unmarked, older ones get
``expires_at = now + ttl_days`` and are deleted by :meth:`purge_expired`.

The hourly ``snapshot_sweep`` job (``hearth.domain.tasks.jobs``) runs
:meth:`SnapshotManager.sweep` followed by :meth:`SnapshotManager.purge_expired`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import partial
from typing import TYPE_CHECKING

from hearth.domain.tasks.infrastructure.snapshot_repository import Snapshot
from hearth.domain.tasks.task import reconstruct
from hearth.foundation.domain.exceptions import DomainError, NotFoundError, StaleSnapshotError
from hearth.infra.eventsourcing.settings import (
    ReplaySettings,
    SnapshotSettings,
    get_replay_settings,
    get_snapshot_settings,
)

if TYPE_CHECKING:
    from hearth.domain.tasks.infrastructure.snapshot_repository import SnapshotRepository
    from hearth.domain.tasks.infrastructure.task_projection_repository import (
        TaskProjectionRepository,
    )
    from hearth.domain.tasks.task import TaskState
    from hearth.infra.eventsourcing.event_store import EventStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SnapshotSweepResult:
    """Counters of one sweep.

    Attributes:
        processed: Tasks visited.
        created: Snapshots written.
        errors: Tasks that failed to load or snapshot.
    """

    processed: int = 0
    created: int = 0
    errors: int = 0


class SnapshotManager:
    """Loads task state through snapshots and decides when to take new ones.

    Args:
        store: Event store holding the task streams.
        snapshots: Snapshot persistence.
        projection: Task list read model, used to enumerate tasks in a sweep.
        settings: Thresholds and retention.
        replay_settings: Policy for unknown event kinds during replay.
    """

    def __init__(
        self,
        store: EventStore,
        snapshots: SnapshotRepository,
        projection: TaskProjectionRepository,
        settings: SnapshotSettings | None = None,
        replay_settings: ReplaySettings | None = None,
    ) -> None:
        self._store = store
        self._snapshots = snapshots
        self._projection = projection
        self._settings = settings or get_snapshot_settings()
        self._replay = replay_settings or get_replay_settings()

    async def load(self, tenant_id: str, task_id: str) -> TaskState | None:
        """Current state of a task, or None if its stream is empty.

        Starts from the latest snapshot and folds the events after its
        cutoff. A snapshot whose cutoff no longer lines up with the stream
        is ignored and the full stream is replayed.

        Raises:
            CorruptStreamError: The stream cannot be folded.
        """
        state, _ = await self._load_with_latest(tenant_id, task_id)
        return state

    def should_snapshot(
        self,
        state: TaskState,
        latest: Snapshot | None,
        now: datetime | None = None,
    ) -> bool:
        """Whether ``state`` deserves a new snapshot given the latest one."""
        if latest is None:
            return state.version >= 1
        behind = state.version - latest.version
        if behind <= 0:
            return False
        if behind >= self._settings.event_threshold:
            return True
        now = now or datetime.now(UTC)
        return now - latest.created_at >= timedelta(days=self._settings.age_threshold_days)

    async def snapshot(
        self,
        tenant_id: str,
        task_id: str,
        now: datetime | None = None,
    ) -> Snapshot:
        """Snapshot the current state of a task unconditionally.

        Returns the latest existing snapshot when the stream has not moved
        past it.

        Raises:
            NotFoundError: The task has no events.
        """
        state, latest = await self._load_with_latest(tenant_id, task_id)
        if state is None:
            raise NotFoundError("Task", task_id, tenant_id=tenant_id)
        if latest is not None and latest.version >= state.version:
            return latest
        return await self._take(state, now or datetime.now(UTC))

    async def sweep(self, now: datetime | None = None) -> SnapshotSweepResult:
        """Visit every task of every tenant and snapshot those that are due.

        A task that fails to load is counted and logged; the sweep goes on.
        """
        now = now or datetime.now(UTC)
        processed = created = errors = 0
        after: tuple[str, str] | None = None

        while True:
            keys = await asyncio.to_thread(
                partial(self._projection.list_keys, after, self._settings.sweep_batch_size)
            )
            if not keys:
                break
            for tenant_id, task_id in keys:
                processed += 1
                try:
                    state, latest = await self._load_with_latest(tenant_id, task_id)
                    if state is not None and self.should_snapshot(state, latest, now):
                        await self._take(state, now)
                        created += 1
                except DomainError as exc:
                    errors += 1
                    logger.error(
                        "snapshot_sweep_task_failed",
                        extra={
                            "tenant_id": tenant_id,
                            "task_id": task_id,
                            "error_code": exc.error_code,
                            "error": str(exc),
                        },
                    )
            after = keys[-1]

        result = SnapshotSweepResult(processed=processed, created=created, errors=errors)
        logger.info(
            "snapshot_sweep_completed",
            extra={"processed": processed, "created": created, "errors": errors},
        )
        return result

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete snapshots past their expiry. Returns the number removed."""
        removed = await asyncio.to_thread(
            partial(self._snapshots.purge_expired, now or datetime.now(UTC))
        )
        if removed:
            logger.info("snapshots_purged", extra={"removed": removed})
        return removed

    async def _load_with_latest(
        self,
        tenant_id: str,
        task_id: str,
    ) -> tuple[TaskState | None, Snapshot | None]:
        latest = await self._latest(tenant_id, task_id)
        policy = self._replay.unknown_event_policy

        if latest is not None:
            try:
                delta = await self._store.read_since(
                    tenant_id,
                    task_id,
                    latest.cutoff_event_id,
                    latest.version,
                )
            except StaleSnapshotError:
                logger.warning(
                    "snapshot_stale",
                    extra={
                        "tenant_id": tenant_id,
                        "task_id": task_id,
                        "cutoff_event_id": latest.cutoff_event_id,
                        "version": latest.version,
                    },
                )
            else:
                return reconstruct(delta, base=latest.state, unknown_policy=policy), latest

        events = await self._store.read(tenant_id, task_id)
        if not events:
            return None, latest
        return reconstruct(events, unknown_policy=policy), latest

    async def _latest(self, tenant_id: str, task_id: str) -> Snapshot | None:
        try:
            return await asyncio.to_thread(partial(self._snapshots.latest, tenant_id, task_id))
        except StaleSnapshotError as exc:
            logger.warning(
                "snapshot_undecodable",
                extra={"tenant_id": tenant_id, "task_id": task_id, "error": exc.message},
            )
            await asyncio.to_thread(
                partial(
                    self._snapshots.discard,
                    tenant_id,
                    task_id,
                    exc.context["cutoff_event_id"],
                )
            )
            return None

    async def _take(self, state: TaskState, now: datetime) -> Snapshot:
        snapshot = Snapshot.of(state, created_at=now)
        await asyncio.to_thread(self._snapshots.save, snapshot)
        expired = await asyncio.to_thread(
            partial(
                self._snapshots.expire_superseded,
                state.tenant_id,
                state.task_id,
                self._settings.keep_count,
                now + timedelta(days=self._settings.ttl_days),
            )
        )
        logger.info(
            "snapshot_created",
            extra={
                "tenant_id": state.tenant_id,
                "task_id": state.task_id,
                "version": state.version,
                "expired": expired,
            },
        )
        return snapshot
