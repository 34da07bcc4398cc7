"""Repository for task snapshots.

A snapshot is valid together with every event strictly after its cutoff
event. Snapshots are never updated; older ones get an ``expires_at`` mark
when they fall out of the retention window and are purged after it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter
from sqlalchemy import text

from hearth.domain.tasks.task import TaskState
from hearth.foundation.domain.exceptions import StaleSnapshotError

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session

_state_adapter: TypeAdapter[TaskState] = TypeAdapter(TaskState)


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Task state at a cutoff event.

    Attributes:
        cutoff_event_id: Id of the last event folded into ``state``.
        version: Stream position of the cutoff event.
        expires_at: Set once the snapshot is superseded; purged after it.
    """

    tenant_id: str
    task_id: str
    cutoff_event_id: str
    version: int
    state: TaskState
    created_at: datetime
    expires_at: datetime | None = None

    @classmethod
    def of(cls, state: TaskState, created_at: datetime) -> Snapshot:
        return cls(
            tenant_id=state.tenant_id,
            task_id=state.task_id,
            cutoff_event_id=state.last_event_id,
            version=state.version,
            state=state,
            created_at=created_at,
        )


def _row_to_snapshot(row: Any) -> Snapshot:
    try:
        return Snapshot(
            tenant_id=row[0],
            task_id=row[1],
            cutoff_event_id=row[2],
            version=row[3],
            state=_state_adapter.validate_json(row[4]),
            created_at=datetime.fromisoformat(row[5]),
            expires_at=datetime.fromisoformat(row[6]) if row[6] is not None else None,
        )
    except ValueError as exc:
        # pydantic ValidationError is a ValueError
        raise StaleSnapshotError(
            "Snapshot cannot be decoded",
            {"tenant_id": row[0], "task_id": row[1], "cutoff_event_id": row[2]},
        ) from exc


class SnapshotRepository:
    """Read/write access to the task_snapshots table.

    Args:
        session_factory: Callable returning a SQLAlchemy Session context manager.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def save(self, snapshot: Snapshot) -> bool:
        """Store a snapshot. Returns False if one with the same cutoff exists."""
        with self._session_factory() as session:
            result = session.execute(
                text(
                    "INSERT INTO task_snapshots (tenant_id, task_id, cutoff_event_id, "
                    "version, state, created_at, expires_at) "
                    "VALUES (:tenant_id, :task_id, :cutoff_event_id, :version, :state, "
                    ":created_at, :expires_at) "
                    "ON CONFLICT (tenant_id, task_id, cutoff_event_id) DO NOTHING"
                ),
                {
                    "tenant_id": snapshot.tenant_id,
                    "task_id": snapshot.task_id,
                    "cutoff_event_id": snapshot.cutoff_event_id,
                    "version": snapshot.version,
                    "state": _state_adapter.dump_json(snapshot.state).decode(),
                    "created_at": snapshot.created_at.isoformat(),
                    "expires_at": (
                        snapshot.expires_at.isoformat() if snapshot.expires_at else None
                    ),
                },
            )
            session.commit()
            return result.rowcount == 1

    def latest(self, tenant_id: str, task_id: str) -> Snapshot | None:
        """Snapshot with the highest version, expired or not."""
        with self._session_factory() as session:
            row = session.execute(
                text(
                    "SELECT tenant_id, task_id, cutoff_event_id, version, state, "
                    "created_at, expires_at FROM task_snapshots "
                    "WHERE tenant_id = :tenant_id AND task_id = :task_id "
                    "ORDER BY version DESC LIMIT 1"
                ),
                {"tenant_id": tenant_id, "task_id": task_id},
            ).fetchone()
            return _row_to_snapshot(row) if row is not None else None

    def list_for(self, tenant_id: str, task_id: str) -> list[Snapshot]:
        """All snapshots of one task, newest first."""
        with self._session_factory() as session:
            result = session.execute(
                text(
                    "SELECT tenant_id, task_id, cutoff_event_id, version, state, "
                    "created_at, expires_at FROM task_snapshots "
                    "WHERE tenant_id = :tenant_id AND task_id = :task_id "
                    "ORDER BY version DESC"
                ),
                {"tenant_id": tenant_id, "task_id": task_id},
            )
            return [_row_to_snapshot(row) for row in result.fetchall()]

    def expire_superseded(
        self,
        tenant_id: str,
        task_id: str,
        keep_count: int,
        expires_at: datetime,
    ) -> int:
        """Mark every unmarked snapshot beyond the newest ``keep_count``.

        Returns:
            Number of snapshots marked.
        """
        with self._session_factory() as session:
            result = session.execute(
                text(
                    "UPDATE task_snapshots SET expires_at = :expires_at "
                    "WHERE tenant_id = :tenant_id AND task_id = :task_id "
                    "AND expires_at IS NULL "
                    "AND cutoff_event_id NOT IN ("
                    "SELECT cutoff_event_id FROM task_snapshots "
                    "WHERE tenant_id = :tenant_id AND task_id = :task_id "
                    "ORDER BY version DESC LIMIT :keep_count)"
                ),
                {
                    "tenant_id": tenant_id,
                    "task_id": task_id,
                    "keep_count": keep_count,
                    "expires_at": expires_at.isoformat(),
                },
            )
            session.commit()
            return result.rowcount

    def discard(self, tenant_id: str, task_id: str, cutoff_event_id: str) -> None:
        """Delete one snapshot, e.g. after it failed to decode."""
        with self._session_factory() as session:
            session.execute(
                text(
                    "DELETE FROM task_snapshots WHERE tenant_id = :tenant_id "
                    "AND task_id = :task_id AND cutoff_event_id = :cutoff_event_id"
                ),
                {
                    "tenant_id": tenant_id,
                    "task_id": task_id,
                    "cutoff_event_id": cutoff_event_id,
                },
            )
            session.commit()

    def purge_expired(self, now: datetime) -> int:
        """Delete snapshots whose expiry has passed. Returns the count."""
        with self._session_factory() as session:
            result = session.execute(
                text(
                    "DELETE FROM task_snapshots "
                    "WHERE expires_at IS NOT NULL AND expires_at <= :now"
                ),
                {"now": now.isoformat()},
            )
            session.commit()
            return result.rowcount
