"""Repository for the task list projection.

Sync repository (projections call it through ``asyncio.to_thread``).
Rows are keyed by (tenant_id, task_id) and carry the id of the last event
they incorporate. Writes are conditional on that id so two consumers
racing on one row cannot both win.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from hearth.domain.tasks.task import TaskState
from hearth.domain.tasks.value_objects import TaskStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session

_COLUMNS = (
    "tenant_id, task_id, title, description, tags, completed, deleted, "
    "created_by, created_at, updated_at, completed_at, deleted_at, "
    "version, last_event_id"
)


def status_index(state: TaskState) -> str | None:
    """Value of the status index column: NULL once tombstoned."""
    if state.deleted:
        return None
    return TaskStatus.COMPLETED.value if state.completed else TaskStatus.ACTIVE.value


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value is not None else None


def _row_to_state(row: Any) -> TaskState:
    return TaskState(
        tenant_id=row[0],
        task_id=row[1],
        title=row[2],
        description=row[3],
        tags=tuple(json.loads(row[4] or "[]")),
        completed=bool(row[5]),
        deleted=bool(row[6]),
        created_by=row[7],
        created_at=datetime.fromisoformat(row[8]),
        updated_at=datetime.fromisoformat(row[9]),
        completed_at=_parse(row[10]),
        deleted_at=_parse(row[11]),
        version=row[12],
        last_event_id=row[13],
    )


class TaskProjectionRepository:
    """Read/write access to the task_projection table.

    Args:
        session_factory: Callable returning a SQLAlchemy Session context manager.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def load(self, tenant_id: str, task_id: str) -> TaskState | None:
        """Projected state of one task, including tombstoned rows."""
        with self._session_factory() as session:
            row = session.execute(
                text(
                    f"SELECT {_COLUMNS} FROM task_projection "  # noqa: S608
                    "WHERE tenant_id = :tenant_id AND task_id = :task_id"
                ),
                {"tenant_id": tenant_id, "task_id": task_id},
            ).fetchone()
            return _row_to_state(row) if row is not None else None

    def save(self, state: TaskState, expected_last_event_id: str | None) -> bool:
        """Write a row if nobody changed it since it was read.

        Args:
            state: New row content.
            expected_last_event_id: ``last_event_id`` of the row that was
                read, or None if there was no row.

        Returns:
            False if the row was inserted or updated concurrently.
        """
        params = {
            "tenant_id": state.tenant_id,
            "task_id": state.task_id,
            "title": state.title,
            "description": state.description,
            "tags": json.dumps(list(state.tags)),
            "status_index": status_index(state),
            "completed": state.completed,
            "deleted": state.deleted,
            "created_by": state.created_by,
            "created_at": _iso(state.created_at),
            "updated_at": _iso(state.updated_at),
            "completed_at": _iso(state.completed_at),
            "deleted_at": _iso(state.deleted_at),
            "version": state.version,
            "last_event_id": state.last_event_id,
            "expected_last_event_id": expected_last_event_id,
        }
        if expected_last_event_id is None:
            statement = text(
                "INSERT INTO task_projection (tenant_id, task_id, title, description, "
                "tags, status_index, completed, deleted, created_by, created_at, "
                "updated_at, completed_at, deleted_at, version, last_event_id) "
                "VALUES (:tenant_id, :task_id, :title, :description, :tags, "
                ":status_index, :completed, :deleted, :created_by, :created_at, "
                ":updated_at, :completed_at, :deleted_at, :version, :last_event_id) "
                "ON CONFLICT (tenant_id, task_id) DO NOTHING"
            )
        else:
            statement = text(
                "UPDATE task_projection SET title = :title, description = :description, "
                "tags = :tags, status_index = :status_index, completed = :completed, "
                "deleted = :deleted, created_by = :created_by, created_at = :created_at, "
                "updated_at = :updated_at, completed_at = :completed_at, "
                "deleted_at = :deleted_at, version = :version, "
                "last_event_id = :last_event_id "
                "WHERE tenant_id = :tenant_id AND task_id = :task_id "
                "AND last_event_id = :expected_last_event_id"
            )
        with self._session_factory() as session:
            result = session.execute(statement, params)
            session.commit()
            return result.rowcount == 1

    def list_by_status(
        self,
        tenant_id: str,
        status: TaskStatus | None,
        limit: int = 50,
        before_task_id: str | None = None,
    ) -> list[TaskState]:
        """Visible tasks of one status, newest task id first.

        Args:
            status: Status to list; None lists every visible task.
            before_task_id: Keyset cursor; only tasks with a smaller id are
                returned.
        """
        params: dict[str, Any] = {"tenant_id": tenant_id, "limit": limit}
        if status is None:
            status_filter = "status_index IS NOT NULL "
        else:
            status_filter = "status_index = :status_index "
            params["status_index"] = status.value
        cursor = ""
        if before_task_id is not None:
            cursor = "AND task_id < :before_task_id "
            params["before_task_id"] = before_task_id
        with self._session_factory() as session:
            result = session.execute(
                text(
                    f"SELECT {_COLUMNS} FROM task_projection "  # noqa: S608
                    f"WHERE tenant_id = :tenant_id AND {status_filter}"
                    f"{cursor}"
                    "ORDER BY task_id DESC LIMIT :limit"
                ),
                params,
            )
            return [_row_to_state(row) for row in result.fetchall()]

    def list_keys(
        self,
        after: tuple[str, str] | None = None,
        limit: int = 200,
    ) -> list[tuple[str, str]]:
        """(tenant_id, task_id) of every projected task, in key order.

        Args:
            after: Keyset cursor, the last key of the previous page.
        """
        params: dict[str, Any] = {"limit": limit}
        where = ""
        if after is not None:
            where = (
                "WHERE tenant_id > :after_tenant "
                "OR (tenant_id = :after_tenant AND task_id > :after_task) "
            )
            params["after_tenant"], params["after_task"] = after
        with self._session_factory() as session:
            result = session.execute(
                text(
                    "SELECT tenant_id, task_id FROM task_projection "  # noqa: S608
                    f"{where}"
                    "ORDER BY tenant_id, task_id LIMIT :limit"
                ),
                params,
            )
            return [(row[0], row[1]) for row in result.fetchall()]

    def erase(self, tenant_id: str, task_id: str) -> bool:
        """Hard-delete one row. Returns whether a row existed."""
        with self._session_factory() as session:
            result = session.execute(
                text(
                    "DELETE FROM task_projection "
                    "WHERE tenant_id = :tenant_id AND task_id = :task_id"
                ),
                {"tenant_id": tenant_id, "task_id": task_id},
            )
            session.commit()
            return result.rowcount == 1

    def truncate(self) -> None:
        with self._session_factory() as session:
            session.execute(text("DELETE FROM task_projection"))
            session.commit()
