"""SQL-backed stream quarantine.

Implements :class:`~hearth.foundation.domain.ports.StreamQuarantinePort` on
the ``quarantined_streams`` table, one row per flagged aggregate.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import text

from hearth.foundation.domain.ports import QuarantinedStream

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class SqlStreamQuarantine:
    """Flagged aggregates stored in SQL until an operator releases them.

    Args:
        session_factory: Callable returning a SQLAlchemy Session context manager.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def flag(self, entry: QuarantinedStream) -> None:
        with self._session_factory() as session:
            session.execute(
                text(
                    "INSERT INTO quarantined_streams (tenant_id, aggregate_id, "
                    "error_code, error_message, flagged_at) "
                    "VALUES (:tenant_id, :aggregate_id, :error_code, :error_message, "
                    ":flagged_at) "
                    "ON CONFLICT (tenant_id, aggregate_id) DO UPDATE SET "
                    "error_code = excluded.error_code, "
                    "error_message = excluded.error_message, "
                    "flagged_at = excluded.flagged_at"
                ),
                {
                    "tenant_id": entry.tenant_id,
                    "aggregate_id": entry.aggregate_id,
                    "error_code": entry.error_code,
                    "error_message": entry.error_message,
                    "flagged_at": datetime.now(UTC).isoformat(),
                },
            )
            session.commit()
        logger.error(
            "stream_quarantined",
            extra={
                "tenant_id": entry.tenant_id,
                "aggregate_id": entry.aggregate_id,
                "error_code": entry.error_code,
            },
        )

    def list_flagged(self, tenant_id: str | None = None) -> list[QuarantinedStream]:
        """Flagged aggregates, of one tenant or of all, in key order."""
        where = "WHERE tenant_id = :tenant_id " if tenant_id is not None else ""
        with self._session_factory() as session:
            result = session.execute(
                text(
                    "SELECT tenant_id, aggregate_id, error_code, error_message "
                    f"FROM quarantined_streams {where}"
                    "ORDER BY tenant_id, aggregate_id"
                ),
                {"tenant_id": tenant_id},
            )
            return [QuarantinedStream(*row) for row in result.fetchall()]

    def release(self, tenant_id: str, aggregate_id: str) -> bool:
        """Clear a flag after the stream was repaired. Returns False if none was set."""
        with self._session_factory() as session:
            result = session.execute(
                text(
                    "DELETE FROM quarantined_streams "
                    "WHERE tenant_id = :tenant_id AND aggregate_id = :aggregate_id"
                ),
                {"tenant_id": tenant_id, "aggregate_id": aggregate_id},
            )
            session.commit()
            return result.rowcount == 1
