"""Change feed position tracking.

Each change feed consumer records the last notification id it finished
with. Positions only move forward except through :meth:`reset`, which a
projection rebuild uses to replay from the beginning.

Failed deliveries are counted per ``(consumer, notification_id)`` so that a
consumer can give up on one that keeps failing. Counts at or below the
committed position are dropped.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import text

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session


class TrackingRepository:
    """Read/write access to the change_feed_positions table.

    Args:
        session_factory: Callable returning a SQLAlchemy Session context manager.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def get_position(self, consumer: str) -> int:
        """Last processed notification id; 0 when the consumer never ran."""
        with self._session_factory() as session:
            row = session.execute(
                text("SELECT position FROM change_feed_positions WHERE consumer = :consumer"),
                {"consumer": consumer},
            ).fetchone()
            return int(row[0]) if row is not None else 0

    def save_position(self, consumer: str, position: int) -> None:
        """Advance the consumer's position. Never moves it backwards."""
        with self._session_factory() as session:
            session.execute(
                text(
                    "INSERT INTO change_feed_positions (consumer, position, updated_at) "
                    "VALUES (:consumer, :position, :updated_at) "
                    "ON CONFLICT (consumer) DO UPDATE SET "
                    "position = EXCLUDED.position, updated_at = EXCLUDED.updated_at "
                    "WHERE change_feed_positions.position < EXCLUDED.position"
                ),
                {
                    "consumer": consumer,
                    "position": position,
                    "updated_at": datetime.now(UTC).isoformat(),
                },
            )
            session.commit()

    def reset(self, consumer: str) -> None:
        """Forget the consumer's position so it replays from the start."""
        with self._session_factory() as session:
            session.execute(
                text("DELETE FROM change_feed_positions WHERE consumer = :consumer"),
                {"consumer": consumer},
            )
            session.execute(
                text("DELETE FROM delivery_attempts WHERE consumer = :consumer"),
                {"consumer": consumer},
            )
            session.commit()

    def record_attempt(self, consumer: str, notification_id: int, error: str | None = None) -> int:
        """Count one failed delivery. Returns the failures so far, this one included."""
        with self._session_factory() as session:
            session.execute(
                text(
                    "INSERT INTO delivery_attempts (consumer, notification_id, attempts, "
                    "last_error, updated_at) "
                    "VALUES (:consumer, :notification_id, 1, :last_error, :updated_at) "
                    "ON CONFLICT (consumer, notification_id) DO UPDATE SET "
                    "attempts = delivery_attempts.attempts + 1, "
                    "last_error = EXCLUDED.last_error, updated_at = EXCLUDED.updated_at"
                ),
                {
                    "consumer": consumer,
                    "notification_id": notification_id,
                    "last_error": error,
                    "updated_at": datetime.now(UTC).isoformat(),
                },
            )
            row = session.execute(
                text(
                    "SELECT attempts FROM delivery_attempts "
                    "WHERE consumer = :consumer AND notification_id = :notification_id"
                ),
                {"consumer": consumer, "notification_id": notification_id},
            ).fetchone()
            session.commit()
            return int(row[0])

    def clear_attempts(self, consumer: str, up_to: int) -> None:
        """Drop failure counts of deliveries at or below ``up_to``."""
        with self._session_factory() as session:
            session.execute(
                text(
                    "DELETE FROM delivery_attempts "
                    "WHERE consumer = :consumer AND notification_id <= :up_to"
                ),
                {"consumer": consumer, "up_to": up_to},
            )
            session.commit()
