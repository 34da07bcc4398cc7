"""SQL-backed dead-letter channel.

Implements :class:`~hearth.foundation.domain.ports.DeadLetterPort` on the
``dead_letters`` table. Letters are keyed by ``(consumer, notification_id)``,
so a redelivered poison event is recorded once.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import text

from hearth.foundation.domain.ports import DeadLetter

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class SqlDeadLetterChannel:
    """Dead letters stored in SQL for manual inspection and replay.

    Args:
        session_factory: Callable returning a SQLAlchemy Session context manager.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def send(self, letter: DeadLetter) -> None:
        """Record a dead letter. A second letter for the same position is ignored."""
        with self._session_factory() as session:
            session.execute(
                text(
                    "INSERT INTO dead_letters (consumer, notification_id, topic, "
                    "originator_id, originator_version, error_code, error_message, "
                    "state, created_at) "
                    "VALUES (:consumer, :notification_id, :topic, :originator_id, "
                    ":originator_version, :error_code, :error_message, :state, :created_at) "
                    "ON CONFLICT (consumer, notification_id) DO NOTHING"
                ),
                {
                    "consumer": letter.consumer,
                    "notification_id": letter.notification_id,
                    "topic": letter.topic,
                    "originator_id": letter.originator_id,
                    "originator_version": letter.originator_version,
                    "error_code": letter.error_code,
                    "error_message": letter.error_message,
                    "state": letter.state,
                    "created_at": datetime.now(UTC).isoformat(),
                },
            )
            session.commit()
        logger.error(
            "dead_letter_recorded",
            extra={
                "consumer": letter.consumer,
                "notification_id": letter.notification_id,
                "topic": letter.topic,
                "error_code": letter.error_code,
            },
        )

    def list_letters(self, consumer: str, limit: int = 100) -> list[DeadLetter]:
        """Dead letters of one consumer, oldest position first."""
        with self._session_factory() as session:
            result = session.execute(
                text(
                    "SELECT consumer, notification_id, topic, originator_id, "
                    "originator_version, error_code, error_message, state "
                    "FROM dead_letters WHERE consumer = :consumer "
                    "ORDER BY notification_id LIMIT :limit"
                ),
                {"consumer": consumer, "limit": limit},
            )
            return [
                DeadLetter(
                    consumer=row[0],
                    notification_id=row[1],
                    topic=row[2],
                    originator_id=row[3],
                    originator_version=row[4],
                    error_code=row[5],
                    error_message=row[6],
                    state=bytes(row[7]),
                )
                for row in result.fetchall()
            ]

    def discard(self, consumer: str, notification_id: int) -> None:
        """Remove a dead letter after it was reprocessed by hand."""
        with self._session_factory() as session:
            session.execute(
                text(
                    "DELETE FROM dead_letters "
                    "WHERE consumer = :consumer AND notification_id = :notification_id"
                ),
                {"consumer": consumer, "notification_id": notification_id},
            )
            session.commit()
