"""Base projection class for CQRS read models.

A projection consumes change feed deliveries and maintains a denormalized
read model. This base class owns the failure policy shared by every
projection:

- Each delivery is decoded and applied on its own; one failing event never
  blocks the rest of its batch.
- Transient failures (storage unavailable, lost write races) are reported
  back for redelivery. The runner gives up on a delivery that keeps
  failing and hands it to :meth:`BaseProjection.give_up`.
- Permanent failures (malformed payload, corrupt stream, any other domain
  error) are parked on the dead-letter channel and the feed moves on.

Example:
    Define a projection by subclassing BaseProjection::

        class ChoreCountProjection(BaseProjection):
            '''Counts chores per family.'''

            name = "chore_count"

            async def apply(self, event: BaseEvent) -> bool:
                if not isinstance(event, ChoreCreated):
                    return False
                await asyncio.to_thread(self._repo.increment, event.tenant_id)
                return True

            def clear_read_model(self) -> None:
                self._repo.truncate()

Idempotency Requirement:
    ``apply`` MUST be idempotent. Deliveries are at-least-once and may
    arrive out of order after a partial batch failure.

See Also:
    - hearth.infra.eventsourcing.change_feed: Delivery and position tracking
    - hearth.infra.eventsourcing.projections.rebuilder: Rebuild utilities
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

from sqlalchemy.exc import OperationalError as SQLOperationalError

from hearth.foundation.domain.exceptions import DomainError
from hearth.foundation.domain.ports import DeadLetter
from hearth.infra.eventsourcing.change_feed import BatchResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from hearth.foundation.domain.events import BaseEvent
    from hearth.foundation.domain.ports import DeadLetterPort
    from hearth.infra.eventsourcing.change_feed import Delivery
    from hearth.infra.eventsourcing.codec import EventCodec

logger = logging.getLogger(__name__)


class BaseProjection(ABC):
    """Base class for all read model projections.

    Attributes:
        name: Consumer name. Keys the change feed position and dead letters.

    Args:
        codec: Codec decoding delivered notifications.
        dead_letters: Channel receiving events that cannot be applied.
    """

    name: ClassVar[str] = ""

    def __init__(self, codec: EventCodec, dead_letters: DeadLetterPort) -> None:
        if not self.name:
            msg = f"{type(self).__name__} must define a consumer name"
            raise TypeError(msg)
        self._codec = codec
        self._dead_letters = dead_letters

    @abstractmethod
    async def apply(self, event: BaseEvent) -> bool:
        """Apply one event to the read model.

        Returns:
            True if the read model changed, False if the event was skipped
            (already incorporated, or irrelevant to this projection).

        Raises:
            DomainError: ``transient`` errors are redelivered, others are
                dead-lettered.
        """

    @abstractmethod
    def clear_read_model(self) -> None:
        """Clear all data in the read model for rebuild.

        Must be idempotent and must not touch change feed positions (the
        rebuilder resets those).
        """

    async def process_batch(self, deliveries: Sequence[Delivery]) -> BatchResult:
        """Apply a batch of deliveries with per-event failure isolation."""
        result = BatchResult()
        for delivery in deliveries:
            try:
                event = self._codec.decode(delivery.notification)
                changed = await self.apply(event)
            except DomainError as exc:
                if exc.transient:
                    self._defer(delivery, exc, result)
                else:
                    await self._dead_letter(delivery, exc.error_code, str(exc), result)
            except SQLOperationalError as exc:
                self._defer(delivery, exc, result)
            except Exception as exc:
                logger.exception(
                    "projection_event_failed",
                    extra={"projection": self.name, "notification_id": delivery.notification_id},
                )
                await self._dead_letter(delivery, type(exc).__name__, str(exc), result)
            else:
                bucket = result.processed if changed else result.skipped
                bucket.append(delivery.notification_id)
        return result

    def _defer(self, delivery: Delivery, exc: Exception, result: BatchResult) -> None:
        logger.warning(
            "projection_event_deferred",
            extra={
                "projection": self.name,
                "notification_id": delivery.notification_id,
                "error": str(exc),
            },
        )
        result.retry.append(delivery.notification_id)
        result.errors[delivery.notification_id] = str(exc)

    async def give_up(self, delivery: Delivery, reason: str, result: BatchResult) -> None:
        """Dead-letter a delivery whose redeliveries are exhausted."""
        logger.error(
            "projection_event_abandoned",
            extra={"projection": self.name, "notification_id": delivery.notification_id},
        )
        await self._dead_letter(delivery, "DELIVERY_ATTEMPTS_EXHAUSTED", reason, result)

    async def _dead_letter(
        self,
        delivery: Delivery,
        error_code: str,
        error_message: str,
        result: BatchResult,
    ) -> None:
        notification = delivery.notification
        letter = DeadLetter(
            consumer=self.name,
            notification_id=delivery.notification_id,
            topic=notification.topic,
            originator_id=str(notification.originator_id),
            originator_version=notification.originator_version,
            error_code=error_code,
            error_message=error_message,
            state=notification.state,
        )
        await asyncio.to_thread(self._dead_letters.send, letter)
        result.dead_lettered.append(delivery.notification_id)
