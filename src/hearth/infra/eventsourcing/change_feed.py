"""At-least-once change feed over the event store's notification log.

Every append is numbered in the recorder's notification log. A consumer
reads notifications after its tracked position, hands them to a projection,
and then commits a new position:

- if every delivery was processed, skipped or dead-lettered, the position
  moves to the last delivery;
- if some deliveries failed transiently, the position moves to just before
  the first of them, so that it and everything after it are delivered
  again on the next poll.

Failed deliveries are counted. One that fails
``max_delivery_attempts`` times is dead-lettered by the runner, so a
poison event cannot hold the position back forever.

Redelivery is therefore normal, and consumers are idempotent. Delivery order
across streams is not meaningful.

Example::

    feed = ChangeFeed(recorder, TrackingRepository(session_factory), "task_list")
    runner = ChangeFeedRunner(feed, projection)
    await runner.drain()          # one-shot, e.g. from a scheduled job

    runner.start()                # background loop
    ...
    await runner.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING

from eventsourcing.persistence import OperationalError

from hearth.foundation.domain.exceptions import TransientInfrastructureError
from hearth.infra.eventsourcing.settings import ChangeFeedSettings, get_change_feed_settings

if TYPE_CHECKING:
    from eventsourcing.persistence import ApplicationRecorder, Notification

    from hearth.infra.eventsourcing.projections.base import BaseProjection
    from hearth.infra.persistence.tracking import TrackingRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Delivery:
    """One notification handed to a consumer.

    Attributes:
        notification_id: Position in the global change feed.
        notification: The stored record, not yet decoded.
    """

    notification_id: int
    notification: Notification


@dataclass
class BatchResult:
    """Per-delivery outcome of processing one batch.

    Each list holds notification ids in delivery order.
    """

    processed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    retry: list[int] = field(default_factory=list)
    dead_lettered: list[int] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)
    """Last error of each delivery in ``retry``."""

    @property
    def total(self) -> int:
        return len(self.processed) + len(self.skipped) + len(self.retry) + len(self.dead_lettered)

    @property
    def first_retry(self) -> int | None:
        return min(self.retry) if self.retry else None


class ChangeFeed:
    """Reads the notification log after a consumer's tracked position.

    Args:
        recorder: eventsourcing application recorder.
        tracking: Position store.
        consumer: Consumer name; positions are tracked per name.
        settings: Batch size defaults.
    """

    def __init__(
        self,
        recorder: ApplicationRecorder,
        tracking: TrackingRepository,
        consumer: str,
        settings: ChangeFeedSettings | None = None,
    ) -> None:
        self._recorder = recorder
        self._tracking = tracking
        self._consumer = consumer
        self._settings = settings or get_change_feed_settings()

    @property
    def consumer(self) -> str:
        return self._consumer

    async def position(self) -> int:
        return await asyncio.to_thread(partial(self._tracking.get_position, self._consumer))

    async def poll(self, limit: int | None = None) -> list[Delivery]:
        """Next deliveries after the tracked position, oldest first.

        Raises:
            TransientInfrastructureError: The recorder is unavailable.
        """
        return await asyncio.to_thread(partial(self._poll_sync, limit or self._settings.batch_size))

    async def commit(self, deliveries: list[Delivery], result: BatchResult) -> int:
        """Advance the tracked position after a processed batch.

        Returns:
            The position after the commit.
        """
        if not deliveries:
            return await self.position()

        first_retry = result.first_retry
        if first_retry is None:
            new_position = deliveries[-1].notification_id
        else:
            new_position = first_retry - 1

        current = await self.position()
        if new_position > current:
            await asyncio.to_thread(
                partial(self._tracking.save_position, self._consumer, new_position)
            )
            await asyncio.to_thread(
                partial(self._tracking.clear_attempts, self._consumer, new_position)
            )
            return new_position
        return current

    async def record_failure(self, delivery: Delivery, error: str | None = None) -> int:
        """Count a failed delivery. Returns how often it has failed so far."""
        return await asyncio.to_thread(
            partial(
                self._tracking.record_attempt,
                self._consumer,
                delivery.notification_id,
                error,
            )
        )

    async def reset(self) -> None:
        """Replay the whole feed on the next poll."""
        await asyncio.to_thread(partial(self._tracking.reset, self._consumer))

    def _poll_sync(self, limit: int) -> list[Delivery]:
        start = self._tracking.get_position(self._consumer) + 1
        try:
            notifications = self._recorder.select_notifications(start=start, limit=limit)
        except OperationalError as exc:
            raise TransientInfrastructureError(
                f"Change feed unavailable: {exc}",
                {"consumer": self._consumer},
            ) from exc
        return [Delivery(notification_id=n.id, notification=n) for n in notifications]


class ChangeFeedRunner:
    """Drives a projection from a change feed.

    Args:
        feed: Change feed of the projection's consumer name.
        projection: Projection receiving the deliveries.
        settings: Poll interval and shutdown timeout.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        projection: BaseProjection,
        settings: ChangeFeedSettings | None = None,
    ) -> None:
        self._feed = feed
        self._projection = projection
        self._settings = settings or get_change_feed_settings()
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    async def run_once(self) -> BatchResult:
        """Poll one batch, process it and commit the position."""
        deliveries = await self._feed.poll()
        if not deliveries:
            return BatchResult()
        result = await self._projection.process_batch(deliveries)
        if result.retry:
            await self._give_up_exhausted(deliveries, result)
        position = await self._feed.commit(deliveries, result)
        logger.debug(
            "change_feed_batch_committed",
            extra={
                "consumer": self._feed.consumer,
                "position": position,
                "processed": len(result.processed),
                "skipped": len(result.skipped),
                "retry": len(result.retry),
                "dead_lettered": len(result.dead_lettered),
            },
        )
        return result

    async def _give_up_exhausted(self, deliveries: list[Delivery], result: BatchResult) -> None:
        by_id = {delivery.notification_id: delivery for delivery in deliveries}
        for notification_id in list(result.retry):
            error = result.errors.get(notification_id)
            attempts = await self._feed.record_failure(by_id[notification_id], error)
            if attempts < self._settings.max_delivery_attempts:
                continue
            result.retry.remove(notification_id)
            await self._projection.give_up(
                by_id[notification_id],
                f"failed {attempts} deliveries, last error: {error}",
                result,
            )

    async def drain(self) -> BatchResult:
        """Process batches until the feed is empty or a batch needs redelivery.

        Returns:
            Outcomes of every batch processed during the drain, merged.
        """
        summary = BatchResult()
        while True:
            result = await self.run_once()
            summary.processed.extend(result.processed)
            summary.skipped.extend(result.skipped)
            summary.retry.extend(result.retry)
            summary.dead_lettered.extend(result.dead_lettered)
            if result.total == 0 or result.retry:
                return summary

    def start(self) -> None:
        """Start the background polling loop on the running event loop.

        Raises:
            RuntimeError: If the runner is already started.
        """
        if self._task is not None:
            msg = "ChangeFeedRunner already started"
            raise RuntimeError(msg)
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name=f"change-feed-{self._feed.consumer}")
        logger.info(
            "change_feed_runner_started",
            extra={
                "consumer": self._feed.consumer,
                "poll_interval": self._settings.poll_interval,
            },
        )

    async def stop(self) -> None:
        """Stop the loop, waiting up to the shutdown timeout. Safe if not started."""
        if self._task is None:
            logger.warning("change_feed_runner_not_started")
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=self._settings.shutdown_timeout)
        except TimeoutError:
            logger.warning(
                "change_feed_runner_stop_timeout",
                extra={"consumer": self._feed.consumer},
            )
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("change_feed_runner_stopped", extra={"consumer": self._feed.consumer})

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.drain()
            except TransientInfrastructureError:
                logger.warning(
                    "change_feed_poll_failed",
                    extra={"consumer": self._feed.consumer},
                    exc_info=True,
                )
            except Exception:
                logger.exception(
                    "change_feed_cycle_failed",
                    extra={"consumer": self._feed.consumer},
                )
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._settings.poll_interval)
