"""Projection rebuilder.

A rebuild is needed when:
- Projection schema changed (added/removed columns)
- Projection logic bug fixed (need to recompute)
- New projection added (process historical events)
- Data corruption detected (restore from the event store)

Rebuild Workflow:
    1. Stop the projection's change feed runner - caller responsibility
    2. Clear read model via ``projection.clear_read_model()``
    3. Reset the change feed position to 0
    4. Optionally drain the feed right away (``replay=True``)
    5. Restart the runner - caller responsibility

Example::

    rebuilder = ProjectionRebuilder(feed)
    await rebuilder.rebuild(projection, replay=True)

Warning:
    Rebuild clears the read model completely; it is empty until replay
    catches up.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from hearth.infra.eventsourcing.change_feed import BatchResult, ChangeFeedRunner

if TYPE_CHECKING:
    from hearth.infra.eventsourcing.change_feed import ChangeFeed
    from hearth.infra.eventsourcing.projections.base import BaseProjection

logger = logging.getLogger(__name__)


class ProjectionRebuilder:
    """Orchestrates projection rebuild from the change feed.

    Args:
        feed: Change feed tracking the projection's consumer name.
    """

    def __init__(self, feed: ChangeFeed) -> None:
        self._feed = feed

    async def rebuild(self, projection: BaseProjection, *, replay: bool = False) -> BatchResult:
        """Clear the read model and rewind the feed.

        Args:
            projection: Projection to rebuild. Its ``name`` must match the
                feed's consumer.
            replay: Drain the whole feed into the projection before returning.

        Returns:
            The merged outcome of the replay, empty when ``replay`` is False.

        Raises:
            ValueError: If the projection and feed disagree on the consumer.
        """
        if projection.name != self._feed.consumer:
            msg = (
                f"Projection {projection.name!r} does not consume feed "
                f"{self._feed.consumer!r}"
            )
            raise ValueError(msg)

        logger.info("projection_rebuild_started", extra={"projection": projection.name})
        await asyncio.to_thread(projection.clear_read_model)
        await self._feed.reset()

        if not replay:
            logger.info("projection_rebuild_prepared", extra={"projection": projection.name})
            return BatchResult()

        result = await ChangeFeedRunner(self._feed, projection).drain()
        logger.info(
            "projection_rebuild_replayed",
            extra={
                "projection": projection.name,
                "processed": len(result.processed),
                "dead_lettered": len(result.dead_lettered),
                "retry": len(result.retry),
            },
        )
        return result
