"""Scheduled maintenance jobs of the tasks bounded context.

- ``snapshot_sweep`` (hourly): snapshot every task that is due, then purge
  expired snapshots.
- ``drain_change_feed`` (every minute): push pending events into the task
  list projection. Deployments that run a ``ChangeFeedRunner`` loop next to
  the API can leave this job as a safety net; positions are shared, so the
  two never apply an event twice.

Run with::

    taskiq worker hearth.infra.taskiq.broker:broker hearth.domain.tasks.jobs
    taskiq scheduler hearth.infra.taskiq.broker:scheduler hearth.domain.tasks.jobs
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from taskiq import TaskiqEvents, TaskiqState

from hearth.domain.tasks.bootstrap import get_task_services
from hearth.infra.eventsourcing.retry import transient_retrying
from hearth.infra.observability.logging import configure_logging
from hearth.infra.taskiq.broker import broker
from hearth.infra.taskiq.settings import get_taskiq_settings

if TYPE_CHECKING:
    from hearth.domain.tasks.bootstrap import TaskServices

logger = logging.getLogger(__name__)

_settings = get_taskiq_settings()


async def run_snapshot_sweep(services: TaskServices) -> dict[str, int]:
    """Sweep snapshots and purge expired ones. Returns the counters."""
    result = await services.snapshots.sweep()
    async for attempt in transient_retrying():
        with attempt:
            purged = await services.snapshots.purge_expired()
    return {
        "processed": result.processed,
        "created": result.created,
        "errors": result.errors,
        "purged": purged,
    }


async def run_change_feed_drain(services: TaskServices) -> dict[str, int]:
    """Drain the task list change feed. Returns the per-outcome counts.

    A failed poll or commit is retried with backoff; the deliveries of a
    failed attempt are redelivered by the next one.
    """
    async for attempt in transient_retrying():
        with attempt:
            result = await services.runner().drain()
    if result.dead_lettered:
        logger.warning(
            "change_feed_drain_dead_lettered",
            extra={"notification_ids": result.dead_lettered},
        )
    return {
        "processed": len(result.processed),
        "skipped": len(result.skipped),
        "retry": len(result.retry),
        "dead_lettered": len(result.dead_lettered),
    }


@broker.on_event(TaskiqEvents.WORKER_STARTUP)
async def _configure_worker(state: TaskiqState) -> None:
    configure_logging()
    logger.info("task_worker_started")


@broker.task(
    task_name="hearth.tasks.snapshot_sweep",
    schedule=[{"cron": _settings.snapshot_sweep_cron}],
)
async def snapshot_sweep() -> dict[str, int]:
    return await run_snapshot_sweep(get_task_services())


@broker.task(
    task_name="hearth.tasks.drain_change_feed",
    schedule=[{"cron": _settings.change_feed_cron}],
)
async def drain_change_feed() -> dict[str, int]:
    return await run_change_feed_drain(get_task_services())
