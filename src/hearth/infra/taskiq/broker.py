"""TaskIQ broker and scheduler configuration with Redis Stream.

The broker runs the scheduled maintenance jobs (snapshot sweeps, change feed
drains). Nothing connects to Redis until the broker starts up.

Usage:
    from hearth.infra.taskiq import broker

    @broker.task(schedule=[{"cron": "0 * * * *"}])
    async def hourly_task() -> None:
        pass

    # Start worker
    # taskiq worker hearth.infra.taskiq.broker:broker hearth.domain.tasks.jobs

    # Start scheduler (single instance only)
    # taskiq scheduler hearth.infra.taskiq.broker:scheduler hearth.domain.tasks.jobs
"""

from __future__ import annotations

from functools import lru_cache

from taskiq import TaskiqScheduler
from taskiq.schedule_sources import LabelScheduleSource
from taskiq_redis import RedisAsyncResultBackend, RedisStreamBroker

from hearth.infra.taskiq.settings import get_taskiq_settings


@lru_cache(maxsize=1)
def get_result_backend() -> RedisAsyncResultBackend[str]:
    """Get or create the TaskIQ result backend."""
    settings = get_taskiq_settings()
    return RedisAsyncResultBackend(
        redis_url=settings.redis_url,
        result_ex_time=settings.result_ttl,
    )


@lru_cache(maxsize=1)
def get_broker() -> RedisStreamBroker:
    """Get or create the TaskIQ broker with its result backend attached."""
    settings = get_taskiq_settings()
    return RedisStreamBroker(
        url=settings.redis_url,
    ).with_result_backend(get_result_backend())


@lru_cache(maxsize=1)
def get_scheduler() -> TaskiqScheduler:
    """Get or create the TaskIQ scheduler.

    Schedules come from the ``schedule=[...]`` labels of registered tasks.

    WARNING: Only run ONE scheduler instance per deployment; every instance
    enqueues every scheduled job.
    """
    _broker = get_broker()
    return TaskiqScheduler(broker=_broker, sources=[LabelScheduleSource(_broker)])


# The taskiq CLI expects module-level ``broker`` and ``scheduler`` names.
# They resolve through the factories on first attribute access.


class _LazyBroker:
    """Lazy proxy that defers broker creation until first attribute access."""

    _instance: RedisStreamBroker | None = None

    def _get(self) -> RedisStreamBroker:
        if self._instance is None:
            self._instance = get_broker()
        return self._instance

    def __getattr__(self, name: str) -> object:
        return getattr(self._get(), name)


class _LazyScheduler:
    """Lazy proxy that defers scheduler creation until first attribute access."""

    _instance: TaskiqScheduler | None = None

    def _get(self) -> TaskiqScheduler:
        if self._instance is None:
            self._instance = get_scheduler()
        return self._instance

    def __getattr__(self, name: str) -> object:
        return getattr(self._get(), name)


broker: RedisStreamBroker = _LazyBroker()  # type: ignore[assignment]
scheduler: TaskiqScheduler = _LazyScheduler()  # type: ignore[assignment]
