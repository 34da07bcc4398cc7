"""Bounded, jittered retry policies built on tenacity.

Two policies are provided:

- :func:`version_conflict_retrying` re-runs a whole load-validate-append
  cycle when the event store reports a :class:`VersionConflictError`.
- :func:`transient_retrying` re-runs a single infrastructure call that
  failed with :class:`TransientInfrastructureError` or a SQLAlchemy
  ``OperationalError`` from the read-side database.

Both stop after a fixed number of attempts and sleep with exponential,
jittered backoff between them (``asyncio.sleep``, never busy-waiting).

Example:
    >>> async for attempt in version_conflict_retrying(settings):
    ...     with attempt:
    ...         return await cycle()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import OperationalError as SQLOperationalError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from hearth.foundation.domain.exceptions import (
    TransientInfrastructureError,
    VersionConflictError,
)

if TYPE_CHECKING:
    from hearth.infra.eventsourcing.settings import CommandRetrySettings

logger = logging.getLogger(__name__)

# Datastore retry defaults: 5 attempts, 100ms doubling up to 10s.
TRANSIENT_MAX_ATTEMPTS = 5
TRANSIENT_INITIAL_DELAY = 0.1
TRANSIENT_MAX_DELAY = 10.0


def version_conflict_retrying(settings: CommandRetrySettings) -> AsyncRetrying:
    """Retry policy for optimistic-lock conflicts.

    Raises ``tenacity.RetryError`` once ``settings.max_attempts`` attempts
    have all conflicted; callers translate it into a
    ``ConcurrencyConflictError``.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(settings.max_attempts),
        wait=wait_exponential(
            multiplier=settings.initial_delay,
            max=settings.max_delay,
            exp_base=settings.multiplier,
        )
        + wait_random(0, settings.jitter),
        retry=retry_if_exception_type(VersionConflictError),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        reraise=False,
    )


def transient_retrying(
    max_attempts: int = TRANSIENT_MAX_ATTEMPTS,
    initial_delay: float = TRANSIENT_INITIAL_DELAY,
    max_delay: float = TRANSIENT_MAX_DELAY,
) -> AsyncRetrying:
    """Retry policy for transient storage failures.

    Re-raises the last error when attempts run out.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=initial_delay, max=max_delay)
        + wait_random(0, initial_delay),
        retry=retry_if_exception_type((TransientInfrastructureError, SQLOperationalError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
