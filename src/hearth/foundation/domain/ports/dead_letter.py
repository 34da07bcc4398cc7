"""Port interface for the dead-letter channel.

Events that a consumer cannot apply for a permanent reason (malformed
payload, corrupt stream) are parked on the dead-letter channel for manual
inspection instead of blocking the rest of the change feed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class DeadLetter:
    """One parked event.

    Attributes:
        consumer: Name of the consumer that gave up on the event.
        notification_id: Position of the event in the global change feed.
        topic: Stored topic of the event (``"<kind>.v<schema>"``).
        originator_id: Stream identifier, as a string.
        originator_version: Position of the event in its stream.
        error_code: ``error_code`` of the failure.
        error_message: Human-readable failure description.
        state: Raw stored payload, kept verbatim for reprocessing.
    """

    consumer: str
    notification_id: int
    topic: str
    originator_id: str
    originator_version: int
    error_code: str
    error_message: str
    state: bytes


@runtime_checkable
class DeadLetterPort(Protocol):
    """Port for recording events a consumer could not process."""

    def send(self, letter: DeadLetter) -> None:
        """Record a dead letter. Must be idempotent per (consumer, notification_id)."""
        ...
