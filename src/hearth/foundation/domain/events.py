"""Base event classes for domain event sourcing.

This module provides the foundational event class that all domain events
inherit from. It extends the eventsourcing library's DomainEvent with
multi-tenancy, time-sortable event identifiers, audit attribution and
distributed tracing fields.

Example:
    Define a domain event by subclassing BaseEvent. The eventsourcing
    metaclass turns every subclass into a frozen dataclass, so no decorator
    is needed. Payload fields follow the defaulted envelope fields and must
    have defaults; check presence in ``__post_init__``::

        from typing import ClassVar

        from hearth.foundation.domain.events import BaseEvent

        class ChoreCreated(BaseEvent):
            kind: ClassVar[str] = "chore_created"
            schema_version: ClassVar[int] = 1

            title: str = ""

        ChoreCreated.get_topic()
        # Returns: "chore_created.v1"

Event Schema Evolution Strategy:
    Events are immutable once persisted. Every stored event records its
    ``kind`` and ``schema_version`` in its topic (``"<kind>.v<schema>"``).

    **Backward-compatible changes** (safe without upcaster):
    - Adding optional fields with defaults

    **Breaking changes** (require an upcaster):
    - Renaming, retyping or removing fields
    - Adding a field whose presence ``__post_init__`` enforces

    Upcasters are registered on the event codec
    (``hearth.infra.eventsourcing.codec``) as functions lifting a stored
    state dict from schema ``n`` to ``n + 1``. Decoding applies them in
    sequence until the event reaches the class's current schema version.
"""

from __future__ import annotations

import re
from dataclasses import field
from enum import StrEnum
from typing import Any, ClassVar

from eventsourcing.domain import DomainEvent


class BaseEvent(DomainEvent):
    """Base class for all domain events.

    Extends eventsourcing.domain.DomainEvent with cross-cutting concerns:

    - Multi-tenancy via required tenant_id field
    - Time-sortable event_id (ULID) used as the idempotency key downstream
    - Audit trail via the required acting user_id
    - Distributed tracing via correlation_id and causation_id

    Attributes:
        tenant_id: Family (tenant) identifier. Lowercase slug, 2-63 characters.
        task_id: ULID of the aggregate the event belongs to.
        event_id: ULID of this event, strictly increasing within a stream.
        user_id: Acting user identifier for audit trail.
        correlation_id: Request or workflow ID for distributed tracing.
        causation_id: Parent event or command ID that triggered this event.

    Inherited from DomainEvent (eventsourcing library):
        originator_id: Stream UUID derived from (tenant_id, task_id).
        originator_version: Position in the stream, starting at 1.
        timestamp: Event occurrence time (datetime with timezone, UTC).

    Class attributes:
        kind: Tag of the event variant, stable across schema versions.
        schema_version: Current payload schema version of the variant.
    """

    kind: ClassVar[str] = "base_event"
    schema_version: ClassVar[int] = 1

    tenant_id: str
    task_id: str
    event_id: str
    user_id: str

    correlation_id: str | None = None
    causation_id: str | None = None

    # Pattern: lowercase alphanumeric, can contain hyphens but not at start/end
    _TENANT_ID_PATTERN: ClassVar[re.Pattern[str]] = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")

    def __post_init__(self) -> None:
        """Validate fields after dataclass initialization.

        Raises:
            ValueError: If tenant_id doesn't match format or length
                requirements, or user_id is blank.
        """
        self._validate_tenant_id(self.tenant_id)
        if not self.user_id or not self.user_id.strip():
            msg = "user_id must not be empty"
            raise ValueError(msg)

    @classmethod
    def _validate_tenant_id(cls, value: str) -> str:
        """Validate tenant_id follows lowercase slug format.

        Format rules:
        - Lowercase alphanumeric characters and hyphens only
        - Must start and end with alphanumeric character
        - Length: 2-63 characters (DNS label compatible)

        Raises:
            ValueError: If tenant_id doesn't match format or length requirements.
        """
        if not 2 <= len(value) <= 63:
            msg = f"Invalid tenant_id '{value}': length must be 2-63 characters (got {len(value)})"
            raise ValueError(msg)

        if not cls._TENANT_ID_PATTERN.match(value):
            msg = (
                f"Invalid tenant_id '{value}': must be lowercase alphanumeric "
                f"with hyphens, starting and ending with alphanumeric"
            )
            raise ValueError(msg)

        return value

    @classmethod
    def get_topic(cls) -> str:
        """Get the storage topic of this event class.

        Returns:
            Topic string in format ``"<kind>.v<schema_version>"``.
        """
        return f"{cls.kind}.v{cls.schema_version}"

    def payload(self) -> dict[str, Any]:
        """Kind-specific fields of the event.

        Subclasses with a payload override this method.
        """
        return {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to a JSON-friendly dictionary.

        UUIDs become hyphenated strings and datetimes ISO 8601 strings.
        Kind-specific fields come from :meth:`payload`.
        """
        return {
            "kind": self.kind,
            "schema_version": self.schema_version,
            "event_id": self.event_id,
            "tenant_id": self.tenant_id,
            "task_id": self.task_id,
            "originator_id": str(self.originator_id),
            "originator_version": self.originator_version,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "correlation_id": self.correlation_id,
            "causation_id": self.causation_id,
            **self.payload(),
        }


class UnknownEvent(BaseEvent):
    """Placeholder for a stored event whose topic this code base does not know.

    Produced by the codec instead of failing, so that readers written before
    a new event kind was introduced keep working. Replay decides what to do
    with it according to :class:`UnknownEventPolicy`.

    Attributes:
        topic: The stored topic that could not be resolved.
        data: The decoded state, kept verbatim.
    """

    kind: ClassVar[str] = "unknown"

    topic: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.topic:
            msg = "topic must not be empty"
            raise ValueError(msg)

    def payload(self) -> dict[str, Any]:
        return {"topic": self.topic, "data": self.data}


class UnknownEventPolicy(StrEnum):
    """What replay does with an :class:`UnknownEvent`."""

    SKIP = "skip"
    """Log a warning, advance the version, leave business state untouched."""

    REJECT = "reject"
    """Raise UnknownEventKindError and stop the replay."""
