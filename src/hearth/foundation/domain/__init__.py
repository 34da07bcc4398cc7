"""Hearth Foundation Domain -- domain primitives shared by every bounded context.

This package provides identifiers, the exception hierarchy, the base event
class and the port interfaces the task engine depends on.
"""

from hearth.foundation.domain.events import BaseEvent, UnknownEvent, UnknownEventPolicy
from hearth.foundation.domain.exceptions import (
    AuthorizationError,
    ConcurrencyConflictError,
    ConflictError,
    CorruptStreamError,
    DomainError,
    InvalidStateTransitionError,
    MalformedEventError,
    NotFoundError,
    StaleSnapshotError,
    TransientInfrastructureError,
    UnknownEventKindError,
    ValidationError,
    VersionConflictError,
)
from hearth.foundation.domain.identifiers import (
    TenantId,
    new_event_id,
    new_ulid,
    parse_ulid,
    stream_id,
)
from hearth.foundation.domain.ports import (
    DeadLetter,
    DeadLetterPort,
    QuarantinedStream,
    StreamQuarantinePort,
    TenantMembershipPort,
)

__all__ = [
    "AuthorizationError",
    "BaseEvent",
    "ConcurrencyConflictError",
    "ConflictError",
    "CorruptStreamError",
    "DeadLetter",
    "DeadLetterPort",
    "DomainError",
    "InvalidStateTransitionError",
    "MalformedEventError",
    "NotFoundError",
    "QuarantinedStream",
    "StaleSnapshotError",
    "StreamQuarantinePort",
    "TenantId",
    "TenantMembershipPort",
    "TransientInfrastructureError",
    "UnknownEvent",
    "UnknownEventKindError",
    "UnknownEventPolicy",
    "ValidationError",
    "VersionConflictError",
    "new_event_id",
    "new_ulid",
    "parse_ulid",
    "stream_id",
]
