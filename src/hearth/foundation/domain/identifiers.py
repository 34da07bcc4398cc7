"""Identifier value objects and helpers.

Tasks and events are identified by ULIDs: 26-character, Crockford base32,
lexicographically sortable by creation time. Event streams are addressed by a
deterministic UUID derived from the ``(tenant, aggregate)`` pair so that the
same task identifier can never collide across tenants.

Example:
    >>> from hearth.foundation.domain.identifiers import TenantId, new_ulid, stream_id
    >>> tenant = TenantId("smith-family")
    >>> task_id = new_ulid()
    >>> stream_id(tenant.value, task_id).version
    5
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import ClassVar
from uuid import UUID, uuid5

from ulid import ULID

from hearth.foundation.domain.exceptions import ValidationError

# Namespace for stream UUIDs. Changing it orphans every stored stream.
STREAM_NAMESPACE = UUID("6f0c1d52-3b8e-5d7a-9c41-8a2e7f5b0d13")

ULID_LENGTH = 26


@dataclass(frozen=True)
class TenantId:
    """Tenant identifier with format validation.

    Attributes:
        value: Lowercase alphanumeric slug with optional hyphens.

    Raises:
        ValueError: If value doesn't match lowercase slug format.

    Example:
        >>> TenantId("smith-family")
        TenantId(value='smith-family')
    """

    value: str

    _PATTERN: ClassVar[re.Pattern[str]] = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

    def __post_init__(self) -> None:
        """Validate tenant ID format on construction."""
        if not self._PATTERN.match(self.value):
            msg = (
                f"Invalid tenant ID format: {self.value!r}. "
                "Must be lowercase alphanumeric with hyphens."
            )
            raise ValueError(msg)

    def __str__(self) -> str:
        """Return tenant ID string for serialization."""
        return self.value


def new_ulid() -> str:
    """Mint a fresh ULID string."""
    return str(ULID())


def new_event_id(after: str | None = None) -> str:
    """Mint an event identifier strictly greater than ``after``.

    Wall clocks drift between writers, so a freshly minted ULID can sort
    before the last event already in the stream. In that case the new id is
    the predecessor plus one, which keeps per-stream ids strictly increasing.

    Args:
        after: The last event id of the stream, if any.

    Returns:
        A ULID string.
    """
    candidate = ULID()
    if after is not None:
        previous = parse_ulid(after, field="event_id")
        if candidate <= previous:
            candidate = ULID.from_int(int(previous) + 1)
    return str(candidate)


def parse_ulid(value: str, *, field: str = "id") -> ULID:
    """Parse and validate a ULID string.

    Raises:
        ValidationError: If the value is not a 26-character ULID.
    """
    if not isinstance(value, str) or len(value) != ULID_LENGTH:
        raise ValidationError(field, f"must be a {ULID_LENGTH}-character ULID")
    try:
        return ULID.from_str(value)
    except ValueError as exc:
        raise ValidationError(field, "must be a valid ULID") from exc


def stream_id(tenant_id: str, aggregate_id: str) -> UUID:
    """Deterministic event stream identifier for one aggregate of one tenant."""
    return uuid5(STREAM_NAMESPACE, f"{tenant_id}:{aggregate_id}")
