"""Port interface for flagging aggregates whose stream is corrupt.

A corrupt stream cannot be repaired by retrying. Writers that meet one
flag the aggregate here so an operator can inspect it; the error still
reaches the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class QuarantinedStream:
    """One aggregate flagged for manual inspection.

    Attributes:
        tenant_id: Tenant owning the stream.
        aggregate_id: Aggregate whose stream failed to fold or decode.
        error_code: ``error_code`` of the failure.
        error_message: Human-readable failure description.
    """

    tenant_id: str
    aggregate_id: str
    error_code: str
    error_message: str


@runtime_checkable
class StreamQuarantinePort(Protocol):
    """Port recording aggregates that need manual inspection."""

    def flag(self, entry: QuarantinedStream) -> None:
        """Flag an aggregate. Flagging it again replaces the recorded error."""
        ...
