"""Port interfaces (protocols) for infrastructure the domain depends on."""

from hearth.foundation.domain.ports.dead_letter import DeadLetter, DeadLetterPort
from hearth.foundation.domain.ports.membership import TenantMembershipPort
from hearth.foundation.domain.ports.quarantine import QuarantinedStream, StreamQuarantinePort

__all__ = [
    "DeadLetter",
    "DeadLetterPort",
    "QuarantinedStream",
    "StreamQuarantinePort",
    "TenantMembershipPort",
]
