"""Infrastructure of the tasks bounded context: codec, repositories, projections."""

from hearth.domain.tasks.infrastructure.event_codec import build_task_event_codec
from hearth.domain.tasks.infrastructure.membership_repository import (
    SqlTenantMembershipRepository,
)
from hearth.domain.tasks.infrastructure.snapshot_manager import (
    SnapshotManager,
    SnapshotSweepResult,
)
from hearth.domain.tasks.infrastructure.snapshot_repository import Snapshot, SnapshotRepository
from hearth.domain.tasks.infrastructure.task_projection_repository import (
    TaskProjectionRepository,
)

__all__ = [
    "Snapshot",
    "SnapshotManager",
    "SnapshotRepository",
    "SnapshotSweepResult",
    "SqlTenantMembershipRepository",
    "TaskProjectionRepository",
    "build_task_event_codec",
]
