"""Read model projections of the tasks bounded context."""

from hearth.domain.tasks.infrastructure.projections.task_list import TaskListProjection

__all__ = ["TaskListProjection"]
