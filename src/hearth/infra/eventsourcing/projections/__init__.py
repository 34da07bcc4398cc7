"""Projection infrastructure for CQRS read models."""

from hearth.infra.eventsourcing.projections.base import BaseProjection
from hearth.infra.eventsourcing.projections.rebuilder import ProjectionRebuilder

__all__ = [
    "BaseProjection",
    "ProjectionRebuilder",
]
