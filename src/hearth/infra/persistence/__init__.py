"""Hearth Infra Persistence -- SQL engine, read-side tables and shared repositories."""

from hearth.infra.persistence.database import (
    DatabaseManager,
    DatabaseSettings,
    get_database_manager,
    get_sync_session_factory,
)
from hearth.infra.persistence.dead_letter import SqlDeadLetterChannel
from hearth.infra.persistence.quarantine import SqlStreamQuarantine
from hearth.infra.persistence.tables import metadata
from hearth.infra.persistence.tracking import TrackingRepository

__all__ = [
    "DatabaseManager",
    "DatabaseSettings",
    "SqlDeadLetterChannel",
    "SqlStreamQuarantine",
    "TrackingRepository",
    "get_database_manager",
    "get_sync_session_factory",
    "metadata",
]
