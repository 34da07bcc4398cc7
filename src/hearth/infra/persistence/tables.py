"""Read-side table definitions.

Tables are declared with SQLAlchemy Core so ``DatabaseManager.create_schema``
can create them in development and tests. Repositories talk to them with
plain ``text()`` SQL that runs on both PostgreSQL and SQLite.

Timestamps are stored as ISO 8601 strings in UTC, which sort
chronologically as text.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    Index,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

task_projection = Table(
    "task_projection",
    metadata,
    Column("tenant_id", String(63), primary_key=True),
    Column("task_id", String(26), primary_key=True),
    Column("title", String(200), nullable=False),
    Column("description", Text, nullable=True),
    Column("tags", Text, nullable=False, default="[]"),
    # 'active' | 'completed' | NULL once tombstoned
    Column("status_index", String(16), nullable=True),
    Column("completed", Boolean, nullable=False, default=False),
    Column("deleted", Boolean, nullable=False, default=False),
    Column("created_by", String(128), nullable=False),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
    Column("completed_at", String(40), nullable=True),
    Column("deleted_at", String(40), nullable=True),
    Column("version", Integer, nullable=False),
    Column("last_event_id", String(26), nullable=False),
    Index("ix_task_projection_status", "tenant_id", "status_index", "task_id"),
)

task_snapshots = Table(
    "task_snapshots",
    metadata,
    Column("tenant_id", String(63), primary_key=True),
    Column("task_id", String(26), primary_key=True),
    Column("cutoff_event_id", String(26), primary_key=True),
    Column("version", Integer, nullable=False),
    Column("state", Text, nullable=False),
    Column("created_at", String(40), nullable=False),
    Column("expires_at", String(40), nullable=True),
    Index("ix_task_snapshots_stream_version", "tenant_id", "task_id", "version"),
)

change_feed_positions = Table(
    "change_feed_positions",
    metadata,
    Column("consumer", String(128), primary_key=True),
    Column("position", Integer, nullable=False),
    Column("updated_at", String(40), nullable=False),
)

dead_letters = Table(
    "dead_letters",
    metadata,
    Column("consumer", String(128), primary_key=True),
    Column("notification_id", Integer, primary_key=True),
    Column("topic", String(128), nullable=False),
    Column("originator_id", String(36), nullable=False),
    Column("originator_version", Integer, nullable=False),
    Column("error_code", String(64), nullable=False),
    Column("error_message", Text, nullable=False),
    Column("state", LargeBinary, nullable=False),
    Column("created_at", String(40), nullable=False),
)

tenant_members = Table(
    "tenant_members",
    metadata,
    Column("tenant_id", String(63), primary_key=True),
    Column("user_id", String(128), primary_key=True),
    Column("role", String(32), nullable=False, default="member"),
    Column("joined_at", String(40), nullable=False),
)

quarantined_streams = Table(
    "quarantined_streams",
    metadata,
    Column("tenant_id", String(63), primary_key=True),
    Column("aggregate_id", String(26), primary_key=True),
    Column("error_code", String(64), nullable=False),
    Column("error_message", Text, nullable=False),
    Column("flagged_at", String(40), nullable=False),
)

delivery_attempts = Table(
    "delivery_attempts",
    metadata,
    Column("consumer", String(128), primary_key=True),
    Column("notification_id", Integer, primary_key=True),
    Column("attempts", Integer, nullable=False),
    Column("last_error", Text, nullable=True),
    Column("updated_at", String(40), nullable=False),
)
