"""Event store and write-path configuration using Pydantic settings.

This module provides type-safe configuration for:

- the eventsourcing library recorder (in-memory POPO or PostgreSQL),
- the command processor's optimistic-lock retry loop,
- snapshot thresholds,
- change feed consumption,
- replay behaviour for unknown event kinds.

Settings are loaded from environment variables and validated by Pydantic.
Each group has a cached ``get_*`` accessor; clear it with ``.cache_clear()``
in tests.
"""

from __future__ import annotations

import os
import warnings
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hearth.foundation.domain.events import UnknownEventPolicy

POPO_MODULE = "eventsourcing.popo"
POSTGRES_MODULE = "eventsourcing.postgres"


class EventSourcingSettings(BaseSettings):
    """Configuration for the eventsourcing library recorder.

    Environment Variables:
        PERSISTENCE_MODULE: Module path for persistence backend
            (default: eventsourcing.popo, in-memory)

        PostgreSQL Connection (required when PERSISTENCE_MODULE is
        eventsourcing.postgres):
        POSTGRES_DBNAME: Database name
        POSTGRES_HOST: PostgreSQL host (default: localhost)
        POSTGRES_PORT: PostgreSQL port (default: 5432)
        POSTGRES_USER: Database user
        POSTGRES_PASSWORD: Database password (hidden in logs)

        Connection Pooling:
        POSTGRES_POOL_SIZE: Base pool size (default: 5)
        POSTGRES_MAX_OVERFLOW: Additional connections for bursts (default: 10)
        POSTGRES_CONNECT_TIMEOUT: Connection timeout in seconds (default: 30)

        Table Management:
        CREATE_TABLE: Auto-create tables if not exist (default: true)
        POSTGRES_SCHEMA: PostgreSQL schema name (default: public)

    Example:
        >>> settings = EventSourcingSettings(
        ...     persistence_module="eventsourcing.postgres",
        ...     postgres_dbname="hearth",
        ...     postgres_user="user",
        ...     postgres_password="pass",
        ... )
        >>> settings.to_env_dict()["POSTGRES_DBNAME"]
        'hearth'
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    persistence_module: str = Field(
        default=POPO_MODULE,
        description="eventsourcing persistence module (eventsourcing.popo or eventsourcing.postgres)",
    )

    postgres_dbname: str | None = Field(default=None, description="PostgreSQL database name")
    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_user: str | None = Field(default=None, description="PostgreSQL user")
    postgres_password: str | None = Field(
        default=None,
        repr=False,
        description="PostgreSQL password (hidden in logs)",
    )

    postgres_pool_size: int = Field(default=5, ge=1, le=50, description="Base pool size")
    postgres_max_overflow: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Additional connections beyond pool size",
    )
    postgres_connect_timeout: int = Field(
        default=30,
        ge=5,
        description="Connection timeout in seconds",
    )

    create_table: bool = Field(
        default=True,
        description="Auto-create tables if not exist (dev: true, prod: false)",
    )
    postgres_schema: str = Field(
        default="public",
        description="PostgreSQL schema for event store tables",
    )

    @field_validator("postgres_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate PostgreSQL port is in valid range."""
        if not 1 <= v <= 65535:
            msg = "postgres_port must be between 1 and 65535"
            raise ValueError(msg)
        return v

    @field_validator("persistence_module")
    @classmethod
    def validate_persistence_module(cls, v: str) -> str:
        """Only the in-memory and PostgreSQL recorders are supported."""
        if v not in {POPO_MODULE, POSTGRES_MODULE}:
            msg = f"persistence_module must be {POPO_MODULE} or {POSTGRES_MODULE}"
            raise ValueError(msg)
        return v

    @field_validator("create_table")
    @classmethod
    def validate_create_table_for_production(cls, v: bool) -> bool:
        """Warn if CREATE_TABLE=true in production environment."""
        environment = os.getenv("ENVIRONMENT", "development")

        if environment == "production" and v:
            warnings.warn(
                "CREATE_TABLE=true in production environment. Consider using migrations instead.",
                UserWarning,
                stacklevel=2,
            )

        return v

    @model_validator(mode="after")
    def _require_postgres_credentials(self) -> EventSourcingSettings:
        """PostgreSQL needs database name, user and password."""
        if self.is_postgres:
            missing = [
                name
                for name in ("postgres_dbname", "postgres_user", "postgres_password")
                if not getattr(self, name)
            ]
            if missing:
                msg = f"{', '.join(missing)} required when persistence_module is {POSTGRES_MODULE}"
                raise ValueError(msg)
        return self

    @property
    def is_postgres(self) -> bool:
        return self.persistence_module == POSTGRES_MODULE

    def to_env_dict(self) -> dict[str, str]:
        """Convert settings to an environment dictionary for the recorder factory.

        Returns:
            Dictionary with uppercase keys suitable for
            ``InfrastructureFactory.construct(Environment(env=...))``.
        """
        env = {"PERSISTENCE_MODULE": self.persistence_module}
        if not self.is_postgres:
            return env
        env.update(
            {
                "POSTGRES_DBNAME": self.postgres_dbname or "",
                "POSTGRES_HOST": self.postgres_host,
                "POSTGRES_PORT": str(self.postgres_port),
                "POSTGRES_USER": self.postgres_user or "",
                "POSTGRES_PASSWORD": self.postgres_password or "",
                "POSTGRES_POOL_SIZE": str(self.postgres_pool_size),
                "POSTGRES_MAX_OVERFLOW": str(self.postgres_max_overflow),
                "POSTGRES_CONNECT_TIMEOUT": str(self.postgres_connect_timeout),
                "CREATE_TABLE": str(self.create_table).lower(),
                "POSTGRES_SCHEMA": self.postgres_schema,
            }
        )
        return env


class CommandRetrySettings(BaseSettings):
    """Optimistic-lock retry policy of the command processor.

    The delay before retry ``n`` is ``initial_delay * multiplier ** n`` capped
    at ``max_delay``, plus up to ``jitter`` seconds of random spread.

    Environment Variables:
        COMMAND_RETRY_MAX_ATTEMPTS: Attempts including the first (default: 10)
        COMMAND_RETRY_INITIAL_DELAY: First backoff in seconds (default: 0.05)
        COMMAND_RETRY_MAX_DELAY: Backoff ceiling in seconds (default: 5.0)
        COMMAND_RETRY_MULTIPLIER: Exponential base (default: 1.5)
        COMMAND_RETRY_JITTER: Maximum random spread in seconds (default: 0.05)
    """

    model_config = SettingsConfigDict(
        env_prefix="COMMAND_RETRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    max_attempts: int = Field(default=10, ge=1, le=50)
    initial_delay: float = Field(default=0.05, ge=0.0)
    max_delay: float = Field(default=5.0, ge=0.0)
    multiplier: float = Field(default=1.5, ge=1.0)
    jitter: float = Field(default=0.05, ge=0.0)

    @model_validator(mode="after")
    def _check_delays(self) -> CommandRetrySettings:
        if self.max_delay < self.initial_delay:
            msg = "max_delay must not be smaller than initial_delay"
            raise ValueError(msg)
        return self


class SnapshotSettings(BaseSettings):
    """Snapshot thresholds and retention.

    Environment Variables:
        SNAPSHOT_EVENT_THRESHOLD: Events since the last cutoff that trigger a
            new snapshot (default: 100)
        SNAPSHOT_AGE_THRESHOLD_DAYS: Age of the last snapshot that triggers a
            new one (default: 7)
        SNAPSHOT_KEEP_COUNT: Newest snapshots kept without expiry (default: 5)
        SNAPSHOT_TTL_DAYS: Grace period before superseded snapshots are
            purged (default: 90)
        SNAPSHOT_SWEEP_BATCH_SIZE: Tasks visited per sweep page (default: 200)
    """

    model_config = SettingsConfigDict(
        env_prefix="SNAPSHOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    event_threshold: int = Field(default=100, ge=1)
    age_threshold_days: int = Field(default=7, ge=1)
    keep_count: int = Field(default=5, ge=1)
    ttl_days: int = Field(default=90, ge=1)
    sweep_batch_size: int = Field(default=200, ge=1, le=10_000)


class ChangeFeedSettings(BaseSettings):
    """Change feed consumption.

    Environment Variables:
        CHANGE_FEED_BATCH_SIZE: Notifications read per poll (default: 100)
        CHANGE_FEED_POLL_INTERVAL: Seconds between polls when idle (default: 1.0)
        CHANGE_FEED_SHUTDOWN_TIMEOUT: Seconds to wait for the loop to stop
            (default: 10.0)
        CHANGE_FEED_MAX_DELIVERY_ATTEMPTS: Failed deliveries of one
            notification before it is dead-lettered (default: 5)
    """

    model_config = SettingsConfigDict(
        env_prefix="CHANGE_FEED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    batch_size: int = Field(default=100, ge=1, le=10_000)
    poll_interval: float = Field(default=1.0, gt=0.0, le=60.0)
    shutdown_timeout: float = Field(default=10.0, gt=0.0)
    max_delivery_attempts: int = Field(default=5, ge=1, le=1000)


class ReplaySettings(BaseSettings):
    """Replay behaviour.

    Environment Variables:
        REPLAY_UNKNOWN_EVENT_POLICY: ``skip`` (default) or ``reject``
    """

    model_config = SettingsConfigDict(
        env_prefix="REPLAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    unknown_event_policy: UnknownEventPolicy = UnknownEventPolicy.SKIP


@lru_cache(maxsize=1)
def get_command_retry_settings() -> CommandRetrySettings:
    return CommandRetrySettings()


@lru_cache(maxsize=1)
def get_snapshot_settings() -> SnapshotSettings:
    return SnapshotSettings()


@lru_cache(maxsize=1)
def get_change_feed_settings() -> ChangeFeedSettings:
    return ChangeFeedSettings()


@lru_cache(maxsize=1)
def get_replay_settings() -> ReplaySettings:
    return ReplaySettings()
