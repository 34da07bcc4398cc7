"""Unit tests for environment-driven settings."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from hearth.foundation.domain.events import UnknownEventPolicy
from hearth.infra.eventsourcing.settings import (
    POSTGRES_MODULE,
    ChangeFeedSettings,
    CommandRetrySettings,
    EventSourcingSettings,
    ReplaySettings,
    SnapshotSettings,
)
from hearth.infra.persistence.database import DatabaseSettings
from hearth.infra.taskiq.settings import TaskIQSettings


class TestEventSourcingSettings:
    @pytest.mark.unit
    def test_defaults_to_in_memory(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            settings = EventSourcingSettings()
        assert settings.is_postgres is False
        assert settings.to_env_dict() == {"PERSISTENCE_MODULE": "eventsourcing.popo"}

    @pytest.mark.unit
    def test_postgres_requires_credentials(self) -> None:
        with (
            patch.dict("os.environ", {}, clear=True),
            pytest.raises(ValidationError, match="postgres_dbname"),
        ):
            EventSourcingSettings(persistence_module=POSTGRES_MODULE)

    @pytest.mark.unit
    def test_postgres_env_dict(self) -> None:
        settings = EventSourcingSettings(
            persistence_module=POSTGRES_MODULE,
            postgres_dbname="hearth",
            postgres_user="hearth",
            postgres_password="secret",
        )
        env = settings.to_env_dict()
        assert env["POSTGRES_DBNAME"] == "hearth"
        assert env["CREATE_TABLE"] == "true"
        assert "secret" not in repr(settings)

    @pytest.mark.unit
    def test_rejects_other_backends(self) -> None:
        with pytest.raises(ValidationError):
            EventSourcingSettings(persistence_module="eventsourcing.sqlite")

    @pytest.mark.unit
    def test_warns_on_create_table_in_production(self) -> None:
        with (
            patch.dict("os.environ", {"ENVIRONMENT": "production"}, clear=True),
            pytest.warns(UserWarning, match="CREATE_TABLE"),
        ):
            EventSourcingSettings()


class TestWritePathSettings:
    @pytest.mark.unit
    def test_retry_defaults(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            settings = CommandRetrySettings()
        assert settings.max_attempts == 10
        assert settings.initial_delay == 0.05

    @pytest.mark.unit
    def test_retry_from_env(self) -> None:
        with patch.dict("os.environ", {"COMMAND_RETRY_MAX_ATTEMPTS": "4"}, clear=True):
            assert CommandRetrySettings().max_attempts == 4

    @pytest.mark.unit
    def test_retry_ceiling_below_floor(self) -> None:
        with pytest.raises(ValidationError, match="max_delay"):
            CommandRetrySettings(initial_delay=2.0, max_delay=1.0)

    @pytest.mark.unit
    def test_snapshot_defaults(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            settings = SnapshotSettings()
        assert (settings.event_threshold, settings.age_threshold_days) == (100, 7)
        assert (settings.keep_count, settings.ttl_days) == (5, 90)

    @pytest.mark.unit
    def test_change_feed_poll_interval_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ChangeFeedSettings(poll_interval=0)

    @pytest.mark.unit
    def test_replay_policy_from_env(self) -> None:
        with patch.dict("os.environ", {"REPLAY_UNKNOWN_EVENT_POLICY": "reject"}, clear=True):
            assert ReplaySettings().unknown_event_policy is UnknownEventPolicy.REJECT


class TestDatabaseSettings:
    @pytest.mark.unit
    def test_builds_postgres_url(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            settings = DatabaseSettings(host="db", name="family")
        assert settings.database_url == "postgresql+psycopg://postgres:postgres@db:5432/family"
        assert settings.is_sqlite is False

    @pytest.mark.unit
    def test_url_overrides_parts(self) -> None:
        settings = DatabaseSettings(url="sqlite:///hearth.db", host="ignored")
        assert settings.database_url == "sqlite:///hearth.db"
        assert settings.is_sqlite is True

    @pytest.mark.unit
    def test_invalid_url(self) -> None:
        with pytest.raises(ValidationError, match="Invalid database connection URL"):
            DatabaseSettings(url="not a url")


class TestTaskIQSettings:
    @pytest.mark.unit
    def test_defaults(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            settings = TaskIQSettings()
        assert settings.redis_url == "redis://localhost:6379/1"
        assert settings.snapshot_sweep_cron == "0 * * * *"
        assert settings.change_feed_cron == "* * * * *"

    @pytest.mark.unit
    def test_result_ttl_bounds(self) -> None:
        with pytest.raises(ValidationError):
            TaskIQSettings(result_ttl=10)
