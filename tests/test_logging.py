"""Unit tests for hearth.infra.observability.logging."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from unittest.mock import patch

import pytest
import structlog

from hearth.infra.observability.logging import (
    REDACTED_VALUE,
    LoggingSettings,
    SensitiveDataProcessor,
    configure_logging,
    get_logger,
    get_logging_settings,
)


@pytest.fixture()
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestLoggingSettings:
    @pytest.mark.unit
    def test_default_values(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            settings = LoggingSettings()
            assert settings.log_level == "INFO"
            assert settings.environment == "development"
            assert settings.use_json_logs is False

    @pytest.mark.unit
    def test_production_logs_json(self) -> None:
        assert LoggingSettings(environment="production").use_json_logs is True

    @pytest.mark.unit
    def test_level_is_normalized(self) -> None:
        settings = LoggingSettings(log_level="warning")
        assert settings.log_level == "WARNING"
        assert settings.log_level_int == logging.WARNING

    @pytest.mark.unit
    def test_invalid_level(self) -> None:
        with pytest.raises(ValueError, match="log_level"):
            LoggingSettings(log_level="CHATTY")

    @pytest.mark.unit
    def test_from_env_vars(self) -> None:
        with patch.dict("os.environ", {"LOG_LEVEL": "DEBUG", "ENVIRONMENT": "staging"}, clear=True):
            get_logging_settings.cache_clear()
            try:
                settings = get_logging_settings()
            finally:
                get_logging_settings.cache_clear()
        assert settings.log_level == "DEBUG"
        assert settings.environment == "staging"


class TestSensitiveDataProcessor:
    @pytest.mark.unit
    @pytest.mark.parametrize("key", ["password", "DSN", "postgres_password", "refresh_token"])
    def test_redacts(self, key: str) -> None:
        result = SensitiveDataProcessor()(None, "info", {"event": "connect", key: "hunter2"})
        assert result[key] == REDACTED_VALUE

    @pytest.mark.unit
    def test_leaves_ordinary_fields(self) -> None:
        result = SensitiveDataProcessor()(None, "info", {"event": "x", "task_id": "01J"})
        assert result["task_id"] == "01J"


class TestConfigureLogging:
    @pytest.mark.unit
    @pytest.mark.usefixtures("restore_root_logger")
    def test_stdlib_records_render_as_json_with_extra(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        configure_logging(LoggingSettings(environment="production", log_level="INFO"))

        logging.getLogger("hearth.test").info(
            "task_command_handled", extra={"task_id": "01J", "postgres_password": "pw"}
        )

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "task_command_handled"
        assert record["task_id"] == "01J"
        assert record["postgres_password"] == REDACTED_VALUE
        assert record["logger"] == "hearth.test"
        assert record["level"] == "info"

    @pytest.mark.unit
    @pytest.mark.usefixtures("restore_root_logger")
    def test_bound_context_is_merged(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(LoggingSettings(environment="production"))

        with structlog.contextvars.bound_contextvars(correlation_id="req-7"):
            logging.getLogger("hearth.test").warning("snapshot_stale")

        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert record["correlation_id"] == "req-7"

    @pytest.mark.unit
    @pytest.mark.usefixtures("restore_root_logger")
    def test_reconfiguring_replaces_handler(self) -> None:
        configure_logging(LoggingSettings())
        configure_logging(LoggingSettings())

        names = [h.get_name() for h in logging.getLogger().handlers]
        assert names.count("hearth") == 1

    @pytest.mark.unit
    @pytest.mark.usefixtures("restore_root_logger")
    def test_level_filters_records(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(LoggingSettings(environment="production", log_level="ERROR"))

        logging.getLogger("hearth.test").info("quiet")

        assert "quiet" not in capsys.readouterr().err


class TestGetLogger:
    @pytest.mark.unit
    def test_returns_bindable_logger(self) -> None:
        logger = get_logger("hearth.jobs")
        assert hasattr(logger, "info")
        assert hasattr(logger, "bind")
