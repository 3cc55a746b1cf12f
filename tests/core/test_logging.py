"""
Tests for the logging module.

Tests verify:
- configure_logging is idempotent unless forced
- LogContext binds and unbinds contextvars
- None values are not bound
- log level and format come from settings when not given
- nested contexts restore the outer bindings
"""

import pytest
import structlog

from stepwise.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_from_settings,
    configure_logging,
    get_logger,
    is_configured,
    unbind_context,
)
from stepwise.core.settings import BatchSettings
from stepwise.repository import create_job_repository


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_configure_marks_configured(self):
        configure_logging(level="DEBUG", json_format=True, force=True)
        assert is_configured()

    def test_second_call_is_noop(self):
        configure_logging(level="INFO", json_format=False, force=True)
        configure_logging(level="DEBUG", json_format=True)
        last = structlog.get_config()["processors"][-1]
        assert isinstance(last, structlog.dev.ConsoleRenderer)

    def test_get_logger_logs_without_error(self, capsys):
        configure_logging(level="INFO", json_format=True, force=True)
        get_logger("tests").info("test.event", answer=42)
        out = capsys.readouterr().out
        assert "test.event" in out
        assert "42" in out


class TestConfigureFromSettings:
    @pytest.fixture(autouse=True)
    def unconfigured(self, monkeypatch):
        monkeypatch.setattr("stepwise.core.logging._configured", False)
        structlog.reset_defaults()

    def test_defaults_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("STEPWISE_LOG_FORMAT", "json")
        configure_logging()
        last = structlog.get_config()["processors"][-1]
        assert isinstance(last, structlog.processors.JSONRenderer)

    def test_applies_settings(self):
        configure_from_settings(BatchSettings(log_format="json", log_level="WARNING"))
        assert is_configured()
        last = structlog.get_config()["processors"][-1]
        assert isinstance(last, structlog.processors.JSONRenderer)

    def test_level_filters_events(self, capsys):
        configure_from_settings(BatchSettings(log_level="WARNING"))
        get_logger("tests").info("test.quiet")
        get_logger("tests").warning("test.loud")
        out = capsys.readouterr().out
        assert "test.quiet" not in out
        assert "test.loud" in out

    def test_application_configuration_kept(self):
        structlog.configure(processors=[structlog.processors.KeyValueRenderer()])
        configure_from_settings(BatchSettings(log_format="json"))
        last = structlog.get_config()["processors"][-1]
        assert isinstance(last, structlog.processors.KeyValueRenderer)
        assert not is_configured()

    def test_repository_factory_applies_log_format(self, monkeypatch):
        monkeypatch.setenv("STEPWISE_LOG_FORMAT", "json")
        create_job_repository()
        last = structlog.get_config()["processors"][-1]
        assert isinstance(last, structlog.processors.JSONRenderer)


class TestContextManagement:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_bind_and_unbind(self):
        bind_context(job_name="import")
        assert structlog.contextvars.get_contextvars()["job_name"] == "import"
        unbind_context("job_name")
        assert "job_name" not in structlog.contextvars.get_contextvars()

    def test_log_context_scoped(self):
        with LogContext(job_name="import", step_name="load"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["job_name"] == "import"
            assert bound["step_name"] == "load"
        assert structlog.contextvars.get_contextvars() == {}

    def test_log_context_skips_none(self):
        with LogContext(job_name="import", step_execution_id=None):
            bound = structlog.contextvars.get_contextvars()
            assert "step_execution_id" not in bound

    def test_nested_context_keeps_outer_keys(self):
        with LogContext(job_name="import", job_execution_id=1):
            with LogContext(step_name="load", job_execution_id=1):
                assert structlog.contextvars.get_contextvars()["step_name"] == "load"
            bound = structlog.contextvars.get_contextvars()
            assert bound == {"job_name": "import", "job_execution_id": 1}
        assert structlog.contextvars.get_contextvars() == {}

    def test_nested_context_restores_shadowed_value(self):
        with LogContext(job_execution_id=1):
            with LogContext(job_execution_id=2):
                assert structlog.contextvars.get_contextvars()["job_execution_id"] == 2
            assert structlog.contextvars.get_contextvars()["job_execution_id"] == 1
