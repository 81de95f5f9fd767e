# =============================================================================
# tests/unit/test_logging.py
# Unit Tests for Logging Setup and LogContext
# =============================================================================

import logging

import pytest


@pytest.fixture
def restore_root_logging():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


class TestResolveLevel:
    @pytest.mark.parametrize("value, expected", [
        ("debug", logging.DEBUG),
        (" WARNING ", logging.WARNING),
        (logging.ERROR, logging.ERROR),
    ])
    def test_names_and_numbers(self, value, expected):
        from booktalk_core.logging import resolve_level

        assert resolve_level(value) == expected

    def test_unknown_name(self):
        from booktalk_core.logging import resolve_level

        with pytest.raises(ValueError):
            resolve_level("chatty")


class TestSetupLogging:
    """Test process-wide logging configuration"""

    def test_writes_to_log_file(self, tmp_path, restore_root_logging):
        from booktalk_core.logging import setup_logging

        log_file = tmp_path / "local_data" / "booktalk.log"
        setup_logging(level="info", log_file=log_file)
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = log_file.read_text(encoding="utf-8")
        assert "| INFO    | booktalk_core | Logging initialized at INFO" in content

    def test_quiets_client_libraries(self, restore_root_logging):
        from booktalk_core.logging import setup_logging
        from booktalk_core.logging.config import CLIENT_LOGGERS

        package_logger = setup_logging(level="debug")

        assert package_logger.name == "booktalk_core"
        assert logging.getLogger().level == logging.DEBUG
        for name in CLIENT_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


class TestConfigureFromSettings:
    """Test AppSettings.configure_logging"""

    def test_unset_leaves_host_configuration_alone(self, restore_root_logging):
        from booktalk_core.config import AppSettings

        handlers = list(logging.getLogger().handlers)

        assert AppSettings().configure_logging() is False
        assert logging.getLogger().handlers == handlers

    def test_log_file_only_defaults_to_info(self, tmp_path, restore_root_logging):
        from booktalk_core.config import AppSettings

        settings = AppSettings(log_file=tmp_path / "journal.log")

        assert settings.configure_logging() is True
        assert logging.getLogger().level == logging.INFO
        assert (tmp_path / "journal.log").exists()


class TestLogContext:
    """Test timed store round trips"""

    def test_logs_start_and_completion_with_store(self, caplog):
        from booktalk_core.logging import LogContext, get_logger

        logger = get_logger("booktalk_core.tests.timing")
        caplog.set_level(logging.DEBUG, logger=logger.name)

        with LogContext(logger, "load books", store="local") as ctx:
            pass

        messages = [r.getMessage() for r in caplog.records]
        assert messages[0] == "load books [local]... started"
        assert messages[1].startswith("load books [local]... completed")
        assert ctx.elapsed >= 0

    def test_label_without_store(self):
        from booktalk_core.logging import LogContext, get_logger

        assert LogContext(get_logger("x"), "sign out").label == "sign out"

    def test_failure_is_logged_and_propagated(self, caplog):
        from booktalk_core.logging import LogContext, get_logger

        logger = get_logger("booktalk_core.tests.timing")
        caplog.set_level(logging.DEBUG, logger=logger.name)

        with pytest.raises(RuntimeError):
            with LogContext(logger, "send message", store="cloud"):
                raise RuntimeError("Service unavailable")

        failure = caplog.records[-1]
        assert failure.levelno == logging.WARNING
        assert "send message [cloud]... failed" in failure.getMessage()
        assert "Service unavailable" in failure.getMessage()
