"""Tests for keeper logging configuration."""

import logging

import structlog
from structlog.testing import capture_logs

from keeper.core.logging import configure_logging, get_logger, get_tick_logger


class TestConfigureLogging:
    """Test logging setup."""

    def teardown_method(self):
        configure_logging(testing=True)

    def test_should_set_root_level(self):
        """Test the configured level reaches the stdlib root logger."""
        # Act
        configure_logging(testing=True, level="warning")

        # Assert
        assert logging.getLogger().level == logging.WARNING

    def test_should_quiet_rpc_library_loggers(self):
        """Test web3 request logging stays at warning or above."""
        configure_logging(testing=True, level="debug")

        assert logging.getLogger("web3").level == logging.WARNING
        assert logging.getLogger().level == logging.DEBUG

    def test_should_fall_back_to_info_for_unknown_level(self):
        configure_logging(testing=True, level="chatty")

        assert logging.getLogger().level == logging.INFO

    def test_should_install_single_handler(self):
        """Test repeated configuration does not stack handlers."""
        configure_logging(testing=True)
        configure_logging(testing=True)

        assert len(logging.getLogger().handlers) == 1

    def test_should_configure_structlog(self):
        configure_logging(testing=False, json_logs=True)

        assert structlog.is_configured()


class TestLoggers:
    """Test logger helpers."""

    def test_should_bind_tick_id(self):
        """Test tick loggers carry the tick number."""
        with capture_logs() as logs:
            get_tick_logger(7, "keeper.test").info("tick_event")

        assert logs == [{"tick": 7, "event": "tick_event", "log_level": "info"}]

    def test_should_not_bind_without_tick_id(self):
        with capture_logs() as logs:
            get_tick_logger(name="keeper.test").info("plain_event", value=1)

        assert logs[0]["event"] == "plain_event"
        assert "tick" not in logs[0]

    def test_should_return_logger(self):
        assert get_logger("keeper.test") is not None
