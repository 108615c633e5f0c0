"""Tests for logging configuration."""

import structlog

from src.core.logging import bind_context, clear_context, configure_logging, get_logger


class TestLoggingConfiguration:
    """Tests for logging setup."""

    def test_configure_logging_without_file_output(self):
        """configure_logging() works with file output disabled."""
        configure_logging(logs_dir=None)
        logger = structlog.get_logger("test")
        assert logger is not None

    def test_configure_logging_writes_run_file(self, tmp_path):
        """A per-run log file is created in the logs directory."""
        configure_logging(logs_dir=tmp_path)
        assert list(tmp_path.glob("reflection_*.log"))
        configure_logging(logs_dir=None)

    def test_get_logger_has_level_methods(self):
        """get_logger() returns a logger with the standard methods."""
        logger = get_logger("test_module")
        assert hasattr(logger, "info")
        assert hasattr(logger, "warning")
        assert hasattr(logger, "error")

    def test_bind_and_clear_context(self):
        """Bound context shows up in contextvars and is cleared afterwards."""
        bind_context(request_id="req-1", session_id="s-1")
        bound = structlog.contextvars.get_contextvars()
        assert bound["request_id"] == "req-1"
        assert bound["session_id"] == "s-1"

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
