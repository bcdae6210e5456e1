"""Tests for package logging setup."""

import logging
import logging.handlers

import pytest

from backoffice.core.config import Settings
from backoffice.core.logger import PACKAGE_LOGGER, configure_from_settings, setup_logger


@pytest.fixture
def package_logger():
    """The backoffice logger with its handlers and level restored afterwards."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    saved_handlers, saved_level = logger.handlers[:], logger.level
    logger.handlers = []
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers = saved_handlers
    logger.setLevel(saved_level)


class TestSetupLogger:
    """Test logger configuration."""

    def test_console_only_by_default(self, package_logger):
        """Test that without a directory only a console handler is attached."""
        logger = setup_logger("debug")

        assert logger is package_logger
        assert logger.level == logging.DEBUG
        assert [type(h) for h in logger.handlers] == [logging.StreamHandler]

    def test_invalid_level(self, package_logger):
        """Test that unknown level names are rejected."""
        with pytest.raises(ValueError):
            setup_logger("LOUD")

    def test_handlers_added_once(self, package_logger):
        """Test that reconfiguring changes the level without duplicating handlers."""
        setup_logger("INFO")
        logger = setup_logger("WARNING")

        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING

    def test_file_logging_from_settings(self, package_logger, tmp_path):
        """Test that module loggers reach the rotating file."""
        settings = Settings(_env_file=None, log_to_file=True, log_dir=str(tmp_path), log_level="INFO")
        configure_from_settings(settings)

        logging.getLogger("backoffice.core.approval.engine").info("Workflow 1 approved")
        for handler in package_logger.handlers:
            handler.flush()

        assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in package_logger.handlers)
        assert "Workflow 1 approved" in (tmp_path / "backoffice.log").read_text()
