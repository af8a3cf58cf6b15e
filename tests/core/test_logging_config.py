"""Tests for logging configuration module."""

import logging

import pytest
import structlog

from relmodel.logging_config import NOISY_MODULES, configure_logging


@pytest.fixture
def bare_root_logger():
    """Root logger without handlers, restored afterwards."""
    root_logger = logging.getLogger()
    saved_handlers = root_logger.handlers[:]
    saved_level = root_logger.level
    root_logger.handlers.clear()
    yield root_logger
    root_logger.handlers[:] = saved_handlers
    root_logger.setLevel(saved_level)
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_configure_logging_is_idempotent(self, bare_root_logger):
        # Act
        configure_logging()
        handler_count_1 = len(bare_root_logger.handlers)
        configure_logging()
        handler_count_2 = len(bare_root_logger.handlers)

        # Assert
        assert handler_count_1 == handler_count_2 == 1

    def test_configure_logging_level_from_name(self, bare_root_logger):
        configure_logging("DEBUG")

        assert bare_root_logger.level == logging.DEBUG
        for name in NOISY_MODULES:
            assert logging.getLogger(name).level == logging.INFO

    def test_configure_logging_unknown_level_falls_back_to_info(self, bare_root_logger):
        configure_logging("chatty", fmt="json")

        assert bare_root_logger.level == logging.INFO

    def test_configure_logging_defaults_from_config(self, bare_root_logger, monkeypatch):
        monkeypatch.setenv("RELMODEL_LOG_LEVEL", "WARNING")

        configure_logging()

        assert bare_root_logger.level == logging.WARNING
