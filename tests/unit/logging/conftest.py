"""Logging-specific test configuration and fixtures."""

import logging

import pytest

from dbexplorer.logging.factory import LoggerFactory
from dbexplorer.logging.structured import LogContext


@pytest.fixture
def logger_factory():
    """Create clean logger factory for testing."""
    factory = LoggerFactory()
    yield factory
    factory.shutdown()


@pytest.fixture(autouse=True)
def clean_log_context():
    """Each test starts with an empty task context."""
    LogContext().clear()
    yield
    LogContext().clear()


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo handler changes made by factory configuration."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)
