"""Shared pytest fixtures."""

import pytest

from taskweave.log_config import clear_context, configure_logging


@pytest.fixture(autouse=True, scope="session")
def json_logging():
    """Configure JSON logging before any module logger is first used.

    Module loggers cache their processor chain on first use, so this must
    run ahead of every test that reads log events.
    """
    configure_logging(level="DEBUG", json_logs=True)
    yield
    clear_context()
