"""Shared test fixtures."""

import logging

import pytest


@pytest.fixture(autouse=True)
def propagate_app_logs():
    """Let caplog see application logs.

    ``setup_logging`` (run when the app module is imported) stops the
    ``limitgate`` logger from propagating to the root logger.
    """
    logger = logging.getLogger("limitgate")
    previous = logger.propagate
    logger.propagate = True
    yield
    logger.propagate = previous
