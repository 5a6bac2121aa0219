"""Core utilities for the rate limiter."""

from limitgate.app.core.config import settings
from limitgate.app.core.logging import get_logger, setup_logging

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
]
