"""API endpoints package for the rate limiter."""

from limitgate.app.api.greeting import router as greeting_router
from limitgate.app.api.metrics import router as metrics_router

__all__ = [
    "greeting_router",
    "metrics_router",
]
