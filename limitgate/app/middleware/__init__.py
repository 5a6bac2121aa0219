"""Middleware package for the rate limiter."""

from limitgate.app.middleware.rate_limit import RateLimitMiddleware
from limitgate.app.middleware.request_id import RequestIdMiddleware

__all__ = [
    "RateLimitMiddleware",
    "RequestIdMiddleware",
]
