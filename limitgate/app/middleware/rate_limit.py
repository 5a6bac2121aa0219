"""Rate limiting middleware.

Resolves the rule registered for the request path, evaluates it against the
shared counter store and turns a deny verdict into HTTP 429. Paths without a
registered rule pass straight through.
"""

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from limitgate.app.core.logging import get_logger
from limitgate.app.exceptions import LimitExceeded
from limitgate.app.ratelimit.decision import RateLimitDecision
from limitgate.app.ratelimit.models import Verdict
from limitgate.app.ratelimit.registry import RuleRegistry

logger = get_logger(__name__)


def rate_limit_headers(verdict: Verdict) -> dict[str, str]:
    """X-RateLimit-* headers describing the verdict's window."""
    headers = {"X-RateLimit-Limit": str(verdict.limit)}
    if verdict.remaining is not None:
        headers["X-RateLimit-Remaining"] = str(verdict.remaining)
    if verdict.reset_at_ms is not None:
        headers["X-RateLimit-Reset"] = str(verdict.reset_at_ms // 1000)
    return headers


def limit_exceeded_response(exc: LimitExceeded) -> JSONResponse:
    """Render a LimitExceeded error as a 429 response."""
    headers = {
        "X-RateLimit-Limit": str(exc.limit),
        "X-RateLimit-Remaining": "0",
        "Retry-After": str(exc.retry_after if exc.retry_after is not None else 1),
    }
    if exc.reset_at_ms is not None:
        headers["X-RateLimit-Reset"] = str(exc.reset_at_ms // 1000)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(),
        headers=headers,
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce per-route fixed-window rate limits.

    All instances of the service share the same counters through the
    decision engine's store, so the limit holds across the whole fleet.
    """

    def __init__(
        self,
        app,
        decision: RateLimitDecision,
        registry: RuleRegistry,
        key_prefix: str = "rate_limit",
    ):
        super().__init__(app)
        self.decision = decision
        self.registry = registry
        self.key_prefix = key_prefix

    def _get_resource_key(self, request: Request) -> str:
        """Rate limit key for the request: the prefixed route path."""
        return f"{self.key_prefix}:{request.url.path}"

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        rule = self.registry.resolve(request.url.path)
        if rule is None:
            return await call_next(request)

        now_ms = self.decision.now_ms()
        resource_key = self._get_resource_key(request)
        verdict = await self.decision.evaluate(resource_key, rule, now_ms=now_ms)

        if verdict.denied:
            exc = LimitExceeded(
                resource_key=resource_key,
                limit=verdict.limit,
                retry_after=verdict.retry_after_seconds(now_ms),
                reset_at_ms=verdict.reset_at_ms,
            )
            return limit_exceeded_response(exc)

        response = await call_next(request)
        for name, value in rate_limit_headers(verdict).items():
            response.headers[name] = value
        return response
