"""Metrics endpoints for the rate limiter.

Exposes per-resource decision counters so operators can see whether limits
are being enforced or bypassed by the fallback policy.
"""

from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from limitgate.app.ratelimit.metrics import RateLimitMetrics

router = APIRouter()


def get_metrics(request: Request) -> RateLimitMetrics:
    return request.app.state.decision.metrics


@router.get("/metrics", response_class=PlainTextResponse)
async def prometheus_metrics(request: Request) -> str:
    """Prometheus text exposition of rate limit counters."""
    return await get_metrics(request).render_prometheus()


@router.get("/metrics/summary")
async def metrics_summary(request: Request) -> Dict[str, Any]:
    """JSON summary of rate limit counters."""
    return await get_metrics(request).snapshot()
