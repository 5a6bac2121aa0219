"""Fixed-window rate limit decision.

Composes window key derivation, the shared counter store and the fallback
policy into one allow/deny verdict per call.
"""

import time
from typing import Callable, Optional

from limitgate.app.core.logging import get_log_context, get_logger
from limitgate.app.exceptions import StoreUnavailable
from limitgate.app.ratelimit.fallback import FailOpenPolicy, FallbackPolicy
from limitgate.app.ratelimit.metrics import RateLimitMetrics
from limitgate.app.ratelimit.models import RateLimitRule, Verdict
from limitgate.app.ratelimit.store import SharedCounterStore
from limitgate.app.ratelimit.window import derive_window_key, window_bounds

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimitDecision:
    """Evaluates fixed-window rate limit rules against a shared store.

    Holds no per-key state itself: the store is the single point of shared
    mutable state, so any number of instances can evaluate concurrently.
    """

    def __init__(
        self,
        store: SharedCounterStore,
        fallback: Optional[FallbackPolicy] = None,
        metrics: Optional[RateLimitMetrics] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """Initialize the decision engine.

        Args:
            store: Counter store providing atomic increments
            fallback: Policy applied on store failure (default fail-open)
            metrics: Decision counters (a private instance when omitted)
            clock: Millisecond wall clock, injectable for tests
        """
        self.store = store
        self.fallback = fallback or FailOpenPolicy()
        self.metrics = metrics or RateLimitMetrics()
        self._clock = clock or _now_ms

    def now_ms(self) -> int:
        """Current time in milliseconds from the injected clock."""
        return self._clock()

    async def evaluate(
        self,
        resource_key: str,
        rule: RateLimitRule,
        now_ms: Optional[int] = None,
    ) -> Verdict:
        """Count one request against ``rule`` and decide whether to admit it.

        The request that brings the count to exactly ``rule.capacity`` is
        admitted; the next one is the first denied. Denied requests are still
        counted, and nothing is ever decremented.

        Args:
            resource_key: Identifier of the rate-limited resource
            rule: Capacity and window to enforce
            now_ms: Evaluation time, defaults to the clock

        Returns:
            Verdict for this request. Store failures never propagate; they
            are resolved by the fallback policy.
        """
        if rule.unlimited:
            await self.metrics.record(resource_key, allowed=True)
            return Verdict(allowed=True, limit=rule.capacity)

        if now_ms is None:
            now_ms = self._clock()
        window_key = derive_window_key(resource_key, now_ms, rule.window_ms)
        _, reset_at_ms = window_bounds(now_ms, rule.window_ms)

        try:
            count = await self.store.incr_and_maybe_expire(window_key, rule.ttl_ms)
        except StoreUnavailable as e:
            verdict = self.fallback.resolve(
                e,
                resource_key,
                rule,
                window_key=window_key,
                reset_at_ms=reset_at_ms,
            )
            await self.metrics.record(
                resource_key,
                allowed=verdict.allowed,
                fallback=True,
                error_type=e.error_type,
            )
            return verdict

        allowed = count <= rule.capacity
        verdict = Verdict(
            allowed=allowed,
            limit=rule.capacity,
            count=count,
            window_key=window_key,
            reset_at_ms=reset_at_ms,
        )
        await self.metrics.record(resource_key, allowed=allowed)

        if not allowed:
            logger.info(
                f"Rate limit exceeded: {count}/{rule.capacity} in {rule.window_ms}ms window",
                extra=get_log_context(
                    resource_key=resource_key,
                    window_key=window_key,
                    verdict="deny",
                ),
            )
        return verdict
