"""Distributed fixed-window rate limiting.

Re-exports the decision engine and its collaborators.
"""

from limitgate.app.ratelimit.decision import RateLimitDecision
from limitgate.app.ratelimit.fallback import (
    FailClosedPolicy,
    FailOpenPolicy,
    FallbackPolicy,
    get_fallback_policy,
)
from limitgate.app.ratelimit.metrics import DecisionCounters, RateLimitMetrics
from limitgate.app.ratelimit.models import UNLIMITED, RateLimitRule, Verdict
from limitgate.app.ratelimit.registry import RuleRegistry
from limitgate.app.ratelimit.store import (
    InMemoryCounterStore,
    RedisCounterStore,
    SharedCounterStore,
)
from limitgate.app.ratelimit.window import derive_window_key, window_bounds

__all__ = [
    # Models
    "RateLimitRule",
    "Verdict",
    "UNLIMITED",
    # Stores
    "SharedCounterStore",
    "RedisCounterStore",
    "InMemoryCounterStore",
    # Policies
    "FallbackPolicy",
    "FailOpenPolicy",
    "FailClosedPolicy",
    "get_fallback_policy",
    # Decision
    "RateLimitDecision",
    "RuleRegistry",
    "RateLimitMetrics",
    "DecisionCounters",
    "derive_window_key",
    "window_bounds",
]
