"""Per-resource decision counters.

Lets operators tell "the limit is working" (denied grows) apart from "the
limit is silently disabled" (fallback_allowed grows).
"""

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

OUTCOMES = ("admitted", "denied", "fallback_allowed", "fallback_denied")


@dataclass
class DecisionCounters:
    """Monotonic counters for a single resource key."""

    admitted: int = 0
    denied: int = 0
    fallback_allowed: int = 0
    fallback_denied: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {outcome: getattr(self, outcome) for outcome in OUTCOMES}


@dataclass
class RateLimitMetrics:
    """Collects rate limit decision counters keyed by resource."""

    _counters: Dict[str, DecisionCounters] = field(
        default_factory=lambda: defaultdict(DecisionCounters)
    )
    _store_errors: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    _start_time: float = field(default_factory=time.time)

    async def record(
        self,
        resource_key: str,
        allowed: bool,
        fallback: bool = False,
        error_type: Optional[str] = None,
    ) -> None:
        """Record one decision.

        Args:
            resource_key: The rate-limited resource
            allowed: Whether the request was admitted
            fallback: Whether the fallback policy produced the decision
            error_type: Store error classification for fallback decisions
        """
        async with self._lock:
            counters = self._counters[resource_key]
            if fallback:
                if allowed:
                    counters.fallback_allowed += 1
                else:
                    counters.fallback_denied += 1
                self._store_errors[error_type or "unknown"] += 1
            elif allowed:
                counters.admitted += 1
            else:
                counters.denied += 1

    async def get(self, resource_key: str) -> DecisionCounters:
        """Return a copy of the counters for one resource."""
        async with self._lock:
            counters = self._counters.get(resource_key)
            return DecisionCounters(**counters.to_dict()) if counters else DecisionCounters()

    async def snapshot(self) -> Dict[str, Any]:
        async with self._lock:
            resources = {key: c.to_dict() for key, c in self._counters.items()}
            totals = {
                outcome: sum(c[outcome] for c in resources.values())
                for outcome in OUTCOMES
            }
            return {
                "uptime_seconds": round(time.time() - self._start_time, 2),
                "totals": totals,
                "resources": resources,
                "store_errors": dict(self._store_errors),
            }

    async def render_prometheus(self) -> str:
        """Render counters in the Prometheus text exposition format."""
        snapshot = await self.snapshot()
        lines: List[str] = [
            "# HELP limitgate_decisions_total Rate limit decisions by resource and outcome",
            "# TYPE limitgate_decisions_total counter",
        ]
        for resource, counters in sorted(snapshot["resources"].items()):
            label = resource.replace("\\", "\\\\").replace('"', '\\"')
            for outcome in OUTCOMES:
                lines.append(
                    f'limitgate_decisions_total{{resource="{label}",outcome="{outcome}"}} '
                    f"{counters[outcome]}"
                )
        lines.extend([
            "# HELP limitgate_store_errors_total Counter store failures by error type",
            "# TYPE limitgate_store_errors_total counter",
        ])
        for error_type, count in sorted(snapshot["store_errors"].items()):
            lines.append(f'limitgate_store_errors_total{{type="{error_type}"}} {count}')
        lines.extend([
            "# HELP limitgate_uptime_seconds Process uptime",
            "# TYPE limitgate_uptime_seconds gauge",
            f"limitgate_uptime_seconds {snapshot['uptime_seconds']}",
        ])
        return "\n".join(lines) + "\n"
