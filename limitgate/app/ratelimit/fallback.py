"""Store-failure policies.

When the counter store is unreachable the real count is unknown, so the
verdict comes from a policy instead:

- ``fail-open`` (default): admit the request. The limit is not enforced while
  the store is degraded, trading strictness for availability.
- ``fail-closed``: deny the request. For security-sensitive routes.

Every resolution is logged at WARNING so a disabled limit never goes silent.
"""

from abc import ABC, abstractmethod
from typing import Optional

from limitgate.app.core.logging import get_log_context, get_logger
from limitgate.app.exceptions import ConfigurationError, StoreUnavailable
from limitgate.app.ratelimit.models import RateLimitRule, Verdict

logger = get_logger(__name__)


class FallbackPolicy(ABC):
    """Decides the verdict when the counter store fails."""

    name: str = ""

    @abstractmethod
    def resolve(
        self,
        error: StoreUnavailable,
        resource_key: str,
        rule: RateLimitRule,
        window_key: Optional[str] = None,
        reset_at_ms: Optional[int] = None,
    ) -> Verdict:
        """Turn a store failure into a verdict.

        Args:
            error: The store failure
            resource_key: Resource being evaluated
            rule: Rule being enforced
            window_key: Window the request belonged to
            reset_at_ms: End of that window

        Returns:
            Verdict flagged with ``fallback=True``
        """
        pass


class FailOpenPolicy(FallbackPolicy):
    """Admit every request while the store is unavailable."""

    name = "fail-open"

    def resolve(self, error, resource_key, rule, window_key=None, reset_at_ms=None):
        logger.warning(
            f"Rate limiting fail-open triggered due to {error.error_type}. "
            "Request allowed without rate limit check.",
            extra=get_log_context(
                resource_key=resource_key,
                window_key=window_key,
                verdict="allow",
                policy=self.name,
            ),
        )
        return Verdict(
            allowed=True,
            limit=rule.capacity,
            window_key=window_key,
            reset_at_ms=reset_at_ms,
            fallback=True,
        )


class FailClosedPolicy(FallbackPolicy):
    """Deny every request while the store is unavailable."""

    name = "fail-closed"

    def resolve(self, error, resource_key, rule, window_key=None, reset_at_ms=None):
        logger.warning(
            f"Rate limiting fail-closed triggered due to {error.error_type}. "
            "Request denied.",
            extra=get_log_context(
                resource_key=resource_key,
                window_key=window_key,
                verdict="deny",
                policy=self.name,
            ),
        )
        return Verdict(
            allowed=False,
            limit=rule.capacity,
            window_key=window_key,
            reset_at_ms=reset_at_ms,
            fallback=True,
        )


_POLICIES = {
    FailOpenPolicy.name: FailOpenPolicy,
    FailClosedPolicy.name: FailClosedPolicy,
}


def get_fallback_policy(name: str = "fail-open") -> FallbackPolicy:
    """Build the policy for a configured name.

    Accepts ``fail-open`` / ``fail-closed`` in any case, with ``_`` or ``-``.

    Raises:
        ConfigurationError: Unknown policy name
    """
    normalized = (name or "").strip().lower().replace("_", "-")
    policy_cls = _POLICIES.get(normalized)
    if policy_cls is None:
        raise ConfigurationError(
            f"Unknown rate limit fallback policy {name!r}; "
            f"expected one of {sorted(_POLICIES)}"
        )
    return policy_cls()
