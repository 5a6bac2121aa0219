"""Explicit operation -> rule wiring.

Rules are registered once while the application is built and looked up by
exact operation name (the route path) on each request.
"""

from typing import Dict, Iterator, Mapping, Optional, Tuple

from limitgate.app.core.logging import get_logger
from limitgate.app.exceptions import ConfigurationError
from limitgate.app.ratelimit.models import RateLimitRule

logger = get_logger(__name__)


class RuleRegistry:
    """Maps protected operations to their rate limit rules."""

    def __init__(self, rules: Optional[Mapping[str, RateLimitRule]] = None):
        self._rules: Dict[str, RateLimitRule] = {}
        for operation, rule in (rules or {}).items():
            self.register(operation, rule)

    def register(self, operation: str, rule: RateLimitRule) -> None:
        """Associate ``rule`` with ``operation``.

        Raises:
            ConfigurationError: Empty operation, not a rule, or already registered
        """
        if not operation:
            raise ConfigurationError("operation must be a non-empty string")
        if not isinstance(rule, RateLimitRule):
            raise ConfigurationError(f"rule for {operation} must be a RateLimitRule")
        if operation in self._rules:
            raise ConfigurationError(f"rate limit rule for {operation} already registered")
        self._rules[operation] = rule
        logger.debug(
            f"Registered rate limit for {operation}: "
            f"{rule.capacity} requests / {rule.window_ms}ms"
        )

    def resolve(self, operation: str) -> Optional[RateLimitRule]:
        """Return the rule for ``operation``, or None when it is not limited."""
        return self._rules.get(operation)

    def __contains__(self, operation: str) -> bool:
        return operation in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Tuple[str, RateLimitRule]]:
        return iter(self._rules.items())

    @classmethod
    def from_settings(cls, rules: Mapping[str, dict]) -> "RuleRegistry":
        """Build a registry from the ``rate_limit_rules`` settings mapping.

        Raises:
            ConfigurationError: Any rule has a non-positive count or window
        """
        return cls({path: RateLimitRule.from_config(value) for path, value in rules.items()})
