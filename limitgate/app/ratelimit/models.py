"""Rate limiting data models.

This module contains dataclasses for rate limit rules and verdicts.
"""

import math
from dataclasses import dataclass
from typing import Optional

from limitgate.app.exceptions import ConfigurationError

# Capacity sentinel meaning "no limit"; matches a 32-bit signed max.
UNLIMITED = 2**31 - 1

# Stored entries live for this many windows so a slow first access near a
# boundary is still credited to its own bucket.
TTL_WINDOW_MULTIPLIER = 2


@dataclass(frozen=True)
class RateLimitRule:
    """Fixed-window limit attached to a protected operation.

    Attributes:
        capacity: Maximum admitted requests per window (inclusive)
        window_ms: Window length in milliseconds
    """
    capacity: int = UNLIMITED
    window_ms: int = 1000

    def __post_init__(self) -> None:
        if isinstance(self.capacity, bool) or not isinstance(self.capacity, int):
            raise ConfigurationError(f"capacity must be an integer, got {self.capacity!r}")
        if isinstance(self.window_ms, bool) or not isinstance(self.window_ms, int):
            raise ConfigurationError(f"window_ms must be an integer, got {self.window_ms!r}")
        if self.capacity < 1:
            raise ConfigurationError(f"capacity must be at least 1, got {self.capacity}")
        if self.window_ms < 1:
            raise ConfigurationError(f"window_ms must be at least 1, got {self.window_ms}")

    @property
    def unlimited(self) -> bool:
        return self.capacity >= UNLIMITED

    @property
    def ttl_ms(self) -> int:
        """Expiry applied to a window entry when it is created."""
        return self.window_ms * TTL_WINDOW_MULTIPLIER

    @classmethod
    def from_config(cls, value: dict) -> "RateLimitRule":
        """Build a rule from the ``{"count": n, "time": ms}`` settings shape."""
        return cls(
            capacity=value.get("count", UNLIMITED),
            window_ms=value.get("time", 1000),
        )


@dataclass(frozen=True)
class Verdict:
    """Outcome of one rate limit evaluation.

    ``count`` is the post-increment counter value observed in the store. It is
    None when the store was skipped (unlimited rule) or unreachable, in which
    case ``fallback`` tells the two apart.
    """
    allowed: bool
    limit: int
    count: Optional[int] = None
    window_key: Optional[str] = None
    reset_at_ms: Optional[int] = None
    fallback: bool = False

    @property
    def denied(self) -> bool:
        return not self.allowed

    @property
    def remaining(self) -> Optional[int]:
        """Requests left in the window, None when the store count is unknown."""
        if self.fallback:
            return None
        if self.count is None:
            return self.limit
        return max(0, self.limit - self.count)

    def retry_after_seconds(self, now_ms: int) -> Optional[int]:
        """Whole seconds until the current window resets, for denied verdicts."""
        if self.allowed or self.reset_at_ms is None:
            return None
        return max(0, math.ceil((self.reset_at_ms - now_ms) / 1000))
