"""Shared counter stores for fixed-window rate limiting.

A store hands out atomic, post-increment counts per window key and owns the
expiry of its entries. ``RedisCounterStore`` is the distributed backend;
``InMemoryCounterStore`` emulates it for single-process deployments.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from redis.exceptions import RedisError

from limitgate.app.core.logging import get_logger
from limitgate.app.exceptions import StoreUnavailable
from limitgate.app.ratelimit.redis_lua import INCR_AND_EXPIRE_SCRIPT

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SharedCounterStore(ABC):
    """Abstract base class for counter stores."""

    @abstractmethod
    async def incr_and_maybe_expire(self, window_key: str, ttl_ms: int) -> int:
        """Atomically increment the counter for ``window_key``.

        The call that creates the entry also sets its expiry to ``ttl_ms``.

        Args:
            window_key: Fixed-window bucket key
            ttl_ms: Expiry in milliseconds applied on creation

        Returns:
            The counter value after this increment

        Raises:
            StoreUnavailable: The store could not be reached in time. Whether
                the increment was applied is unknown.
        """
        pass

    @abstractmethod
    async def get_count(self, window_key: str) -> int:
        """Return the current counter value, 0 when absent or expired."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Check store connectivity."""
        pass

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


class RedisCounterStore(SharedCounterStore):
    """Redis-based distributed counter store.

    Increment and expire-on-create run inside one Lua script, so every
    instance sharing the Redis server sees linearizable counts and no entry
    is left without a TTL by a crash between the two steps.
    """

    def __init__(self, redis_client: Any, timeout: float = 0.5):
        """Initialize the Redis counter store.

        Args:
            redis_client: ``redis.asyncio.Redis`` instance
            timeout: Upper bound in seconds for each store round-trip
        """
        self._redis = redis_client
        self.timeout = timeout

    async def _call(self, operation: str, awaitable: Any) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Redis {operation} timed out after {self.timeout}s")
            raise StoreUnavailable(f"Redis {operation} timed out", cause=e) from e
        except RedisError as e:
            logger.error(f"Redis {operation} failed: {e}")
            raise StoreUnavailable(f"Redis {operation} failed: {e}", cause=e) from e
        except OSError as e:
            logger.error(f"Redis {operation} connection error: {e}")
            raise StoreUnavailable(f"Redis {operation} connection error: {e}", cause=e) from e

    async def incr_and_maybe_expire(self, window_key: str, ttl_ms: int) -> int:
        result = await self._call(
            "increment",
            self._redis.eval(
                INCR_AND_EXPIRE_SCRIPT,
                1,  # Number of keys
                window_key,  # KEYS[1]
                int(ttl_ms),  # ARGV[1]
            ),
        )
        return int(result)

    async def get_count(self, window_key: str) -> int:
        value = await self._call("get", self._redis.get(window_key))
        return int(value) if value is not None else 0

    async def ping(self) -> bool:
        try:
            return bool(await self._call("ping", self._redis.ping()))
        except StoreUnavailable:
            return False

    async def close(self) -> None:
        await self._redis.aclose()


@dataclass
class _CounterEntry:
    """Internal counter entry with TTL tracking."""

    count: int
    expires_at_ms: int

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.expires_at_ms


class InMemoryCounterStore(SharedCounterStore):
    """Single-process counter store.

    Increments, expiry checks and purges of an entry all happen under the
    same lock, so an expiry can never interleave between two increments of
    a live window. Creating an entry also sweeps expired ones, so old window
    buckets do not accumulate. Not shared across processes: each worker
    enforces its own limits.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None) -> None:
        self._clock = clock or _now_ms
        self._data: Dict[str, _CounterEntry] = {}
        self._lock = asyncio.Lock()

    def _drop_expired(self, now: int) -> int:
        # Caller must hold self._lock
        expired = [k for k, e in self._data.items() if e.is_expired(now)]
        for key in expired:
            del self._data[key]
        return len(expired)

    async def incr_and_maybe_expire(self, window_key: str, ttl_ms: int) -> int:
        async with self._lock:
            now = self._clock()
            entry = self._data.get(window_key)
            if entry is None or entry.is_expired(now):
                self._drop_expired(now)
                entry = _CounterEntry(count=0, expires_at_ms=now + int(ttl_ms))
                self._data[window_key] = entry
            entry.count += 1
            return entry.count

    async def get_count(self, window_key: str) -> int:
        async with self._lock:
            entry = self._data.get(window_key)
            if entry is None:
                return 0
            if entry.is_expired(self._clock()):
                del self._data[window_key]
                return 0
            return entry.count

    async def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        async with self._lock:
            return self._drop_expired(self._clock())

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._data)
