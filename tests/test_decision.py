"""Tests for the fixed-window rate limit decision.

Tests cover:
- Exact admission counts under concurrency
- Inclusive capacity boundary
- Window rollover
- Fail-open / fail-closed behaviour on store failure
- Decision counters
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis

from limitgate.app.exceptions import StoreUnavailable
from limitgate.app.ratelimit.decision import RateLimitDecision
from limitgate.app.ratelimit.fallback import FailClosedPolicy
from limitgate.app.ratelimit.models import UNLIMITED, RateLimitRule
from limitgate.app.ratelimit.store import (
    InMemoryCounterStore,
    RedisCounterStore,
    SharedCounterStore,
)
from limitgate.app.ratelimit.window import derive_window_key

WINDOW_START = 1_700_000_000_000  # Aligned to a 1000ms boundary
KEY = "rate_limit:/hello"


class FakeClock:
    def __init__(self, now_ms: int = WINDOW_START):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


class UnavailableStore(SharedCounterStore):
    """Store whose every call fails."""

    def __init__(self):
        self.calls = 0

    async def incr_and_maybe_expire(self, window_key, ttl_ms):
        self.calls += 1
        raise StoreUnavailable("down", cause=redis.ConnectionError("down"))

    async def get_count(self, window_key):
        raise StoreUnavailable("down")

    async def ping(self):
        return False


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def decision(store, clock):
    return RateLimitDecision(store, clock=clock)


class TestRateLimitDecision:
    """Tests for allow/deny decisions against a working store."""

    @pytest.mark.asyncio
    async def test_first_request_allowed(self, decision):
        verdict = await decision.evaluate(KEY, RateLimitRule(capacity=5, window_ms=1000))
        assert verdict.allowed is True
        assert verdict.count == 1
        assert verdict.remaining == 4
        assert verdict.fallback is False
        assert verdict.window_key == derive_window_key(KEY, WINDOW_START, 1000)
        assert verdict.reset_at_ms == WINDOW_START + 1000

    @pytest.mark.asyncio
    async def test_boundary_is_inclusive(self, decision):
        """The request reaching capacity is admitted; the next one is denied."""
        rule = RateLimitRule(capacity=3, window_ms=1000)
        verdicts = [await decision.evaluate(KEY, rule) for _ in range(4)]
        assert [v.allowed for v in verdicts] == [True, True, True, False]
        assert verdicts[2].count == 3
        assert verdicts[3].count == 4

    @pytest.mark.asyncio
    async def test_capacity_one(self, decision):
        rule = RateLimitRule(capacity=1, window_ms=1000)
        assert (await decision.evaluate(KEY, rule)).allowed is True
        assert (await decision.evaluate(KEY, rule)).allowed is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("n, capacity", [(5, 10), (10, 10), (25, 10), (50, 1)])
    async def test_concurrent_calls_admit_exactly_capacity(self, decision, n, capacity):
        """N concurrent evaluations admit exactly min(N, C)."""
        rule = RateLimitRule(capacity=capacity, window_ms=1000)
        verdicts = await asyncio.gather(*(decision.evaluate(KEY, rule) for _ in range(n)))

        allowed = sum(1 for v in verdicts if v.allowed)
        assert allowed == min(n, capacity)
        assert len(verdicts) - allowed == max(0, n - capacity)

    @pytest.mark.asyncio
    async def test_hundred_per_second_with_120_calls(self, decision, store, clock):
        """capacity=100/1000ms, 120 calls in one window: 100 allowed, 20 denied."""
        rule = RateLimitRule(capacity=100, window_ms=1000)

        async def call(offset_ms):
            return await decision.evaluate(KEY, rule, now_ms=WINDOW_START + offset_ms)

        verdicts = await asyncio.gather(*(call(i * 8) for i in range(120)))

        assert sum(1 for v in verdicts if v.allowed) == 100
        assert sum(1 for v in verdicts if v.denied) == 20
        window_key = derive_window_key(KEY, WINDOW_START, 1000)
        assert await store.get_count(window_key) == 120

    @pytest.mark.asyncio
    async def test_denied_in_window_admits_in_next(self, decision):
        """Counts do not carry over into the next window."""
        rule = RateLimitRule(capacity=2, window_ms=1000)
        for _ in range(3):
            last = await decision.evaluate(KEY, rule, now_ms=WINDOW_START + 10)
        assert last.allowed is False

        next_window = [
            await decision.evaluate(KEY, rule, now_ms=WINDOW_START + 1000 + i)
            for i in range(3)
        ]
        assert [v.allowed for v in next_window] == [True, True, False]
        assert next_window[0].count == 1

    @pytest.mark.asyncio
    async def test_same_window_across_boundary_offsets(self, decision):
        """First and last millisecond of a window share one counter."""
        rule = RateLimitRule(capacity=1, window_ms=1000)
        assert (await decision.evaluate(KEY, rule, now_ms=WINDOW_START)).allowed is True
        assert (await decision.evaluate(KEY, rule, now_ms=WINDOW_START + 999)).allowed is False

    @pytest.mark.asyncio
    async def test_distinct_keys_are_independent(self, decision):
        rule = RateLimitRule(capacity=1, window_ms=1000)
        await decision.evaluate("rate_limit:/a", rule)
        assert (await decision.evaluate("rate_limit:/a", rule)).allowed is False
        assert (await decision.evaluate("rate_limit:/b", rule)).allowed is True

    @pytest.mark.asyncio
    async def test_unlimited_never_denies(self, store):
        """The unlimited sentinel admits everything and never touches the store."""
        store.incr_and_maybe_expire = AsyncMock()
        decision = RateLimitDecision(store)
        rule = RateLimitRule(capacity=UNLIMITED)

        verdicts = await asyncio.gather(*(decision.evaluate(KEY, rule) for _ in range(500)))

        assert all(v.allowed for v in verdicts)
        store.incr_and_maybe_expire.assert_not_called()

    @pytest.mark.asyncio
    async def test_ttl_is_twice_window(self):
        store = MagicMock(spec=SharedCounterStore)
        store.incr_and_maybe_expire = AsyncMock(return_value=1)
        decision = RateLimitDecision(store)

        await decision.evaluate(KEY, RateLimitRule(capacity=5, window_ms=1500), now_ms=WINDOW_START)

        window_key = derive_window_key(KEY, WINDOW_START, 1500)
        store.incr_and_maybe_expire.assert_awaited_once_with(window_key, 3000)

    @pytest.mark.asyncio
    async def test_uses_clock_when_now_omitted(self, decision, clock):
        rule = RateLimitRule(capacity=5, window_ms=1000)
        clock.now_ms = WINDOW_START + 5000
        verdict = await decision.evaluate(KEY, rule)
        assert verdict.window_key == derive_window_key(KEY, WINDOW_START + 5000, 1000)
        assert decision.now_ms() == WINDOW_START + 5000


class TestRedisBackedDecision:
    """Decision over the Redis store with a mocked client."""

    @pytest.mark.asyncio
    async def test_concurrent_redis_decisions(self):
        data = {}

        async def mock_eval(script, num_keys, key, ttl_ms):
            data[key] = data.get(key, 0) + 1
            return data[key]

        client = MagicMock()
        client.eval = AsyncMock(side_effect=mock_eval)
        decision = RateLimitDecision(RedisCounterStore(client))
        rule = RateLimitRule(capacity=10, window_ms=1000)

        verdicts = await asyncio.gather(
            *(decision.evaluate(KEY, rule, now_ms=WINDOW_START) for _ in range(20))
        )

        assert sum(1 for v in verdicts if v.allowed) == 10
        assert data[derive_window_key(KEY, WINDOW_START, 1000)] == 20

    @pytest.mark.asyncio
    async def test_redis_error_fails_open(self):
        client = MagicMock()
        client.eval = AsyncMock(side_effect=redis.ConnectionError("refused"))
        decision = RateLimitDecision(RedisCounterStore(client))

        verdict = await decision.evaluate(KEY, RateLimitRule(capacity=1, window_ms=1000))

        assert verdict.allowed is True
        assert verdict.fallback is True


class TestStoreFailure:
    """Tests for fallback resolution when the store is unavailable."""

    @pytest.mark.asyncio
    async def test_fail_open_allows_every_call(self, clock):
        """Every call in a window is allowed and recorded as a fallback event."""
        store = UnavailableStore()
        decision = RateLimitDecision(store, clock=clock)
        rule = RateLimitRule(capacity=3, window_ms=1000)

        verdicts = [await decision.evaluate(KEY, rule) for _ in range(10)]

        assert all(v.allowed for v in verdicts)
        assert all(v.fallback for v in verdicts)
        assert store.calls == 10
        counters = await decision.metrics.get(KEY)
        assert counters.fallback_allowed == 10
        assert counters.admitted == 0
        assert counters.denied == 0

    @pytest.mark.asyncio
    async def test_fail_closed_denies_every_call(self, clock):
        decision = RateLimitDecision(UnavailableStore(), fallback=FailClosedPolicy(), clock=clock)
        rule = RateLimitRule(capacity=3, window_ms=1000)

        verdicts = [await decision.evaluate(KEY, rule) for _ in range(4)]

        assert not any(v.allowed for v in verdicts)
        counters = await decision.metrics.get(KEY)
        assert counters.fallback_denied == 4

    @pytest.mark.asyncio
    async def test_store_error_does_not_propagate(self, clock):
        store = MagicMock(spec=SharedCounterStore)
        store.incr_and_maybe_expire = AsyncMock(side_effect=StoreUnavailable("timeout"))
        decision = RateLimitDecision(store, clock=clock)

        verdict = await decision.evaluate(KEY, RateLimitRule(capacity=1, window_ms=1000))

        assert verdict.allowed is True
        snapshot = await decision.metrics.snapshot()
        assert snapshot["store_errors"] == {"unknown": 1}


class TestDecisionMetrics:
    """Tests for admitted/denied counters."""

    @pytest.mark.asyncio
    async def test_counts_admitted_and_denied(self, decision):
        rule = RateLimitRule(capacity=2, window_ms=1000)
        for _ in range(5):
            await decision.evaluate(KEY, rule)

        counters = await decision.metrics.get(KEY)
        assert counters.admitted == 2
        assert counters.denied == 3
        assert counters.fallback_allowed == 0

    @pytest.mark.asyncio
    async def test_deny_is_logged(self, decision, caplog):
        rule = RateLimitRule(capacity=1, window_ms=1000)
        with caplog.at_level("INFO", logger="limitgate.app.ratelimit.decision"):
            await decision.evaluate(KEY, rule)
            await decision.evaluate(KEY, rule)

        deny_records = [r for r in caplog.records if getattr(r, "verdict", None) == "deny"]
        assert len(deny_records) == 1
        assert deny_records[0].resource_key == KEY
