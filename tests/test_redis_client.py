"""Tests for counter store selection."""

from unittest.mock import patch

from limitgate.app.core.config import Settings
from limitgate.app.core.redis import build_counter_store, create_redis_client
from limitgate.app.ratelimit.store import InMemoryCounterStore, RedisCounterStore


class TestBuildCounterStore:
    """Tests for backend selection logic."""

    def test_uses_in_memory_by_default(self):
        store = build_counter_store(Settings(_env_file=None, redis_enabled=False))
        assert isinstance(store, InMemoryCounterStore)

    def test_uses_redis_when_enabled(self):
        settings = Settings(
            _env_file=None,
            redis_enabled=True,
            redis_url="redis://cache:6379/1",
            redis_socket_timeout=0.25,
        )
        with patch("limitgate.app.core.redis.aioredis.from_url") as from_url:
            store = build_counter_store(settings)

        assert isinstance(store, RedisCounterStore)
        assert store.timeout == 0.25
        from_url.assert_called_once_with(
            "redis://cache:6379/1",
            socket_timeout=0.25,
            socket_connect_timeout=0.25,
            decode_responses=True,
        )

    def test_create_redis_client_is_lazy(self):
        """Building a client does not connect, so an absent server is fine here."""
        client = create_redis_client("redis://127.0.0.1:1/0", socket_timeout=0.1)
        assert client is not None
