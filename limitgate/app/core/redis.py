"""Counter store construction from settings."""

from typing import Optional

import redis.asyncio as aioredis

from limitgate.app.core.config import Settings, settings as default_settings
from limitgate.app.core.logging import get_logger
from limitgate.app.ratelimit.store import (
    InMemoryCounterStore,
    RedisCounterStore,
    SharedCounterStore,
)

logger = get_logger(__name__)


def create_redis_client(url: str, socket_timeout: float) -> aioredis.Redis:
    """Create an asyncio Redis client with bounded socket timeouts.

    Connections are established lazily, so an unreachable server surfaces on
    the first command rather than here.
    """
    return aioredis.from_url(
        url,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        decode_responses=True,
    )


def build_counter_store(settings: Optional[Settings] = None) -> SharedCounterStore:
    """Select the counter store backend.

    Redis is used when ``redis_enabled`` is set; otherwise counters live in
    this process only.
    """
    cfg = settings or default_settings
    if cfg.redis_enabled:
        client = create_redis_client(cfg.redis_url, cfg.redis_socket_timeout)
        logger.info("Using Redis counter store backend")
        return RedisCounterStore(client, timeout=cfg.redis_socket_timeout)

    logger.warning(
        "Redis disabled; using in-memory counter store. "
        "Limits are enforced per process only."
    )
    return InMemoryCounterStore()
