"""Redis connection for the WebSocket backplane and rate-limit storage.

Redis is optional: with ``REDIS_URL`` empty (or ``memory://``) every caller
gets ``None`` and falls back to in-process behaviour.
"""

from __future__ import annotations

import redis.asyncio as redis

from supportdesk.core.config import settings

MEMORY_URL = "memory://"

_client: redis.Redis | None = None


def get_redis_url() -> str | None:
    url = (settings.REDIS_URL or "").strip()
    if not url or url.lower() == MEMORY_URL:
        return None
    return url


def get_async_redis_client() -> redis.Redis | None:
    """Process-wide client, created on first use."""
    global _client
    url = get_redis_url()
    if url is None:
        return None
    if _client is None:
        _client = redis.Redis.from_url(
            url,
            max_connections=20,
            socket_connect_timeout=2.0,
            health_check_interval=30,
            retry_on_timeout=True,
        )
    return _client


async def close_async_redis_client() -> None:
    global _client
    client, _client = _client, None
    if client is not None:
        await client.aclose()
