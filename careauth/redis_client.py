"""
Process-wide async Redis connection used by the cross-worker session lock.

Created on first use and closed from the app lifespan.
"""
from __future__ import annotations

import redis.asyncio as aioredis

REDIS_SOCKET_TIMEOUT_SECONDS = 5
REDIS_HEALTH_CHECK_INTERVAL = 30

_client: aioredis.Redis | None = None


def get_redis_client(redis_url: str) -> aioredis.Redis:
    global _client
    if _client is None:
        _client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            health_check_interval=REDIS_HEALTH_CHECK_INTERVAL,
        )
    return _client


async def close_redis_client() -> None:
    global _client
    if _client is None:
        return
    client, _client = _client, None
    await client.aclose()
