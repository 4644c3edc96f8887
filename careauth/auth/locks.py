"""
Keyed mutual exclusion for the single-device critical section.

LocalKeyedLock serialises within one process; RedisKeyedLock serialises
across workers through redis-py's Lock (SET NX PX + token-checked release).
Both yield an async context manager per key.
"""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

import redis.asyncio as aioredis


class KeyedLock(Protocol):
    def hold(self, key: str) -> AbstractAsyncContextManager[None]: ...


class LocalKeyedLock:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)


class RedisKeyedLock:
    def __init__(
        self,
        client: aioredis.Redis,
        *,
        prefix: str = "careauth:lock:",
        timeout: float = 10.0,
        blocking_timeout: float = 5.0,
    ) -> None:
        self.client = client
        self.prefix = prefix
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self.client.lock(
            f"{self.prefix}{key}",
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        async with lock:
            yield


def session_lock_key(user_id: object, user_type: str) -> str:
    return f"session:{user_type}:{user_id}"
