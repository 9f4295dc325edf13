"""Redis-backed counter store for the rate limiter."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from railtrust.infra.redis import RedisProxy
from railtrust.settings import settings
from railtrust.trust.domain.errors import StoreUnavailable

T = TypeVar("T")


class RedisCounterStore:
    """INCR/DECR counters with expiry; every call is bounded by a timeout."""

    def __init__(
        self,
        redis: Redis | RedisProxy,
        *,
        timeout_seconds: Optional[float] = None,
        max_watch_retries: int = 5,
    ) -> None:
        self._redis = redis
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.store_timeout_seconds
        self._max_watch_retries = max_watch_retries

    async def _call(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, self._timeout)
        except (RedisError, asyncio.TimeoutError, OSError) as exc:
            raise StoreUnavailable() from exc

    async def incr(self, key: str, ttl_seconds: int) -> int:
        return await self._call(self._incr(key, ttl_seconds))

    async def _incr(self, key: str, ttl_seconds: int) -> int:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, max(1, int(ttl_seconds)))
            count, _ = await pipe.execute()
        return int(count)

    async def decr(self, key: str) -> int:
        return await self._call(self._decr(key))

    async def _decr(self, key: str) -> int:
        value = int(await self._redis.decr(key))
        if value < 0:
            # The window rolled over between INCR and DECR; drop the key rather
            # than leave a negative counter with no expiry.
            await self._redis.delete(key)
            return 0
        return value

    async def get(self, key: str) -> Optional[int]:
        raw = await self._call(self._redis.get(key))
        if raw is None:
            return None
        return int(raw)

    async def set_if_greater(self, key: str, value: int, ttl_seconds: int) -> int:
        return await self._call(self._set_if_greater(key, int(value), max(1, int(ttl_seconds))))

    async def _set_if_greater(self, key: str, value: int, ttl_seconds: int) -> int:
        async with self._redis.pipeline(transaction=True) as pipe:
            for _ in range(self._max_watch_retries):
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    current = int(raw) if raw is not None else None
                    if current is not None and current >= value:
                        await pipe.unwatch()
                        return current
                    pipe.multi()
                    pipe.set(key, value, ex=ttl_seconds)
                    await pipe.execute()
                    return value
                except WatchError:
                    continue
        raise StoreUnavailable()


__all__ = ["RedisCounterStore"]
