"""Redis-backed key-value store (redis.asyncio).

Every call is wrapped so that connection/command failures surface as
`StoreError`; batches run as MULTI/EXEC transactions.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import TypeVar

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from issuerind.core.config import RedisConfig
from issuerind.core.errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _guard(op: str, aw: Awaitable[T]) -> T:
    try:
        return await aw
    except RedisError as e:
        raise StoreError(f"redis {op} failed: {e}") from e


class RedisBatch:
    def __init__(self, client: aioredis.Redis) -> None:
        self._pipe = client.pipeline(transaction=True)

    def hset(self, key: str, mapping: dict[str, str]) -> RedisBatch:
        self._pipe.hset(key, mapping=mapping)
        return self

    def lpush(self, key: str, value: str) -> RedisBatch:
        self._pipe.lpush(key, value)
        return self

    def lrem(self, key: str, value: str) -> RedisBatch:
        self._pipe.lrem(key, 0, value)
        return self

    def delete(self, *keys: str) -> RedisBatch:
        if keys:
            self._pipe.delete(*keys)
        return self

    async def execute(self) -> None:
        async with self._pipe as pipe:
            await _guard("pipeline", pipe.execute())


class RedisStore:
    """Thin adapter over `redis.asyncio.Redis` matching `IKeyValueStore`."""

    def __init__(self, client: aioredis.Redis) -> None:
        self.client = client

    @classmethod
    def from_config(cls, config: RedisConfig) -> RedisStore:
        client = aioredis.Redis.from_url(
            config.url,
            decode_responses=True,
            socket_connect_timeout=10,
            socket_timeout=5,
            health_check_interval=30,
        )
        return cls(client)

    async def get(self, key: str) -> str | None:
        return await _guard("GET", self.client.get(key))

    async def set(self, key: str, value: str) -> None:
        await _guard("SET", self.client.set(key, value))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await _guard("DEL", self.client.delete(*keys)))

    async def hgetall(self, key: str) -> dict[str, str]:
        return await _guard("HGETALL", self.client.hgetall(key))

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        return await _guard("LRANGE", self.client.lrange(key, start, stop))

    async def llen(self, key: str) -> int:
        return int(await _guard("LLEN", self.client.llen(key)))

    async def keys(self, pattern: str) -> list[str]:
        out: list[str] = []
        try:
            async for k in self.client.scan_iter(match=pattern, count=500):
                out.append(k)
        except RedisError as e:
            raise StoreError(f"redis SCAN failed: {e}") from e
        return sorted(out)

    def batch(self) -> RedisBatch:
        return RedisBatch(self.client)

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error("Redis health check failed: %s", e)
            return False

    async def aclose(self) -> None:
        await self.client.aclose()
