"""Redis implementations of the intake signal stores."""

from __future__ import annotations

from typing import Any, Mapping

from app.infra.redis import RedisProxy


class RedisRateCounter:
    """Implements the velocity counter contract using Redis incr + expire."""

    def __init__(self, client: RedisProxy) -> None:
        self.client = client

    async def increment(self, key: str, ttl_seconds: int) -> int:
        async with self.client.pipeline(transaction=False) as pipe:
            pipe.incr(f"mod:{key}", 1)
            pipe.expire(f"mod:{key}", ttl_seconds)
            results = await pipe.execute()
        return int(results[0])


class RedisRollingStore:
    """Counts repeated values per key using a Redis hash with a sliding TTL."""

    def __init__(self, client: RedisProxy) -> None:
        self.client = client

    async def add(self, key: str, value: str, ttl_seconds: int) -> int:
        async with self.client.pipeline(transaction=False) as pipe:
            pipe.hincrby(f"mod:{key}", value, 1)
            pipe.expire(f"mod:{key}", ttl_seconds)
            results = await pipe.execute()
        return int(results[0])


class RedisDecisionPublisher:
    """Appends committed decisions to a Redis stream for downstream consumers."""

    def __init__(self, client: RedisProxy, stream: str, *, maxlen: int = 10_000) -> None:
        self.client = client
        self.stream = stream
        self.maxlen = maxlen

    async def publish(self, fields: Mapping[str, Any]) -> None:
        payload = {key: "" if value is None else str(value) for key, value in fields.items()}
        await self.client.xadd(self.stream, payload, maxlen=self.maxlen, approximate=True)
