"""Shared Redis client used for rate limits, intake counters and decision events.

Modules import the proxy (``from app.infra.redis import redis_client``) rather
than a concrete client so tests can swap in fakeredis at runtime.
"""

from __future__ import annotations

import redis.asyncio as redis

from app.settings import settings


class RedisProxy:
	"""Forwards attribute access to whichever client is currently installed."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	def __getattr__(self, item):
		return getattr(self._client, item)


def _connect() -> redis.Redis:
	# Lazy: no socket is opened until the first command.
	return redis.from_url(settings.redis_url, decode_responses=True)


redis_client: RedisProxy = RedisProxy(_connect())


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)


async def close_redis() -> None:
	await redis_client.client.aclose()
