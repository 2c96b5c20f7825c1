"""Fixed-window rate limiting for staff endpoints, backed by Redis."""

from __future__ import annotations

import time
from typing import Optional

from fastapi import HTTPException, status

from app.infra.redis import redis_client
from app.obs import metrics as obs_metrics
from app.settings import settings


def _window_key(kind: str, actor_id: str, now: float, window: int) -> str:
	return f"rl:{kind}:{actor_id}:{int(now // window)}:{window}"


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	"""Count one hit for ``actor_id`` and report whether it fits ``limit`` per window."""

	if limit <= 0:
		return False
	window = max(1, int(window_seconds))
	key = _window_key(kind, actor_id, time.time() if now is None else now, window)
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	return int(count) <= limit


async def enforce_admin_rate(kind: str, reviewer_id: str, *, route: str) -> None:
	"""Raise 429 once a reviewer exceeds the admin request budget."""

	allowed = await allow(
		kind,
		reviewer_id,
		limit=settings.moderation_admin_rate_limit,
		window_seconds=settings.moderation_admin_rate_window,
	)
	if not allowed:
		obs_metrics.MOD_ADMIN_REQUESTS_TOTAL.labels(route=route, status="429").inc()
		raise HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, detail="rate_limited")
