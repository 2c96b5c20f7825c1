"""Liveness and readiness checks.

Redis backs rate limits in every storage mode, so it is always checked;
Postgres is only checked when it is the configured content store.
"""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Tuple

from app.infra import postgres
from app.infra.redis import redis_client
from app.settings import settings

LOGGER = logging.getLogger(__name__)


async def _ping_redis() -> None:
	await redis_client.ping()


async def _ping_postgres() -> None:
	pool = await postgres.get_pool()
	async with pool.acquire() as conn:
		await conn.execute("SELECT 1")


async def _check_dependency(name: str, check: Callable[[], Awaitable[None]], timeout: float) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(check(), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("readiness check failed", extra={"dependency": name}, exc_info=True)
		return {"ok": False, "error": str(exc) or exc.__class__.__name__}
	return {"ok": True, "latency_ms": round((perf_counter() - start) * 1000, 2)}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	checks: Dict[str, Any] = {"redis": await _check_dependency("redis", _ping_redis, 0.2)}
	if settings.moderation_storage == "postgres":
		checks["postgres"] = await _check_dependency("postgres", _ping_postgres, 0.3)
	ok = all(check["ok"] for check in checks.values())
	payload = {"status": "ok" if ok else "degraded", "storage": settings.moderation_storage, "checks": checks}
	return (200 if ok else 503), payload
