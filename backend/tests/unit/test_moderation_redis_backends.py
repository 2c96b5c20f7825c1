from __future__ import annotations

import pytest

from app.infra.rate_limit import allow
from app.infra.redis import redis_client
from app.moderation.domain.detectors.velocity import IntakeSignalCollector
from app.moderation.infra.redis_counters import RedisDecisionPublisher, RedisRateCounter, RedisRollingStore


@pytest.mark.asyncio
async def test_rate_counter_increments_with_ttl(fake_redis) -> None:
    counter = RedisRateCounter(redis_client)
    assert await counter.increment("vel:author-1", 60) == 1
    assert await counter.increment("vel:author-1", 60) == 2
    assert 0 < await fake_redis.ttl("mod:vel:author-1") <= 60


@pytest.mark.asyncio
async def test_rolling_store_counts_repeated_values(fake_redis) -> None:
    store = RedisRollingStore(redis_client)
    assert await store.add("dup:author-1", "hash-a", 300) == 1
    assert await store.add("dup:author-1", "hash-a", 300) == 2
    assert await store.add("dup:author-1", "hash-b", 300) == 1
    assert await fake_redis.hget("mod:dup:author-1", "hash-a") == "2"


@pytest.mark.asyncio
async def test_collector_on_redis_flags_duplicates() -> None:
    collector = IntakeSignalCollector(counter=RedisRateCounter(redis_client), store=RedisRollingStore(redis_client))
    await collector.collect("author-1", "Buy now")
    signals = await collector.collect("author-1", "  buy NOW ")
    assert signals == {"author_recent_submissions": 2, "author_duplicate_submissions": 2}
    assert await collector.collect("", "anything") == {}


@pytest.mark.asyncio
async def test_decision_publisher_appends_to_stream(fake_redis) -> None:
    publisher = RedisDecisionPublisher(redis_client, "mod:decisions")
    await publisher.publish({"item_id": "p1", "new_status": "approved", "version": 1, "rationale": None})
    entries = await fake_redis.xrange("mod:decisions")
    assert len(entries) == 1
    _, fields = entries[0]
    assert fields == {"item_id": "p1", "new_status": "approved", "version": "1", "rationale": ""}


@pytest.mark.asyncio
async def test_allow_enforces_budget_per_window() -> None:
    now = 1_700_000_000.0
    assert await allow("mod_admin_queue_list", "admin-1", limit=2, window_seconds=10, now=now)
    assert await allow("mod_admin_queue_list", "admin-1", limit=2, window_seconds=10, now=now)
    assert not await allow("mod_admin_queue_list", "admin-1", limit=2, window_seconds=10, now=now)
    assert await allow("mod_admin_queue_list", "admin-2", limit=2, window_seconds=10, now=now)
    assert await allow("mod_admin_queue_list", "admin-1", limit=2, window_seconds=10, now=now + 10)
    assert not await allow("anything", "admin-1", limit=0)
