from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from app.moderation.domain.models import ContentItem, DecisionRecord, QueueFilter, SpamVerdict
from app.moderation.domain.pagination import QueueCursor, decode_cursor, encode_cursor
from app.moderation.domain.queue import ModerationQueue
from app.moderation.domain.repository import InMemoryModerationRepository
from app.moderation.domain.status import ModerationStatus

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _item(item_id: str, score: Optional[float], minutes: int, *, content_type: str = "post") -> ContentItem:
    verdict = None
    if score is not None:
        verdict = SpamVerdict(score=score, signals=(), evaluator_version="test")
    return ContentItem(
        item_id=item_id,
        author_id="author",
        content_type=content_type,
        body=f"body {item_id}",
        created_at=BASE + timedelta(minutes=minutes),
        spam=verdict,
    )


async def _seed(repository: InMemoryModerationRepository, *items: ContentItem) -> None:
    for item in items:
        await repository.insert_item(item)


async def _drain(queue: ModerationQueue, page_size: int, **filters) -> list[list[str]]:
    pages: list[list[str]] = []
    cursor: Optional[str] = None
    while True:
        page = await queue.list(QueueFilter(cursor=cursor, page_size=page_size, **filters))
        pages.append([item.item_id for item in page.items])
        if page.next_cursor is None:
            return pages
        cursor = page.next_cursor


@pytest.mark.asyncio
async def test_queue_orders_by_score_then_age_then_id() -> None:
    repository = InMemoryModerationRepository()
    await _seed(
        repository,
        _item("low", 0.2, 0),
        _item("unscored", None, -10),
        _item("hot-late", 0.9, 5),
        _item("hot-early", 0.9, 1),
        _item("tie-b", 0.5, 3),
        _item("tie-a", 0.5, 3),
    )
    page = await ModerationQueue(repository).list(QueueFilter())
    assert [item.item_id for item in page.items] == ["hot-early", "hot-late", "tie-a", "tie-b", "low", "unscored"]
    assert page.next_cursor is None


@pytest.mark.asyncio
async def test_pages_cover_every_item_exactly_once() -> None:
    repository = InMemoryModerationRepository()
    await _seed(repository, *(_item(f"item-{idx}", (idx % 3) / 10, idx) for idx in range(7)))
    pages = await _drain(ModerationQueue(repository), page_size=3)
    assert [len(page) for page in pages] == [3, 3, 1]
    flattened = [item_id for page in pages for item_id in page]
    assert len(flattened) == len(set(flattened)) == 7


@pytest.mark.asyncio
async def test_items_inserted_after_cursor_respect_keyset_position() -> None:
    repository = InMemoryModerationRepository()
    await _seed(repository, _item("a", 0.8, 0), _item("b", 0.6, 0), _item("c", 0.4, 0))
    queue = ModerationQueue(repository)
    first = await queue.list(QueueFilter(page_size=2))
    assert [item.item_id for item in first.items] == ["a", "b"]

    await _seed(repository, _item("late-low", 0.1, 10), _item("late-high", 0.99, 10))
    second = await queue.list(QueueFilter(page_size=2, cursor=first.next_cursor))
    assert [item.item_id for item in second.items] == ["c", "late-low"]

    fresh = await queue.list(QueueFilter(page_size=10))
    assert fresh.items[0].item_id == "late-high"


@pytest.mark.asyncio
async def test_filters_by_status_score_and_type() -> None:
    repository = InMemoryModerationRepository()
    await _seed(
        repository,
        _item("topic-hot", 0.8, 0, content_type="topic"),
        _item("post-hot", 0.7, 0),
        _item("post-cold", 0.1, 0),
    )
    queue = ModerationQueue(repository)
    hot = await queue.list(QueueFilter(min_spam_score=0.5))
    assert [item.item_id for item in hot.items] == ["topic-hot", "post-hot"]
    topics = await queue.list(QueueFilter(content_type="topic"))
    assert [item.item_id for item in topics.items] == ["topic-hot"]
    approved = await queue.list(QueueFilter(status=ModerationStatus.APPROVED))
    assert approved.items == ()


@pytest.mark.asyncio
async def test_membership_follows_status_transitions() -> None:
    repository = InMemoryModerationRepository()
    await _seed(repository, _item("x", 0.3, 0), _item("y", 0.2, 0))
    record = DecisionRecord(
        record_id="r1",
        item_id="x",
        reviewer_id="admin",
        prior_status=ModerationStatus.PENDING,
        new_status=ModerationStatus.REJECTED,
        created_at=BASE,
    )
    await repository.apply_decision("x", 0, record)
    queue = ModerationQueue(repository)
    pending = await queue.list(QueueFilter())
    rejected = await queue.list(QueueFilter(status=ModerationStatus.REJECTED))
    assert [item.item_id for item in pending.items] == ["y"]
    assert [item.item_id for item in rejected.items] == ["x"]


@pytest.mark.asyncio
async def test_page_size_is_clamped() -> None:
    repository = InMemoryModerationRepository()
    await _seed(repository, *(_item(f"i{idx}", 0.1, idx) for idx in range(5)))
    queue = ModerationQueue(repository, default_page_size=2, max_page_size=3)
    assert len((await queue.list(QueueFilter(page_size=50))).items) == 3
    assert len((await queue.list(QueueFilter(page_size=0))).items) == 2


@pytest.mark.asyncio
async def test_cursor_is_bound_to_status_filter() -> None:
    repository = InMemoryModerationRepository()
    await _seed(repository, _item("a", 0.5, 0), _item("b", 0.4, 0))
    queue = ModerationQueue(repository)
    first = await queue.list(QueueFilter(page_size=1))
    assert first.next_cursor is not None
    with pytest.raises(ValueError, match="invalid_cursor"):
        await queue.list(QueueFilter(status=ModerationStatus.APPROVED, cursor=first.next_cursor))


@pytest.mark.parametrize(
    "raw",
    [
        "not-base64!!",
        "e30=",
        encode_cursor(QueueCursor(0.1, BASE, "", ModerationStatus.PENDING)),
        encode_cursor(QueueCursor(0.1, BASE.replace(tzinfo=None), "x", ModerationStatus.PENDING)),
    ],
)
def test_decode_cursor_rejects_garbage(raw: str) -> None:
    with pytest.raises(ValueError, match="invalid_cursor"):
        decode_cursor(raw)


def test_cursor_round_trip_keeps_position() -> None:
    cursor = QueueCursor(spam_score=0.42, created_at=BASE, item_id="abc", status=ModerationStatus.PENDING)
    assert decode_cursor(encode_cursor(cursor), expected_status=ModerationStatus.PENDING) == cursor
