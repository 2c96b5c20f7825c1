"""Ordered, filterable view over items awaiting (or holding) a decision."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from app.moderation.domain.models import QueueFilter, QueuePage
from app.moderation.domain.pagination import QueueCursor, decode_cursor, encode_cursor
from app.moderation.domain.repository import ModerationRepository
from app.obs import metrics as obs_metrics


@dataclass
class ModerationQueue:
    """Read-only queue backed by a non-owning repository index.

    Order is most suspicious first, then oldest, then item id. Membership is
    never mutated here; it follows status transitions applied by the workflow.
    """

    repository: ModerationRepository
    default_page_size: int = 50
    max_page_size: int = 100

    def sanitized_limit(self, page_size: Optional[int]) -> int:
        if not page_size or page_size < 1:
            return self.default_page_size
        return min(page_size, self.max_page_size)

    async def list(self, query: QueueFilter) -> QueuePage:
        start = time.perf_counter()
        cursor: QueueCursor | None = None
        if query.cursor:
            cursor = decode_cursor(query.cursor, expected_status=query.status)
        limit = self.sanitized_limit(query.page_size)
        rows = await self.repository.list_queue(
            status=query.status,
            min_spam_score=query.min_spam_score,
            content_type=query.content_type,
            after=cursor,
            limit=limit + 1,
        )
        has_next = len(rows) > limit
        if has_next:
            rows = rows[:limit]
        next_cursor: str | None = None
        if has_next and rows:
            next_cursor = encode_cursor(QueueCursor.after(rows[-1]))
        obs_metrics.MOD_QUEUE_LIST_LATENCY_MS.observe((time.perf_counter() - start) * 1000.0)
        return QueuePage(items=tuple(rows), next_cursor=next_cursor)
