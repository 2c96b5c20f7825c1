"""Storage contract for moderation state and its in-memory implementation."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Collection, Optional, Protocol

from app.moderation.domain.exceptions import (
    ConcurrentDecisionConflict,
    InvalidReportTransitionError,
    ItemNotFoundError,
    ReportNotFoundError,
)
from app.moderation.domain.models import ContentItem, DecisionRecord, Report, ReportStatus, SpamVerdict
from app.moderation.domain.pagination import QueueCursor, is_after, sort_key
from app.moderation.domain.status import ModerationStatus


class ModerationRepository(Protocol):
    """Adapter over the forum content store.

    Implementations never alter payload, author or timestamps. The only
    moderation-owned writes are status/version, the spam verdict, report
    records with their counter, and appended decision records.
    """

    async def insert_item(self, item: ContentItem) -> ContentItem:
        ...

    async def get_item(self, item_id: str) -> ContentItem | None:
        ...

    async def list_queue(
        self,
        *,
        status: ModerationStatus,
        min_spam_score: Optional[float],
        content_type: Optional[str],
        after: Optional[QueueCursor],
        limit: int,
    ) -> list[ContentItem]:
        ...

    async def apply_decision(self, item_id: str, expected_version: int, record: DecisionRecord) -> ContentItem:
        """Atomically compare-and-set status/version and append ``record``.

        Raises :class:`ItemNotFoundError` or :class:`ConcurrentDecisionConflict`.
        """
        ...

    async def save_verdict(
        self,
        item_id: str,
        verdict: SpamVerdict,
        *,
        expected_report_count: Optional[int] = None,
    ) -> ContentItem | None:
        """Replace the verdict; with ``expected_report_count``, only if reports did not move.

        Returns ``None`` when the report counter no longer matches.
        """
        ...

    async def add_report(self, report: Report) -> ContentItem:
        """Store ``report`` and bump the item's report counter together."""
        ...

    async def list_reports(
        self,
        item_id: str,
        *,
        statuses: Optional[Collection[ReportStatus]] = None,
    ) -> list[Report]:
        ...

    async def review_report(
        self,
        item_id: str,
        report_id: str,
        *,
        from_statuses: Collection[ReportStatus],
        new_status: ReportStatus,
        reviewer_id: str,
        reviewed_at: datetime,
        admin_notes: Optional[str] = None,
    ) -> Report:
        """Move a report out of one of ``from_statuses``.

        Raises :class:`ReportNotFoundError` or :class:`InvalidReportTransitionError`.
        """
        ...

    async def list_decisions(self, item_id: str) -> list[DecisionRecord]:
        ...


class InMemoryModerationRepository(ModerationRepository):
    """Lightweight in-memory repository for local development and tests.

    Every mutation is a single synchronous swap of an immutable snapshot, so
    under asyncio no reader sees a half-applied transition.
    """

    def __init__(self) -> None:
        self.items: dict[str, ContentItem] = {}
        self.reports: dict[str, Report] = {}

    async def insert_item(self, item: ContentItem) -> ContentItem:
        if item.item_id in self.items:
            raise ValueError(f"duplicate_item:{item.item_id}")
        self.items[item.item_id] = item
        return item

    async def get_item(self, item_id: str) -> ContentItem | None:
        return self.items.get(item_id)

    async def list_queue(
        self,
        *,
        status: ModerationStatus,
        min_spam_score: Optional[float],
        content_type: Optional[str],
        after: Optional[QueueCursor],
        limit: int,
    ) -> list[ContentItem]:
        candidates = [
            item
            for item in list(self.items.values())
            if item.status is status
            and (min_spam_score is None or item.spam_score >= min_spam_score)
            and (content_type is None or item.content_type == content_type)
            and (after is None or is_after(item, after))
        ]
        candidates.sort(key=sort_key)
        return candidates[:limit]

    async def apply_decision(self, item_id: str, expected_version: int, record: DecisionRecord) -> ContentItem:
        current = self.items.get(item_id)
        if current is None:
            raise ItemNotFoundError(item_id)
        if current.version != expected_version or current.status is not record.prior_status:
            raise ConcurrentDecisionConflict(item_id, expected_version)
        updated = current.with_decision(record)
        self.items[item_id] = updated
        return updated

    async def save_verdict(
        self,
        item_id: str,
        verdict: SpamVerdict,
        *,
        expected_report_count: Optional[int] = None,
    ) -> ContentItem | None:
        current = self._require(item_id)
        if expected_report_count is not None and current.report_count != expected_report_count:
            return None
        updated = replace(current, spam=verdict)
        self.items[item_id] = updated
        return updated

    async def add_report(self, report: Report) -> ContentItem:
        current = self._require(report.item_id)
        if report.report_id in self.reports:
            raise ValueError(f"duplicate_report:{report.report_id}")
        self.reports[report.report_id] = report
        updated = replace(current, report_count=current.report_count + 1)
        self.items[report.item_id] = updated
        return updated

    async def list_reports(
        self,
        item_id: str,
        *,
        statuses: Optional[Collection[ReportStatus]] = None,
    ) -> list[Report]:
        self._require(item_id)
        return [
            report
            for report in self.reports.values()
            if report.item_id == item_id and (statuses is None or report.status in statuses)
        ]

    async def review_report(
        self,
        item_id: str,
        report_id: str,
        *,
        from_statuses: Collection[ReportStatus],
        new_status: ReportStatus,
        reviewer_id: str,
        reviewed_at: datetime,
        admin_notes: Optional[str] = None,
    ) -> Report:
        current = self.reports.get(report_id)
        if current is None or current.item_id != item_id:
            raise ReportNotFoundError(report_id)
        if current.status not in from_statuses:
            raise InvalidReportTransitionError(report_id, current.status.value, new_status.value)
        updated = replace(
            current,
            status=new_status,
            reviewed_at=reviewed_at,
            reviewer_id=reviewer_id,
            admin_notes=admin_notes if admin_notes is not None else current.admin_notes,
        )
        self.reports[report_id] = updated
        return updated

    async def list_decisions(self, item_id: str) -> list[DecisionRecord]:
        return list(self._require(item_id).history)

    def _require(self, item_id: str) -> ContentItem:
        current = self.items.get(item_id)
        if current is None:
            raise ItemNotFoundError(item_id)
        return current
