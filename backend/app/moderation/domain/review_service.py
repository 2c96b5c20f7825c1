"""Admin review operations backing the moderation and spam panels."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from app.moderation.domain.detectors.banned_words import BannedWord, validate_banned_word
from app.moderation.domain.exceptions import BannedWordNotFoundError, ItemNotFoundError
from app.moderation.domain.models import (
    ACTIVE_REPORT_STATUSES,
    REVIEWED_REPORT_STATUSES,
    ContentItem,
    DecisionOutcome,
    DecisionRecord,
    DecisionRequest,
    QueueFilter,
    QueuePage,
    Report,
    ReportReceipt,
    ReportStatus,
)
from app.moderation.domain.queue import ModerationQueue
from app.moderation.domain.rbac import ReviewerContext, ensure_admin, ensure_staff
from app.moderation.domain.status import ModerationStatus
from app.moderation.domain.workflow import ModerationWorkflow
from app.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

MAX_BULK_DECISIONS = 500

REPORT_VIEWS = {
    "active": ACTIVE_REPORT_STATUSES,
    "resolved": REVIEWED_REPORT_STATUSES,
    "all": None,
}


@dataclass
class AdminReviewService:
    """Role-checked facade over the workflow engine and the queue.

    Reads need a staff role; every mutation needs an admin role and is
    attributed to the calling reviewer.
    """

    workflow: ModerationWorkflow
    queue: ModerationQueue

    async def list_queue(self, reviewer: Optional[ReviewerContext], query: QueueFilter) -> QueuePage:
        ensure_staff(reviewer)
        return await self.queue.list(query)

    async def get_item(self, reviewer: Optional[ReviewerContext], item_id: str) -> ContentItem:
        ensure_staff(reviewer)
        item = await self.workflow.repository.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    async def get_audit_trail(self, reviewer: Optional[ReviewerContext], item_id: str) -> list[DecisionRecord]:
        """Decision records for ``item_id``, oldest first."""
        ensure_staff(reviewer)
        return await self.workflow.repository.list_decisions(item_id)

    async def decide(
        self,
        reviewer: Optional[ReviewerContext],
        item_id: str,
        new_status: ModerationStatus | str,
        *,
        expected_version: int,
        rationale: Optional[str] = None,
    ) -> ContentItem:
        context = ensure_admin(reviewer)
        return await self.workflow.decide(
            item_id,
            new_status,
            reviewer_id=context.reviewer_id,
            expected_version=expected_version,
            rationale=rationale,
        )

    async def decide_many(
        self,
        reviewer: Optional[ReviewerContext],
        requests: Sequence[DecisionRequest],
    ) -> list[DecisionOutcome]:
        context = ensure_admin(reviewer)
        if len(requests) > MAX_BULK_DECISIONS:
            raise ValueError("too_many_decisions")
        outcomes = await self.workflow.decide_many(requests, reviewer_id=context.reviewer_id)
        failed = sum(1 for outcome in outcomes if not outcome.ok)
        logger.info(
            "bulk decision processed",
            extra={"reviewer_id": context.reviewer_id, "total": len(outcomes), "failed": failed},
        )
        return outcomes

    async def reopen(
        self,
        reviewer: Optional[ReviewerContext],
        item_id: str,
        *,
        expected_version: int,
        rationale: Optional[str] = None,
    ) -> ContentItem:
        context = ensure_admin(reviewer)
        return await self.workflow.reopen(
            item_id,
            reviewer_id=context.reviewer_id,
            expected_version=expected_version,
            rationale=rationale,
        )

    async def reevaluate(self, reviewer: Optional[ReviewerContext], item_id: str) -> ContentItem:
        ensure_admin(reviewer)
        return await self.workflow.reevaluate(item_id)

    # --- Member reports ----------------------------------------------------

    async def flag(
        self,
        item_id: str,
        *,
        reporter_id: Optional[str],
        reason: str,
        note: Optional[str] = None,
        reporter_ip: Optional[str] = None,
    ) -> ReportReceipt:
        """Reporter flags come from forum members, so no reviewer role applies."""
        return await self.workflow.flag(
            item_id,
            reporter_id=reporter_id,
            reason=reason,
            note=note,
            reporter_ip=reporter_ip,
        )

    async def list_reports(self, reviewer: Optional[ReviewerContext], item_id: str, *, view: str = "all") -> list[Report]:
        """Reports for ``item_id`` oldest first; ``active`` is pending, ``resolved`` is everything reviewed."""
        ensure_staff(reviewer)
        if view not in REPORT_VIEWS:
            raise ValueError("invalid_report_view")
        return await self.workflow.repository.list_reports(item_id, statuses=REPORT_VIEWS[view])

    async def resolve_report(
        self,
        reviewer: Optional[ReviewerContext],
        item_id: str,
        report_id: str,
        *,
        admin_notes: Optional[str] = None,
    ) -> Report:
        return await self._review_report(reviewer, item_id, report_id, ReportStatus.RESOLVED, admin_notes)

    async def dismiss_report(
        self,
        reviewer: Optional[ReviewerContext],
        item_id: str,
        report_id: str,
        *,
        admin_notes: Optional[str] = None,
    ) -> Report:
        return await self._review_report(reviewer, item_id, report_id, ReportStatus.DISMISSED, admin_notes)

    async def close_report(
        self,
        reviewer: Optional[ReviewerContext],
        item_id: str,
        report_id: str,
        *,
        admin_notes: Optional[str] = None,
    ) -> Report:
        return await self._review_report(reviewer, item_id, report_id, ReportStatus.CLOSED, admin_notes)

    async def _review_report(
        self,
        reviewer: Optional[ReviewerContext],
        item_id: str,
        report_id: str,
        new_status: ReportStatus,
        admin_notes: Optional[str],
    ) -> Report:
        context = ensure_admin(reviewer)
        return await self.workflow.review_report(
            item_id,
            report_id,
            new_status,
            reviewer_id=context.reviewer_id,
            admin_notes=admin_notes,
        )

    # --- Spam lexicon ------------------------------------------------------

    async def list_banned_words(self, reviewer: Optional[ReviewerContext]) -> list[BannedWord]:
        ensure_staff(reviewer)
        return await self.workflow.lexicon.list_entries()

    async def save_banned_word(self, reviewer: Optional[ReviewerContext], entry: BannedWord) -> BannedWord:
        """Insert or replace a lexicon entry; new verdicts use it straight away."""
        context = ensure_admin(reviewer)
        stored = await self.workflow.lexicon.upsert_entry(validate_banned_word(entry))
        await self.workflow.refresh_lexicon()
        obs_metrics.MOD_LEXICON_CHANGES_TOTAL.labels(action="upsert").inc()
        logger.info(
            "banned word saved",
            extra={"reviewer_id": context.reviewer_id, "pattern": stored.pattern, "severity": stored.severity},
        )
        return stored

    async def delete_banned_word(self, reviewer: Optional[ReviewerContext], pattern: str) -> None:
        context = ensure_admin(reviewer)
        if not await self.workflow.lexicon.delete_entry(pattern):
            raise BannedWordNotFoundError()
        await self.workflow.refresh_lexicon()
        obs_metrics.MOD_LEXICON_CHANGES_TOTAL.labels(action="delete").inc()
        logger.info("banned word deleted", extra={"reviewer_id": context.reviewer_id, "pattern": pattern})
