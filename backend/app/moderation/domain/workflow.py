"""Moderation workflow engine: intake, the status state machine and its audit trail."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence
from uuid import uuid4

from app.moderation.domain.detectors.velocity import IntakeSignalCollector
from app.moderation.domain.exceptions import (
    ConcurrentDecisionConflict,
    InvalidReportTransitionError,
    InvalidTransitionError,
    ItemNotFoundError,
    ModerationError,
)
from app.moderation.domain.models import (
    ACTION_AUTO_APPROVE,
    ACTION_DECIDE,
    ACTION_REOPEN,
    CONTENT_TYPES,
    SYSTEM_REVIEWER_ID,
    ContentItem,
    DecisionOutcome,
    DecisionRecord,
    DecisionRequest,
    Report,
    ReportReceipt,
    ReportStatus,
    normalize_report_reason,
)
from app.moderation.domain.lexicon import InMemoryLexiconStore, LexiconStore
from app.moderation.domain.repository import ModerationRepository
from app.moderation.domain.spam import SpamEvaluator
from app.moderation.domain.status import ModerationStatus, Unrecognized, classify
from app.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

_EDGES: Mapping[str, Mapping[ModerationStatus, frozenset[ModerationStatus]]] = {
    ACTION_DECIDE: {
        ModerationStatus.PENDING: frozenset({ModerationStatus.APPROVED, ModerationStatus.REJECTED}),
    },
    ACTION_AUTO_APPROVE: {
        ModerationStatus.PENDING: frozenset({ModerationStatus.APPROVED}),
    },
    ACTION_REOPEN: {
        ModerationStatus.APPROVED: frozenset({ModerationStatus.PENDING}),
        ModerationStatus.REJECTED: frozenset({ModerationStatus.PENDING}),
    },
}


# Report review target -> statuses it may be reached from.
_REPORT_SOURCES: Mapping[ReportStatus, frozenset[ReportStatus]] = {
    ReportStatus.RESOLVED: frozenset({ReportStatus.PENDING}),
    ReportStatus.DISMISSED: frozenset({ReportStatus.PENDING}),
    ReportStatus.CLOSED: frozenset({ReportStatus.PENDING, ReportStatus.RESOLVED, ReportStatus.DISMISSED}),
}

MAX_VERDICT_ATTEMPTS = 5


def is_allowed(action: str, from_status: ModerationStatus, to_status: ModerationStatus) -> bool:
    return to_status in _EDGES.get(action, {}).get(from_status, frozenset())


class DecisionPublisher(Protocol):
    async def publish(self, fields: Mapping[str, Any]) -> None:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


@dataclass
class ModerationWorkflow:
    repository: ModerationRepository
    evaluator: SpamEvaluator = field(default_factory=SpamEvaluator)
    signal_collector: IntakeSignalCollector = field(default_factory=IntakeSignalCollector)
    publisher: Optional[DecisionPublisher] = None
    lexicon: LexiconStore = field(default_factory=InMemoryLexiconStore)
    clock: Callable[[], datetime] = _utcnow
    id_factory: Callable[[], str] = _new_id
    _in_flight: set[str] = field(default_factory=set, init=False, repr=False)

    # --- Intake ------------------------------------------------------------

    async def submit(
        self,
        *,
        author_id: Optional[str],
        content_type: str,
        body: Optional[str],
        title: Optional[str] = None,
        item_id: Optional[str] = None,
        is_anonymous: bool = False,
        ip_address: Optional[str] = None,
        topic_id: Optional[str] = None,
        category_slug: Optional[str] = None,
        requires_moderation: bool = True,
        created_at: Optional[datetime] = None,
    ) -> ContentItem:
        """Register new content as ``pending`` and attach its first spam verdict.

        Content from categories that do not require moderation is approved by
        the system reviewer straight away, unless the verdict says likely spam.
        """
        if content_type not in CONTENT_TYPES:
            raise ValueError("invalid_content_type")
        signals = await self._collect_signals(author_id, ip_address, body)
        item = ContentItem(
            item_id=item_id or self.id_factory(),
            author_id=author_id,
            content_type=content_type,
            title=title,
            body=body,
            created_at=created_at or self.clock(),
            is_anonymous=is_anonymous,
            ip_address=ip_address,
            topic_id=topic_id,
            category_slug=category_slug,
            signals=signals,
        )
        item = replace(item, spam=self.evaluator.evaluate(item))
        stored = await self.repository.insert_item(item)
        logger.info(
            "moderation item submitted",
            extra={
                "item_id": stored.item_id,
                "content_type": stored.content_type,
                "spam_score": stored.spam_score,
                "requires_moderation": requires_moderation,
            },
        )
        if not requires_moderation and stored.spam is not None and stored.spam.recommendation != "likely_spam":
            stored = await self._transition(
                stored.item_id,
                ModerationStatus.APPROVED,
                reviewer_id=SYSTEM_REVIEWER_ID,
                expected_version=stored.version,
                rationale="category_does_not_require_moderation",
                action=ACTION_AUTO_APPROVE,
            )
        obs_metrics.MOD_ITEMS_SUBMITTED_TOTAL.labels(
            content_type=stored.content_type,
            initial_status=stored.status.value,
        ).inc()
        return stored

    async def _collect_signals(self, author_id: Optional[str], ip_address: Optional[str], body: Optional[str]) -> dict[str, int]:
        author_key = author_id or (f"ip:{ip_address}" if ip_address else "")
        try:
            return await self.signal_collector.collect(author_key, body or "")
        except Exception:  # noqa: BLE001 - missing signals only lower the spam score
            logger.exception("intake signal collection failed", extra={"author_id": author_id})
            return {}

    # --- Spam verdicts -----------------------------------------------------

    async def reevaluate(self, item_id: str) -> ContentItem:
        """Recompute the verdict; the newest verdict replaces the previous one.

        The write only lands if the report counter is still the one the verdict
        was computed from. When a report slips in between, the item is re-read
        and scored again.
        """
        for _ in range(MAX_VERDICT_ATTEMPTS):
            current = await self.repository.get_item(item_id)
            if current is None:
                raise ItemNotFoundError(item_id)
            verdict = self.evaluator.evaluate(current)
            saved = await self.repository.save_verdict(
                item_id,
                verdict,
                expected_report_count=current.report_count,
            )
            if saved is not None:
                return saved
            obs_metrics.MOD_VERDICT_CONFLICTS_TOTAL.inc()
        raise ConcurrentDecisionConflict(item_id)

    async def refresh_lexicon(self) -> SpamEvaluator:
        """Reload the banned word lexicon into the evaluator used for new verdicts."""
        entries = await self.lexicon.list_entries()
        self.evaluator = self.evaluator.with_lexicon(entries)
        logger.info(
            "spam lexicon loaded",
            extra={"entries": len(entries), "evaluator_version": self.evaluator.version},
        )
        return self.evaluator

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
        """Record a member report and re-score the item with it."""
        reason = normalize_report_reason(reason)
        report = Report(
            report_id=self.id_factory(),
            item_id=item_id,
            reporter_id=reporter_id,
            reason=reason,
            created_at=self.clock(),
            note=note,
            reporter_ip=reporter_ip,
        )
        stored = await self.repository.add_report(report)
        try:
            updated = await self.reevaluate(item_id)
        except ConcurrentDecisionConflict:
            # Reports kept arriving; the last one to land re-scores with the full count.
            logger.warning("verdict refresh gave up after report", extra={"item_id": item_id})
            updated = stored
        obs_metrics.MOD_REPORTS_TOTAL.labels(reason=reason).inc()
        logger.info(
            "moderation item flagged",
            extra={
                "item_id": item_id,
                "report_id": report.report_id,
                "reporter_id": reporter_id,
                "reason": reason,
                "report_count": updated.report_count,
                "spam_score": updated.spam_score,
            },
        )
        return ReportReceipt(item=updated, report=report)

    async def review_report(
        self,
        item_id: str,
        report_id: str,
        new_status: ReportStatus,
        *,
        reviewer_id: str,
        admin_notes: Optional[str] = None,
    ) -> Report:
        sources = _REPORT_SOURCES.get(new_status)
        if not sources:
            raise InvalidReportTransitionError(report_id, "any", new_status.value)
        report = await self.repository.review_report(
            item_id,
            report_id,
            from_statuses=sources,
            new_status=new_status,
            reviewer_id=reviewer_id,
            reviewed_at=self.clock(),
            admin_notes=admin_notes,
        )
        obs_metrics.MOD_REPORT_REVIEWS_TOTAL.labels(status=new_status.value).inc()
        logger.info(
            "member report reviewed",
            extra={
                "item_id": item_id,
                "report_id": report_id,
                "reviewer_id": reviewer_id,
                "report_status": new_status.value,
            },
        )
        return report

    # --- Transitions -------------------------------------------------------

    async def decide(
        self,
        item_id: str,
        new_status: ModerationStatus | str,
        *,
        reviewer_id: str,
        expected_version: int,
        rationale: Optional[str] = None,
    ) -> ContentItem:
        return await self._transition(
            item_id,
            classify(new_status),
            reviewer_id=reviewer_id,
            expected_version=expected_version,
            rationale=rationale,
            action=ACTION_DECIDE,
        )

    async def reopen(
        self,
        item_id: str,
        *,
        reviewer_id: str,
        expected_version: int,
        rationale: Optional[str] = None,
    ) -> ContentItem:
        return await self._transition(
            item_id,
            ModerationStatus.PENDING,
            reviewer_id=reviewer_id,
            expected_version=expected_version,
            rationale=rationale,
            action=ACTION_REOPEN,
        )

    async def decide_many(self, requests: Sequence[DecisionRequest], *, reviewer_id: str) -> list[DecisionOutcome]:
        """Apply each decision independently; one failure never aborts the rest."""
        outcomes = await asyncio.gather(*(self._decide_one(request, reviewer_id) for request in requests))
        return list(outcomes)

    async def _decide_one(self, request: DecisionRequest, reviewer_id: str) -> DecisionOutcome:
        try:
            item = await self.decide(
                request.item_id,
                request.status,
                reviewer_id=reviewer_id,
                expected_version=request.expected_version,
                rationale=request.rationale,
            )
        except ModerationError as exc:
            obs_metrics.MOD_BULK_DECISIONS_TOTAL.labels(result=exc.detail).inc()
            return DecisionOutcome(item_id=request.item_id, ok=False, error=exc.detail)
        except Exception:  # noqa: BLE001 - isolate storage failures to the affected item
            logger.exception("bulk decision failed", extra={"item_id": request.item_id})
            obs_metrics.MOD_BULK_DECISIONS_TOTAL.labels(result="internal_error").inc()
            return DecisionOutcome(item_id=request.item_id, ok=False, error="internal_error")
        obs_metrics.MOD_BULK_DECISIONS_TOTAL.labels(result="ok").inc()
        return DecisionOutcome(item_id=request.item_id, ok=True, item=item)

    async def _transition(
        self,
        item_id: str,
        target: ModerationStatus | Unrecognized,
        *,
        reviewer_id: str,
        expected_version: int,
        rationale: Optional[str],
        action: str,
    ) -> ContentItem:
        if item_id in self._in_flight:
            obs_metrics.MOD_DECISION_CONFLICTS_TOTAL.inc()
            raise ConcurrentDecisionConflict(item_id, expected_version)
        self._in_flight.add(item_id)
        try:
            current = await self.repository.get_item(item_id)
            if current is None:
                raise ItemNotFoundError(item_id)
            if current.version != expected_version:
                raise ConcurrentDecisionConflict(item_id, expected_version)
            if isinstance(target, Unrecognized) or not is_allowed(action, current.status, target):
                to_label = target.value if isinstance(target, ModerationStatus) else "unrecognized"
                obs_metrics.MOD_INVALID_TRANSITIONS_TOTAL.labels(
                    from_status=current.status.value,
                    to_status=to_label,
                ).inc()
                raise InvalidTransitionError(item_id, current.status.value, to_label)
            record = DecisionRecord(
                record_id=self.id_factory(),
                item_id=item_id,
                reviewer_id=reviewer_id,
                prior_status=current.status,
                new_status=target,
                created_at=self.clock(),
                rationale=rationale,
                action=action,
            )
            updated = await self.repository.apply_decision(item_id, expected_version, record)
        except ConcurrentDecisionConflict:
            obs_metrics.MOD_DECISION_CONFLICTS_TOTAL.inc()
            raise
        finally:
            self._in_flight.discard(item_id)

        obs_metrics.MOD_DECISIONS_TOTAL.labels(
            transition=f"{record.prior_status.value}->{record.new_status.value}",
        ).inc()
        logger.info(
            "moderation decision applied",
            extra={
                "item_id": item_id,
                "reviewer_id": reviewer_id,
                "action": action,
                "prior_status": record.prior_status.value,
                "new_status": record.new_status.value,
                "version": updated.version,
            },
        )
        await self._publish(updated, record)
        return updated

    async def _publish(self, item: ContentItem, record: DecisionRecord) -> None:
        if self.publisher is None:
            return
        try:
            await self.publisher.publish(
                {
                    "item_id": item.item_id,
                    "content_type": item.content_type,
                    "record_id": record.record_id,
                    "action": record.action,
                    "prior_status": record.prior_status.value,
                    "new_status": record.new_status.value,
                    "reviewer_id": record.reviewer_id,
                    "version": item.version,
                    "created_at": record.created_at.isoformat(),
                }
            )
        except Exception:  # noqa: BLE001 - the decision is committed; consumers can resync
            obs_metrics.MOD_EVENT_PUBLISH_FAILURES_TOTAL.inc()
            logger.exception("failed to publish moderation decision", extra={"item_id": item.item_id})
