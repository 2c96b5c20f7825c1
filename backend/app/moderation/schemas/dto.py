"""Pydantic schemas for the moderation API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from app.moderation.domain.detectors.banned_words import BannedWord
from app.moderation.domain.models import ContentItem, DecisionOutcome, DecisionRecord, Report, SpamVerdict

StatusLiteral = Literal["pending", "approved", "rejected"]
ReportReasonLiteral = Literal["spam", "harassment", "hate", "nsfw", "off_topic", "misinformation", "other"]
ReportStatusLiteral = Literal["pending", "resolved", "dismissed", "closed"]


class SpamVerdictResponse(BaseModel):
    score: float
    signals: List[str]
    evaluator_version: str
    recommendation: str
    evaluated_at: Optional[datetime] = None

    model_config = {"populate_by_name": True}

    @classmethod
    def from_domain(cls, verdict: SpamVerdict) -> "SpamVerdictResponse":
        return cls(
            score=verdict.score,
            signals=list(verdict.signals),
            evaluator_version=verdict.evaluator_version,
            recommendation=verdict.recommendation,
            evaluated_at=verdict.evaluated_at,
        )


class QueueItemResponse(BaseModel):
    id: str = Field(alias="item_id")
    content_type: str
    author_id: Optional[str] = None
    title: Optional[str] = None
    excerpt: Optional[str] = None
    status: StatusLiteral
    version: int
    spam_score: float
    recommendation: Optional[str] = None
    report_count: int
    is_anonymous: bool
    created_at: datetime

    model_config = {"populate_by_name": True}

    @classmethod
    def from_domain(cls, item: ContentItem) -> "QueueItemResponse":
        body = item.body if isinstance(item.body, str) else None
        return cls(
            item_id=item.item_id,
            content_type=item.content_type,
            author_id=item.author_id,
            title=item.title,
            excerpt=body[:280] if body else None,
            status=item.status.value,
            version=item.version,
            spam_score=item.spam_score,
            recommendation=item.spam.recommendation if item.spam else None,
            report_count=item.report_count,
            is_anonymous=item.is_anonymous,
            created_at=item.created_at,
        )


class QueueListResponse(BaseModel):
    items: List[QueueItemResponse]
    next: Optional[str] = None

    model_config = {"populate_by_name": True}


class ItemDetailResponse(BaseModel):
    id: str = Field(alias="item_id")
    content_type: str
    author_id: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    status: StatusLiteral
    version: int
    spam: Optional[SpamVerdictResponse] = None
    report_count: int
    is_anonymous: bool
    topic_id: Optional[str] = None
    category_slug: Optional[str] = None
    created_at: datetime

    model_config = {"populate_by_name": True}

    @classmethod
    def from_domain(cls, item: ContentItem) -> "ItemDetailResponse":
        return cls(
            item_id=item.item_id,
            content_type=item.content_type,
            author_id=item.author_id,
            title=item.title,
            body=item.body if isinstance(item.body, str) else None,
            status=item.status.value,
            version=item.version,
            spam=SpamVerdictResponse.from_domain(item.spam) if item.spam else None,
            report_count=item.report_count,
            is_anonymous=item.is_anonymous,
            topic_id=item.topic_id,
            category_slug=item.category_slug,
            created_at=item.created_at,
        )


class DecisionRecordResponse(BaseModel):
    id: str = Field(alias="record_id")
    item_id: str
    reviewer_id: str
    action: str
    prior_status: StatusLiteral
    new_status: StatusLiteral
    rationale: Optional[str] = None
    created_at: datetime

    model_config = {"populate_by_name": True}

    @classmethod
    def from_domain(cls, record: DecisionRecord) -> "DecisionRecordResponse":
        return cls(
            record_id=record.record_id,
            item_id=record.item_id,
            reviewer_id=record.reviewer_id,
            action=record.action,
            prior_status=record.prior_status.value,
            new_status=record.new_status.value,
            rationale=record.rationale,
            created_at=record.created_at,
        )


class AuditTrailResponse(BaseModel):
    item_id: str
    items: List[DecisionRecordResponse]


class DecisionRequestBody(BaseModel):
    # Kept as a plain string so unknown literals surface as ``unrecognized_status``.
    status: str
    expected_version: int = Field(..., ge=0)
    rationale: Optional[str] = Field(default=None, max_length=2000)


class ReopenRequestBody(BaseModel):
    expected_version: int = Field(..., ge=0)
    rationale: Optional[str] = Field(default=None, max_length=2000)


class BulkDecisionEntry(DecisionRequestBody):
    item_id: str


class BulkDecisionRequest(BaseModel):
    decisions: List[BulkDecisionEntry] = Field(..., min_length=1)


class BulkDecisionResult(BaseModel):
    item_id: str
    ok: bool
    status: Optional[StatusLiteral] = None
    version: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def from_domain(cls, outcome: DecisionOutcome) -> "BulkDecisionResult":
        return cls(
            item_id=outcome.item_id,
            ok=outcome.ok,
            status=outcome.item.status.value if outcome.item else None,
            version=outcome.item.version if outcome.item else None,
            error=outcome.error,
        )


class BulkDecisionResponse(BaseModel):
    results: List[BulkDecisionResult]
    succeeded: int
    failed: int


class ContentSubmitRequest(BaseModel):
    id: Optional[str] = Field(default=None, max_length=128)
    content_type: str = Field(..., pattern="^(topic|post)$")
    title: Optional[str] = Field(default=None, max_length=300)
    body: str = Field(..., max_length=40000)
    is_anonymous: bool = False
    topic_id: Optional[str] = None
    category_slug: Optional[str] = None
    requires_moderation: bool = True


class ReportRequest(BaseModel):
    reason: ReportReasonLiteral
    note: Optional[str] = Field(default=None, max_length=1000)


class ReportResponse(BaseModel):
    item_id: str
    report_id: str
    accepted: bool = True


class ReportRecordResponse(BaseModel):
    id: str = Field(alias="report_id")
    item_id: str
    reporter_id: Optional[str] = None
    reason: str
    note: Optional[str] = None
    status: ReportStatusLiteral
    reviewer_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    created_at: datetime

    model_config = {"populate_by_name": True}

    @classmethod
    def from_domain(cls, report: Report) -> "ReportRecordResponse":
        # Reporter IP stays server-side; it is only used for abuse forensics.
        return cls(
            report_id=report.report_id,
            item_id=report.item_id,
            reporter_id=report.reporter_id,
            reason=report.reason,
            note=report.note,
            status=report.status.value,
            reviewer_id=report.reviewer_id,
            reviewed_at=report.reviewed_at,
            admin_notes=report.admin_notes,
            created_at=report.created_at,
        )


class ReportListResponse(BaseModel):
    item_id: str
    items: List[ReportRecordResponse]


class ReportReviewBody(BaseModel):
    admin_notes: Optional[str] = Field(default=None, max_length=2000)


class BannedWordBody(BaseModel):
    pattern: str = Field(..., min_length=1, max_length=200)
    severity: Literal["warning", "moderate", "ban"] = "moderate"
    match_type: Literal["exact", "contains", "regex"] = "exact"
    category: Literal["profanity", "spam", "harassment", "general"] = "general"
    is_active: bool = True

    def to_domain(self) -> BannedWord:
        return BannedWord(
            pattern=self.pattern,
            severity=self.severity,
            match_type=self.match_type,
            category=self.category,
            is_active=self.is_active,
        )

    @classmethod
    def from_domain(cls, entry: BannedWord) -> "BannedWordBody":
        return cls(
            pattern=entry.pattern,
            severity=entry.severity,
            match_type=entry.match_type,
            category=entry.category,
            is_active=entry.is_active,
        )


class LexiconResponse(BaseModel):
    evaluator_version: str
    items: List[BannedWordBody]
