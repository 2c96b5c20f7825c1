"""Value objects shared by the moderation workflow, queue and API."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from app.moderation.domain.status import ModerationStatus

CONTENT_TYPES = ("topic", "post")

ACTION_DECIDE = "decide"
ACTION_REOPEN = "reopen"
ACTION_AUTO_APPROVE = "auto_approve"

SYSTEM_REVIEWER_ID = "system"

REPORT_REASONS = ("spam", "harassment", "hate", "nsfw", "off_topic", "misinformation", "other")


def normalize_report_reason(raw: object) -> str:
    """Fold a reporter-supplied reason into the closed vocabulary."""
    if isinstance(raw, str) and raw in REPORT_REASONS:
        return raw
    return "other"


@dataclass(frozen=True)
class SpamVerdict:
    """Advisory spam assessment; never changes an item's status by itself."""

    score: float
    signals: tuple[str, ...]
    evaluator_version: str
    recommendation: str = "clean"
    evaluated_at: Optional[datetime] = None

    @staticmethod
    def zero(evaluator_version: str, *signals: str) -> "SpamVerdict":
        return SpamVerdict(score=0.0, signals=tuple(signals), evaluator_version=evaluator_version)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "signals": list(self.signals),
            "evaluator_version": self.evaluator_version,
            "recommendation": self.recommendation,
            "evaluated_at": self.evaluated_at.isoformat() if self.evaluated_at else None,
        }


@dataclass(frozen=True)
class DecisionRecord:
    """Immutable audit entry written once per applied transition."""

    record_id: str
    item_id: str
    reviewer_id: str
    prior_status: ModerationStatus
    new_status: ModerationStatus
    created_at: datetime
    rationale: Optional[str] = None
    action: str = ACTION_DECIDE


@dataclass(frozen=True)
class ContentItem:
    """A unit of forum content under moderation.

    Instances are snapshots. Repositories swap whole instances so readers never
    observe a status without its matching version and history.
    """

    item_id: str
    author_id: Optional[str]
    content_type: str
    body: Optional[str]
    created_at: datetime
    status: ModerationStatus = ModerationStatus.PENDING
    version: int = 0
    title: Optional[str] = None
    spam: Optional[SpamVerdict] = None
    report_count: int = 0
    is_anonymous: bool = False
    ip_address: Optional[str] = None
    topic_id: Optional[str] = None
    category_slug: Optional[str] = None
    signals: Mapping[str, Any] = field(default_factory=dict)
    history: tuple[DecisionRecord, ...] = ()

    @property
    def spam_score(self) -> float:
        return self.spam.score if self.spam is not None else 0.0

    def with_decision(self, record: DecisionRecord) -> "ContentItem":
        return replace(
            self,
            status=record.new_status,
            version=self.version + 1,
            history=self.history + (record,),
        )


@dataclass(frozen=True)
class DecisionRequest:
    """One entry of a bulk decision."""

    item_id: str
    status: ModerationStatus
    expected_version: int
    rationale: Optional[str] = None


@dataclass(frozen=True)
class DecisionOutcome:
    """Per-item result of a bulk decision."""

    item_id: str
    ok: bool
    item: Optional[ContentItem] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class QueueFilter:
    status: ModerationStatus = ModerationStatus.PENDING
    min_spam_score: Optional[float] = None
    content_type: Optional[str] = None
    cursor: Optional[str] = None
    page_size: int = 50


@dataclass(frozen=True)
class QueuePage:
    items: tuple[ContentItem, ...]
    next_cursor: Optional[str] = None


class ReportStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


ACTIVE_REPORT_STATUSES = frozenset({ReportStatus.PENDING})
REVIEWED_REPORT_STATUSES = frozenset({ReportStatus.RESOLVED, ReportStatus.DISMISSED, ReportStatus.CLOSED})


@dataclass(frozen=True)
class Report:
    """A member report against one item, reviewed independently of the item's status."""

    report_id: str
    item_id: str
    reporter_id: Optional[str]
    reason: str
    created_at: datetime
    note: Optional[str] = None
    reporter_ip: Optional[str] = None
    status: ReportStatus = ReportStatus.PENDING
    reviewed_at: Optional[datetime] = None
    reviewer_id: Optional[str] = None
    admin_notes: Optional[str] = None


@dataclass(frozen=True)
class ReportReceipt:
    """Result of a member report: the stored report and the re-scored item."""

    item: ContentItem
    report: Report
