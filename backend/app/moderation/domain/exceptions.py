"""Recoverable errors surfaced by the moderation workflow."""

from __future__ import annotations

from fastapi import status


class ModerationError(Exception):
    """Base class for moderation workflow failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: str = "moderation_error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class ItemNotFoundError(ModerationError):
    """The item id is unknown to the content store."""

    status_code = status.HTTP_404_NOT_FOUND
    detail = "not_found"

    def __init__(self, item_id: str) -> None:
        super().__init__()
        self.item_id = item_id

    def __str__(self) -> str:
        return f"{self.detail}:{self.item_id}"


class InvalidTransitionError(ModerationError):
    """The state machine does not allow the requested change."""

    status_code = status.HTTP_409_CONFLICT
    detail = "invalid_transition"

    def __init__(self, item_id: str, from_status: str, to_status: str) -> None:
        super().__init__()
        self.item_id = item_id
        self.from_status = from_status
        self.to_status = to_status

    def __str__(self) -> str:
        return f"{self.detail}:{self.item_id}:{self.from_status}->{self.to_status}"


class ConcurrentDecisionConflict(ModerationError):
    """Another decision won the race; re-read the item and retry."""

    status_code = status.HTTP_409_CONFLICT
    detail = "concurrent_decision_conflict"

    def __init__(self, item_id: str, expected_version: int | None = None) -> None:
        super().__init__()
        self.item_id = item_id
        self.expected_version = expected_version

    def __str__(self) -> str:
        return f"{self.detail}:{self.item_id}"


class UnauthorizedReviewerError(ModerationError):
    """The caller identity is missing or lacks the required role."""

    status_code = status.HTTP_403_FORBIDDEN
    detail = "admin_required"


class ReportNotFoundError(ModerationError):
    """The report id is unknown or belongs to another item."""

    status_code = status.HTTP_404_NOT_FOUND
    detail = "report_not_found"

    def __init__(self, report_id: str) -> None:
        super().__init__()
        self.report_id = report_id

    def __str__(self) -> str:
        return f"{self.detail}:{self.report_id}"


class InvalidReportTransitionError(ModerationError):
    """The report was already reviewed into a state that cannot move this way."""

    status_code = status.HTTP_409_CONFLICT
    detail = "invalid_report_transition"

    def __init__(self, report_id: str, from_status: str, to_status: str) -> None:
        super().__init__()
        self.report_id = report_id
        self.from_status = from_status
        self.to_status = to_status

    def __str__(self) -> str:
        return f"{self.detail}:{self.report_id}:{self.from_status}->{self.to_status}"


class BannedWordNotFoundError(ModerationError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "banned_word_not_found"
