"""RBAC utilities for moderation review endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from app.infra.auth import AuthenticatedUser
from app.moderation.domain.exceptions import UnauthorizedReviewerError

ADMIN_ROLE = "admin"
STAFF_ADMIN_SCOPE = "staff.admin"
STAFF_MODERATOR_SCOPE = "staff.moderator"


@dataclass(slots=True)
class ReviewerContext:
    """Resolved reviewer identity used throughout the admin API."""

    reviewer_id: str
    roles: tuple[str, ...]

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles or STAFF_ADMIN_SCOPE in self.roles

    @property
    def is_staff(self) -> bool:
        return STAFF_MODERATOR_SCOPE in self.roles or self.is_admin

    @classmethod
    def from_user(cls, user: AuthenticatedUser) -> "ReviewerContext":
        return cls(reviewer_id=user.id, roles=tuple(user.roles))

    @classmethod
    def of(cls, reviewer_id: str, roles: Iterable[str]) -> "ReviewerContext":
        return cls(reviewer_id=reviewer_id, roles=tuple(roles))


def ensure_staff(context: ReviewerContext | None) -> ReviewerContext:
    if context is None or not context.reviewer_id or not context.is_staff:
        raise UnauthorizedReviewerError("staff_required")
    return context


def ensure_admin(context: ReviewerContext | None) -> ReviewerContext:
    """Mutations are only accepted from callers holding the admin role."""

    if context is None or not context.reviewer_id or not context.is_admin:
        raise UnauthorizedReviewerError("admin_required")
    return context
