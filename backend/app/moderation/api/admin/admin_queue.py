"""Staff-facing moderation queue listing."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.infra.auth import AuthenticatedUser, get_current_user
from app.infra.rate_limit import enforce_admin_rate
from app.moderation.api._errors import parse_status, to_http_error
from app.moderation.domain.container import get_review_service
from app.moderation.domain.exceptions import ModerationError
from app.moderation.domain.models import QueueFilter
from app.moderation.domain.rbac import ReviewerContext
from app.moderation.domain.review_service import AdminReviewService
from app.moderation.schemas import dto
from app.obs import metrics as obs_metrics

router = APIRouter(prefix="/api/mod/v1/admin/queue", tags=["moderation-admin-queue"])

_QUEUE_RATE_KEY = "mod_admin_queue_list"


async def _get_context(user: AuthenticatedUser = Depends(get_current_user)) -> ReviewerContext:
    return ReviewerContext.from_user(user)


@router.get("", response_model=dto.QueueListResponse)
async def list_queue(
    *,
    status_filter: str = Query(default="pending", alias="status"),
    min_spam_score: float | None = Query(default=None, ge=0.0, le=1.0),
    content_type: str | None = Query(default=None, pattern="^(topic|post)$"),
    limit: int = Query(default=50, ge=1, le=100),
    after: str | None = Query(default=None),
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.QueueListResponse:
    await enforce_admin_rate(_QUEUE_RATE_KEY, context.reviewer_id, route="queue.list")
    query = QueueFilter(
        status=parse_status(status_filter),
        min_spam_score=min_spam_score,
        content_type=content_type,
        cursor=after,
        page_size=limit,
    )
    try:
        page = await service.list_queue(context, query)
    except (ModerationError, ValueError) as exc:
        error = to_http_error(exc)
        obs_metrics.MOD_ADMIN_REQUESTS_TOTAL.labels(route="queue.list", status=str(error.status_code)).inc()
        raise error from exc
    obs_metrics.MOD_ADMIN_REQUESTS_TOTAL.labels(route="queue.list", status="200").inc()
    return dto.QueueListResponse(
        items=[dto.QueueItemResponse.from_domain(item) for item in page.items],
        next=page.next_cursor,
    )
