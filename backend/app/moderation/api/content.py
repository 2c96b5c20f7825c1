"""Content intake and member reports feeding the moderation queue."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.infra.auth import AuthenticatedUser, get_current_user
from app.moderation.api._errors import to_http_error
from app.moderation.domain.container import get_review_service, get_workflow
from app.moderation.domain.exceptions import ModerationError
from app.moderation.domain.review_service import AdminReviewService
from app.moderation.domain.workflow import ModerationWorkflow
from app.moderation.schemas import dto

router = APIRouter(prefix="/api/mod/v1/items", tags=["moderation-content"])


@router.post("", response_model=dto.ItemDetailResponse, status_code=201)
async def submit_item(
    payload: dto.ContentSubmitRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    workflow: ModerationWorkflow = Depends(get_workflow),
) -> dto.ItemDetailResponse:
    try:
        item = await workflow.submit(
            item_id=payload.id,
            author_id=user.id,
            content_type=payload.content_type,
            title=payload.title,
            body=payload.body,
            is_anonymous=payload.is_anonymous,
            ip_address=request.client.host if request.client else None,
            topic_id=payload.topic_id,
            category_slug=payload.category_slug,
            requires_moderation=payload.requires_moderation,
        )
    except (ModerationError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return dto.ItemDetailResponse.from_domain(item)


@router.post("/{item_id}/reports", response_model=dto.ReportResponse, status_code=202)
async def report_item(
    item_id: str,
    payload: dto.ReportRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.ReportResponse:
    try:
        receipt = await service.flag(
            item_id,
            reporter_id=user.id,
            reason=payload.reason,
            note=payload.note,
            reporter_ip=request.client.host if request.client else None,
        )
    except ModerationError as exc:
        raise to_http_error(exc) from exc
    return dto.ReportResponse(item_id=receipt.item.item_id, report_id=receipt.report.report_id)
