"""Spam panel lexicon management."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from app.infra.auth import AuthenticatedUser, get_current_user
from app.moderation.api._errors import to_http_error
from app.moderation.domain.container import get_review_service
from app.moderation.domain.exceptions import ModerationError
from app.moderation.domain.rbac import ReviewerContext
from app.moderation.domain.review_service import AdminReviewService
from app.moderation.schemas import dto
from app.obs import metrics as obs_metrics

router = APIRouter(prefix="/api/mod/v1/admin/spam", tags=["moderation-admin-spam"])


async def _get_context(user: AuthenticatedUser = Depends(get_current_user)) -> ReviewerContext:
    return ReviewerContext.from_user(user)


def _failed(route: str, exc: Exception) -> HTTPException:
    error = to_http_error(exc)
    obs_metrics.MOD_ADMIN_REQUESTS_TOTAL.labels(route=route, status=str(error.status_code)).inc()
    return error


async def _lexicon_response(service: AdminReviewService, context: ReviewerContext) -> dto.LexiconResponse:
    entries = await service.list_banned_words(context)
    return dto.LexiconResponse(
        evaluator_version=service.workflow.evaluator.version,
        items=[dto.BannedWordBody.from_domain(entry) for entry in entries],
    )


@router.get("/lexicon", response_model=dto.LexiconResponse)
async def get_lexicon(
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.LexiconResponse:
    try:
        response = await _lexicon_response(service, context)
    except ModerationError as exc:
        raise _failed("spam.lexicon", exc) from exc
    obs_metrics.MOD_ADMIN_REQUESTS_TOTAL.labels(route="spam.lexicon", status="200").inc()
    return response


@router.put("/lexicon", response_model=dto.LexiconResponse)
async def save_banned_word(
    payload: dto.BannedWordBody,
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.LexiconResponse:
    try:
        await service.save_banned_word(context, payload.to_domain())
        response = await _lexicon_response(service, context)
    except (ModerationError, ValueError) as exc:
        raise _failed("spam.lexicon_save", exc) from exc
    obs_metrics.MOD_ADMIN_REQUESTS_TOTAL.labels(route="spam.lexicon_save", status="200").inc()
    return response


@router.delete("/lexicon", response_model=dto.LexiconResponse)
async def delete_banned_word(
    pattern: str = Query(..., min_length=1, max_length=200),
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.LexiconResponse:
    try:
        await service.delete_banned_word(context, pattern)
        response = await _lexicon_response(service, context)
    except ModerationError as exc:
        raise _failed("spam.lexicon_delete", exc) from exc
    obs_metrics.MOD_ADMIN_REQUESTS_TOTAL.labels(route="spam.lexicon_delete", status="200").inc()
    return response
