"""Staff-facing item review: detail, decisions, reopen, audit trail and spam panel."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from app.infra.auth import AuthenticatedUser, get_current_user
from app.infra.rate_limit import enforce_admin_rate
from app.moderation.api._errors import parse_status, to_http_error
from app.moderation.domain.container import get_review_service
from app.moderation.domain.exceptions import ModerationError
from app.moderation.domain.models import DecisionRequest
from app.moderation.domain.rbac import ReviewerContext
from app.moderation.domain.review_service import AdminReviewService
from app.moderation.domain.status import classify
from app.moderation.schemas import dto
from app.obs import metrics as obs_metrics

router = APIRouter(prefix="/api/mod/v1/admin/items", tags=["moderation-admin-items"])

_BULK_RATE_KEY = "mod_admin_items_bulk"


async def _get_context(user: AuthenticatedUser = Depends(get_current_user)) -> ReviewerContext:
    return ReviewerContext.from_user(user)


def _failed(route: str, exc: Exception) -> HTTPException:
    error = to_http_error(exc)
    obs_metrics.MOD_ADMIN_REQUESTS_TOTAL.labels(route=route, status=str(error.status_code)).inc()
    return error


def _ok(route: str) -> None:
    obs_metrics.MOD_ADMIN_REQUESTS_TOTAL.labels(route=route, status="200").inc()


@router.post("/decisions", response_model=dto.BulkDecisionResponse)
async def decide_many(
    payload: dto.BulkDecisionRequest,
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.BulkDecisionResponse:
    await enforce_admin_rate(_BULK_RATE_KEY, context.reviewer_id, route="items.bulk_decision")
    parsed = [(entry, classify(entry.status)) for entry in payload.decisions]
    requests = [
        DecisionRequest(
            item_id=entry.item_id,
            status=new_status,
            expected_version=entry.expected_version,
            rationale=entry.rationale,
        )
        for entry, new_status in parsed
        if new_status
    ]
    try:
        outcomes = iter(await service.decide_many(context, requests))
    except (ModerationError, ValueError) as exc:
        raise _failed("items.bulk_decision", exc) from exc
    # Entries with an unknown status literal fail alone; the rest are still applied.
    results = [
        dto.BulkDecisionResult.from_domain(next(outcomes))
        if new_status
        else dto.BulkDecisionResult(item_id=entry.item_id, ok=False, error="unrecognized_status")
        for entry, new_status in parsed
    ]
    succeeded = sum(1 for result in results if result.ok)
    _ok("items.bulk_decision")
    return dto.BulkDecisionResponse(results=results, succeeded=succeeded, failed=len(results) - succeeded)


@router.get("/{item_id}", response_model=dto.ItemDetailResponse)
async def get_item(
    item_id: str,
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.ItemDetailResponse:
    try:
        item = await service.get_item(context, item_id)
    except ModerationError as exc:
        raise _failed("items.detail", exc) from exc
    _ok("items.detail")
    return dto.ItemDetailResponse.from_domain(item)


@router.post("/{item_id}/decision", response_model=dto.ItemDetailResponse)
async def decide(
    item_id: str,
    payload: dto.DecisionRequestBody,
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.ItemDetailResponse:
    new_status = parse_status(payload.status)
    try:
        item = await service.decide(
            context,
            item_id,
            new_status,
            expected_version=payload.expected_version,
            rationale=payload.rationale,
        )
    except ModerationError as exc:
        raise _failed("items.decision", exc) from exc
    _ok("items.decision")
    return dto.ItemDetailResponse.from_domain(item)


@router.post("/{item_id}/reopen", response_model=dto.ItemDetailResponse)
async def reopen(
    item_id: str,
    payload: dto.ReopenRequestBody,
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.ItemDetailResponse:
    try:
        item = await service.reopen(
            context,
            item_id,
            expected_version=payload.expected_version,
            rationale=payload.rationale,
        )
    except ModerationError as exc:
        raise _failed("items.reopen", exc) from exc
    _ok("items.reopen")
    return dto.ItemDetailResponse.from_domain(item)


@router.get("/{item_id}/audit", response_model=dto.AuditTrailResponse)
async def get_audit_trail(
    item_id: str,
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.AuditTrailResponse:
    try:
        records = await service.get_audit_trail(context, item_id)
    except ModerationError as exc:
        raise _failed("items.audit", exc) from exc
    _ok("items.audit")
    return dto.AuditTrailResponse(
        item_id=item_id,
        items=[dto.DecisionRecordResponse.from_domain(record) for record in records],
    )


@router.post("/{item_id}/spam/reevaluate", response_model=dto.ItemDetailResponse)
async def reevaluate_spam(
    item_id: str,
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.ItemDetailResponse:
    try:
        item = await service.reevaluate(context, item_id)
    except ModerationError as exc:
        raise _failed("items.spam_reevaluate", exc) from exc
    _ok("items.spam_reevaluate")
    return dto.ItemDetailResponse.from_domain(item)


@router.get("/{item_id}/reports", response_model=dto.ReportListResponse)
async def list_reports(
    item_id: str,
    view: str = Query(default="active", pattern="^(active|resolved|all)$"),
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.ReportListResponse:
    try:
        reports = await service.list_reports(context, item_id, view=view)
    except (ModerationError, ValueError) as exc:
        raise _failed("items.reports", exc) from exc
    _ok("items.reports")
    return dto.ReportListResponse(
        item_id=item_id,
        items=[dto.ReportRecordResponse.from_domain(report) for report in reports],
    )


@router.post("/{item_id}/reports/{report_id}/resolve", response_model=dto.ReportRecordResponse)
async def resolve_report(
    item_id: str,
    report_id: str,
    payload: dto.ReportReviewBody,
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.ReportRecordResponse:
    try:
        report = await service.resolve_report(context, item_id, report_id, admin_notes=payload.admin_notes)
    except ModerationError as exc:
        raise _failed("items.report_resolve", exc) from exc
    _ok("items.report_resolve")
    return dto.ReportRecordResponse.from_domain(report)


@router.post("/{item_id}/reports/{report_id}/dismiss", response_model=dto.ReportRecordResponse)
async def dismiss_report(
    item_id: str,
    report_id: str,
    payload: dto.ReportReviewBody,
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.ReportRecordResponse:
    try:
        report = await service.dismiss_report(context, item_id, report_id, admin_notes=payload.admin_notes)
    except ModerationError as exc:
        raise _failed("items.report_dismiss", exc) from exc
    _ok("items.report_dismiss")
    return dto.ReportRecordResponse.from_domain(report)


@router.post("/{item_id}/reports/{report_id}/close", response_model=dto.ReportRecordResponse)
async def close_report(
    item_id: str,
    report_id: str,
    payload: dto.ReportReviewBody,
    context: ReviewerContext = Depends(_get_context),
    service: AdminReviewService = Depends(get_review_service),
) -> dto.ReportRecordResponse:
    try:
        report = await service.close_report(context, item_id, report_id, admin_notes=payload.admin_notes)
    except ModerationError as exc:
        raise _failed("items.report_close", exc) from exc
    _ok("items.report_close")
    return dto.ReportRecordResponse.from_domain(report)
