from __future__ import annotations

import pytest

from app.infra.auth import AuthenticatedUser
from app.moderation.domain.detectors.banned_words import BannedWord
from app.moderation.domain.exceptions import BannedWordNotFoundError, UnauthorizedReviewerError
from app.moderation.domain.models import DecisionRequest, QueueFilter, ReportStatus
from app.moderation.domain.queue import ModerationQueue
from app.moderation.domain.rbac import ReviewerContext
from app.moderation.domain.repository import InMemoryModerationRepository
from app.moderation.domain.review_service import MAX_BULK_DECISIONS, AdminReviewService
from app.moderation.domain.status import ModerationStatus
from app.moderation.domain.workflow import ModerationWorkflow

ADMIN = ReviewerContext.of("admin-1", ["admin"])
STAFF_ADMIN = ReviewerContext.of("admin-2", ["staff.admin"])
MODERATOR = ReviewerContext.of("mod-1", ["staff.moderator"])
MEMBER = ReviewerContext.of("member-1", [])


def _service() -> AdminReviewService:
    repository = InMemoryModerationRepository()
    return AdminReviewService(workflow=ModerationWorkflow(repository=repository), queue=ModerationQueue(repository))


@pytest.mark.asyncio
async def test_reads_require_staff_role() -> None:
    service = _service()
    await service.workflow.submit(item_id="p1", author_id="a", content_type="post", body="hello")

    page = await service.list_queue(MODERATOR, QueueFilter())
    assert [item.item_id for item in page.items] == ["p1"]
    assert (await service.get_item(MODERATOR, "p1")).status is ModerationStatus.PENDING
    assert await service.get_audit_trail(MODERATOR, "p1") == []

    for reviewer in (MEMBER, None):
        with pytest.raises(UnauthorizedReviewerError) as excinfo:
            await service.list_queue(reviewer, QueueFilter())
        assert excinfo.value.detail == "staff_required"
        assert excinfo.value.status_code == 403


@pytest.mark.asyncio
async def test_mutations_require_admin_role() -> None:
    service = _service()
    await service.workflow.submit(item_id="p1", author_id="a", content_type="post", body="hello")

    for reviewer in (MODERATOR, MEMBER, None, ReviewerContext.of("", ["admin"])):
        with pytest.raises(UnauthorizedReviewerError) as excinfo:
            await service.decide(reviewer, "p1", "approved", expected_version=0)
        assert excinfo.value.detail == "admin_required"
    with pytest.raises(UnauthorizedReviewerError):
        await service.reopen(MODERATOR, "p1", expected_version=0)
    with pytest.raises(UnauthorizedReviewerError):
        await service.decide_many(MODERATOR, [])
    with pytest.raises(UnauthorizedReviewerError):
        await service.reevaluate(MODERATOR, "p1")

    item = await service.get_item(MODERATOR, "p1")
    assert item.version == 0 and item.history == ()


@pytest.mark.asyncio
async def test_decisions_are_attributed_to_the_caller() -> None:
    service = _service()
    await service.workflow.submit(item_id="p1", author_id="a", content_type="post", body="hello")
    await service.workflow.submit(item_id="p2", author_id="a", content_type="topic", body="hi", title="Welcome")

    await service.decide(ADMIN, "p1", ModerationStatus.REJECTED, expected_version=0, rationale="off-topic")
    await service.reopen(STAFF_ADMIN, "p1", expected_version=1)
    outcomes = await service.decide_many(
        STAFF_ADMIN,
        [DecisionRequest(item_id="p2", status=ModerationStatus.APPROVED, expected_version=0)],
    )
    assert outcomes[0].ok

    trail = await service.get_audit_trail(MODERATOR, "p1")
    assert [(record.reviewer_id, record.action) for record in trail] == [("admin-1", "decide"), ("admin-2", "reopen")]
    assert trail[0].rationale == "off-topic"
    assert (await service.get_audit_trail(ADMIN, "p2"))[0].reviewer_id == "admin-2"


@pytest.mark.asyncio
async def test_bulk_size_is_capped() -> None:
    service = _service()
    requests = [DecisionRequest(item_id=f"i{idx}", status=ModerationStatus.APPROVED, expected_version=0) for idx in range(MAX_BULK_DECISIONS + 1)]
    with pytest.raises(ValueError, match="too_many_decisions"):
        await service.decide_many(ADMIN, requests)


@pytest.mark.asyncio
async def test_member_flags_do_not_need_a_role() -> None:
    service = _service()
    await service.workflow.submit(item_id="p1", author_id="a", content_type="post", body="hello")
    receipt = await service.flag("p1", reporter_id="member-1", reason="spam")
    assert receipt.item.report_count == 1
    assert receipt.report.reporter_id == "member-1"


@pytest.mark.asyncio
async def test_report_views_and_review_roles() -> None:
    service = _service()
    await service.workflow.submit(item_id="p1", author_id="a", content_type="post", body="hello")
    first = (await service.flag("p1", reporter_id="m1", reason="spam")).report
    second = (await service.flag("p1", reporter_id="m2", reason="hate", note="slur in title")).report
    third = (await service.flag("p1", reporter_id="m3", reason="off_topic")).report

    with pytest.raises(UnauthorizedReviewerError):
        await service.list_reports(MEMBER, "p1")
    for action in (service.resolve_report, service.dismiss_report, service.close_report):
        with pytest.raises(UnauthorizedReviewerError):
            await action(MODERATOR, "p1", first.report_id)

    resolved = await service.resolve_report(ADMIN, "p1", first.report_id, admin_notes="post removed")
    assert resolved.reviewer_id == "admin-1"
    dismissed = await service.dismiss_report(STAFF_ADMIN, "p1", second.report_id)
    assert dismissed.status is ReportStatus.DISMISSED
    closed = await service.close_report(ADMIN, "p1", resolved.report_id)
    assert closed.status is ReportStatus.CLOSED

    active = await service.list_reports(MODERATOR, "p1", view="active")
    assert [report.report_id for report in active] == [third.report_id]
    reviewed = await service.list_reports(MODERATOR, "p1", view="resolved")
    assert {report.report_id for report in reviewed} == {first.report_id, second.report_id}
    assert len(await service.list_reports(MODERATOR, "p1")) == 3
    with pytest.raises(ValueError, match="invalid_report_view"):
        await service.list_reports(MODERATOR, "p1", view="archived")


@pytest.mark.asyncio
async def test_lexicon_management() -> None:
    service = _service()
    await service.workflow.submit(item_id="p1", author_id="a", content_type="post", body="selling homework answers")
    baseline = await service.list_banned_words(MODERATOR)
    assert "viagra" in {entry.pattern for entry in baseline}

    with pytest.raises(UnauthorizedReviewerError):
        await service.save_banned_word(MODERATOR, BannedWord("homework", severity="ban"))
    with pytest.raises(ValueError, match="invalid_banned_word"):
        await service.save_banned_word(ADMIN, BannedWord("(", match_type="regex"))
    with pytest.raises(ValueError, match="invalid_banned_word"):
        await service.save_banned_word(ADMIN, BannedWord("homework", severity="critical"))

    await service.save_banned_word(ADMIN, BannedWord("homework", severity="ban", category="spam"))
    rescored = await service.reevaluate(ADMIN, "p1")
    assert rescored.spam is not None and "banned_word:ban" in rescored.spam.signals
    assert rescored.spam.evaluator_version.startswith("heuristic-v1+lex.")

    await service.delete_banned_word(ADMIN, "homework")
    assert service.workflow.evaluator.version == "heuristic-v1"
    with pytest.raises(BannedWordNotFoundError) as excinfo:
        await service.delete_banned_word(ADMIN, "homework")
    assert excinfo.value.status_code == 404

def test_reviewer_context_from_user() -> None:
    moderator = ReviewerContext.from_user(AuthenticatedUser(id="u1", roles=("staff.moderator",)))
    assert moderator.is_staff and not moderator.is_admin
    assert ReviewerContext.from_user(AuthenticatedUser(id="u2", roles=("admin",))).is_admin
    member = ReviewerContext.from_user(AuthenticatedUser(id="u3", roles=("member",)))
    assert not member.is_staff
