from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import pytest

from app.moderation.domain.detectors.banned_words import BASELINE_LEXICON
from app.moderation.domain.exceptions import (
    ConcurrentDecisionConflict,
    InvalidReportTransitionError,
    ItemNotFoundError,
    ReportNotFoundError,
)
from app.moderation.domain.models import DecisionRecord, Report, ReportStatus, SpamVerdict
from app.moderation.domain.pagination import QueueCursor
from app.moderation.domain.status import ModerationStatus
from app.moderation.infra.postgres_repo import PostgresLexiconStore, PostgresModerationRepository

BASE = datetime(2024, 2, 1, 8, 0, tzinfo=timezone.utc)


class DummyTransaction:
    async def __aenter__(self) -> "DummyTransaction":
        return self

    async def __aexit__(self, _exc_type, _exc, _tb) -> bool:
        return False


class DummyAcquire:
    def __init__(self, conn: "DummyConnection") -> None:
        self._conn = conn

    async def __aenter__(self) -> "DummyConnection":
        return self._conn

    async def __aexit__(self, _exc_type, _exc, _tb) -> bool:
        return False


class DummyConnection:
    """Records every call; returns queued results in order."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, tuple[Any, ...]]] = []
        self.fetch_results: list[list[dict[str, Any]]] = []
        self.fetchrow_results: list[dict[str, Any] | None] = []
        self.fetchval_results: list[Any] = []

    async def fetch(self, query: str, *params: Any) -> list[dict[str, Any]]:
        self.calls.append(("fetch", query, params))
        return self.fetch_results.pop(0) if self.fetch_results else []

    async def fetchrow(self, query: str, *params: Any) -> dict[str, Any] | None:
        self.calls.append(("fetchrow", query, params))
        return self.fetchrow_results.pop(0) if self.fetchrow_results else None

    async def fetchval(self, query: str, *params: Any) -> Any:
        self.calls.append(("fetchval", query, params))
        return self.fetchval_results.pop(0) if self.fetchval_results else None

    async def execute(self, query: str, *params: Any) -> str:
        self.calls.append(("execute", query, params))
        return "OK"

    async def executemany(self, query: str, args: list[tuple[Any, ...]]) -> None:
        self.calls.append(("executemany", query, tuple(args)))

    def transaction(self) -> DummyTransaction:
        return DummyTransaction()

    def methods(self) -> list[str]:
        return [method for method, _, _ in self.calls]


class DummyPool:
    def __init__(self, conn: DummyConnection) -> None:
        self._conn = conn

    def acquire(self) -> DummyAcquire:
        return DummyAcquire(self._conn)

    async def fetch(self, query: str, *params: Any):
        return await self._conn.fetch(query, *params)

    async def fetchrow(self, query: str, *params: Any):
        return await self._conn.fetchrow(query, *params)

    async def fetchval(self, query: str, *params: Any):
        return await self._conn.fetchval(query, *params)

    async def execute(self, query: str, *params: Any):
        return await self._conn.execute(query, *params)


def _sql(query: str) -> str:
    return " ".join(query.split())


def _item_row(item_id: str, **overrides: Any) -> dict[str, Any]:
    row = {
        "id": item_id,
        "author_id": "author-1",
        "content_type": "post",
        "title": None,
        "body": "hello",
        "created_at": BASE,
        "is_anonymous": False,
        "ip_address": None,
        "topic_id": None,
        "category_slug": None,
        "moderation_status": "pending",
        "moderation_version": 0,
        "spam_verdict": None,
        "report_count": 0,
        "intake_signals": "{}",
    }
    row.update(overrides)
    return row


def _repo() -> tuple[PostgresModerationRepository, DummyConnection]:
    conn = DummyConnection()
    return PostgresModerationRepository(DummyPool(conn)), conn


def _decision(**overrides: Any) -> DecisionRecord:
    values: dict[str, Any] = {
        "record_id": "d1",
        "item_id": "p1",
        "reviewer_id": "admin-1",
        "prior_status": ModerationStatus.PENDING,
        "new_status": ModerationStatus.APPROVED,
        "created_at": BASE,
    }
    values.update(overrides)
    return DecisionRecord(**values)


@pytest.mark.asyncio
async def test_list_queue_numbers_parameters_with_every_filter() -> None:
    repo, conn = _repo()
    conn.fetch_results.append([_item_row("p10", spam_verdict=json.dumps({"score": 0.3}))])
    cursor = QueueCursor(spam_score=0.4, created_at=BASE, item_id="p9", status=ModerationStatus.PENDING)

    items = await repo.list_queue(
        status=ModerationStatus.PENDING,
        min_spam_score=0.2,
        content_type="topic",
        after=cursor,
        limit=26,
    )

    ((method, query, params),) = conn.calls
    assert method == "fetch"
    assert params == ("pending", 0.2, "topic", 0.4, BASE, "p9", 26)
    sql = _sql(query)
    assert "WHERE moderation_status = $1 AND COALESCE(spam_score, 0) >= $2 AND content_type = $3 AND" in sql
    assert (
        "(COALESCE(spam_score, 0) < $4"
        " OR (COALESCE(spam_score, 0) = $4 AND created_at > $5)"
        " OR (COALESCE(spam_score, 0) = $4 AND created_at = $5 AND id > $6))"
    ) in sql
    assert "ORDER BY COALESCE(spam_score, 0) DESC, created_at ASC, id ASC" in sql
    assert sql.endswith("LIMIT $7")
    assert [item.item_id for item in items] == ["p10"]
    assert items[0].spam_score == 0.3


@pytest.mark.asyncio
async def test_list_queue_without_filters_binds_status_and_limit_only() -> None:
    repo, conn = _repo()
    await repo.list_queue(
        status=ModerationStatus.REJECTED,
        min_spam_score=None,
        content_type=None,
        after=None,
        limit=10,
    )
    ((_, query, params),) = conn.calls
    assert params == ("rejected", 10)
    sql = _sql(query)
    assert "WHERE moderation_status = $1 ORDER BY" in sql
    assert sql.endswith("LIMIT $2")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("exists", "error"),
    [(None, ItemNotFoundError), (1, ConcurrentDecisionConflict)],
)
async def test_apply_decision_miss_is_classified(exists: Any, error: type[Exception]) -> None:
    repo, conn = _repo()
    conn.fetchrow_results.append(None)
    conn.fetchval_results.append(exists)

    with pytest.raises(error):
        await repo.apply_decision("p1", 3, _decision())

    _, update, params = conn.calls[0]
    assert "WHERE id = $1 AND moderation_version = $2" in _sql(update)
    assert params == ("p1", 3, "approved")
    assert conn.methods() == ["fetchrow", "fetchval"]


@pytest.mark.asyncio
async def test_apply_decision_writes_audit_row_in_same_transaction() -> None:
    repo, conn = _repo()
    conn.fetchrow_results.append(_item_row("p1", moderation_status="approved", moderation_version=1))
    conn.fetch_results.append(
        [
            {
                "id": "d1",
                "item_id": "p1",
                "reviewer_id": "admin-1",
                "prior_status": "pending",
                "new_status": "approved",
                "action": "decide",
                "rationale": "fine",
                "created_at": BASE,
            }
        ]
    )

    item = await repo.apply_decision("p1", 0, _decision(rationale="fine"))

    assert conn.methods() == ["fetchrow", "execute", "fetch"]
    _, insert, params = conn.calls[1]
    assert "INSERT INTO mod_decision" in insert
    assert params == ("d1", "p1", "admin-1", "pending", "approved", "decide", "fine", BASE)
    assert item.status is ModerationStatus.APPROVED
    assert item.version == 1
    assert [record.record_id for record in item.history] == ["d1"]


@pytest.mark.asyncio
async def test_save_verdict_is_conditional_on_report_count() -> None:
    repo, conn = _repo()
    verdict = SpamVerdict(score=0.15, signals=("reported:1",), evaluator_version="heuristic-v1")
    conn.fetchrow_results.append(None)
    conn.fetchval_results.append(1)

    assert await repo.save_verdict("p1", verdict, expected_report_count=1) is None

    _, update, params = conn.calls[0]
    assert "WHERE id = $1 AND report_count = $4" in _sql(update)
    assert params[0] == "p1" and params[1] == 0.15 and params[3] == 1
    assert json.loads(params[2])["signals"] == ["reported:1"]

    conn.fetchrow_results.append(None)
    with pytest.raises(ItemNotFoundError):
        await repo.save_verdict("ghost", verdict, expected_report_count=0)

    conn.fetchrow_results.append(_item_row("p1", spam_verdict=params[2], report_count=1))
    saved = await repo.save_verdict("p1", verdict)
    assert saved is not None and saved.spam == verdict
    _, update, params = conn.calls[-1]
    assert "report_count" not in _sql(update).split("WHERE", 1)[1].split("RETURNING", 1)[0]
    assert len(params) == 3


@pytest.mark.asyncio
async def test_add_report_bumps_counter_and_inserts_record() -> None:
    repo, conn = _repo()
    report = Report(
        report_id="r1",
        item_id="p1",
        reporter_id="member-1",
        reason="spam",
        created_at=BASE,
        note="link farm",
        reporter_ip="198.51.100.7",
    )
    conn.fetchrow_results.append(_item_row("p1", report_count=4))

    item = await repo.add_report(report)

    assert item.report_count == 4
    assert conn.methods() == ["fetchrow", "execute"]
    _, insert, params = conn.calls[1]
    assert "INSERT INTO mod_report" in insert
    assert params == ("r1", "p1", "member-1", "198.51.100.7", "spam", "link farm", "pending", BASE)

    repo, conn = _repo()
    with pytest.raises(ItemNotFoundError):
        await repo.add_report(report)
    assert conn.methods() == ["fetchrow"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("current", "error"),
    [(None, ReportNotFoundError), ("closed", InvalidReportTransitionError)],
)
async def test_review_report_miss_is_classified(current: Any, error: type[Exception]) -> None:
    repo, conn = _repo()
    conn.fetchrow_results.append(None)
    conn.fetchval_results.append(current)

    with pytest.raises(error):
        await repo.review_report(
            "p1",
            "r1",
            from_statuses={ReportStatus.PENDING, ReportStatus.RESOLVED, ReportStatus.DISMISSED},
            new_status=ReportStatus.CLOSED,
            reviewer_id="admin-1",
            reviewed_at=BASE,
        )

    _, update, params = conn.calls[0]
    assert "WHERE id = $1 AND item_id = $2 AND status = ANY($7::text[])" in _sql(update)
    assert params == ("r1", "p1", "closed", BASE, "admin-1", None, ["dismissed", "pending", "resolved"])


@pytest.mark.asyncio
async def test_list_reports_filters_by_status() -> None:
    repo, conn = _repo()
    conn.fetchval_results.append(1)
    conn.fetch_results.append(
        [
            {
                "id": "r2",
                "item_id": "p1",
                "reporter_id": None,
                "reporter_ip": None,
                "reason": "other",
                "note": None,
                "status": "pending",
                "reviewer_id": None,
                "reviewed_at": None,
                "admin_notes": None,
                "created_at": BASE,
            }
        ]
    )

    reports = await repo.list_reports("p1", statuses={ReportStatus.PENDING})

    _, query, params = conn.calls[1]
    assert "WHERE item_id = $1 AND status = ANY($2::text[])" in _sql(query)
    assert params == ("p1", ["pending"])
    assert [(report.report_id, report.status) for report in reports] == [("r2", ReportStatus.PENDING)]


@pytest.mark.asyncio
async def test_lexicon_seed_only_fills_an_empty_table() -> None:
    conn = DummyConnection()
    store = PostgresLexiconStore(DummyPool(conn))

    conn.fetchval_results.append(0)
    await store.ensure_seeded()
    assert conn.methods() == ["fetchval", "executemany"]
    _, _, rows = conn.calls[1]
    assert len(rows) == len(BASELINE_LEXICON)
    assert rows[0] == ("viagra", "ban", "exact", "general", True)

    conn.calls.clear()
    conn.fetchval_results.append(3)
    await store.ensure_seeded()
    assert conn.methods() == ["fetchval"]
