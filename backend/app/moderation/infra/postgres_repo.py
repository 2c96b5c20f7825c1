"""PostgreSQL-backed repository for moderation state over the forum content store."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Collection, Iterable, Mapping, Optional

import asyncpg

from app.moderation.domain.detectors.banned_words import BASELINE_LEXICON, BannedWord
from app.moderation.domain.exceptions import (
    ConcurrentDecisionConflict,
    InvalidReportTransitionError,
    ItemNotFoundError,
    ReportNotFoundError,
)
from app.moderation.domain.lexicon import LexiconStore
from app.moderation.domain.models import ContentItem, DecisionRecord, Report, ReportStatus, SpamVerdict
from app.moderation.domain.pagination import QueueCursor
from app.moderation.domain.repository import ModerationRepository
from app.moderation.domain.status import ModerationStatus, classify

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS forum_content (
    id TEXT PRIMARY KEY,
    author_id TEXT,
    content_type TEXT NOT NULL CHECK (content_type IN ('topic', 'post')),
    title TEXT,
    body TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    is_anonymous BOOLEAN NOT NULL DEFAULT FALSE,
    ip_address TEXT,
    topic_id TEXT,
    category_slug TEXT,
    moderation_status TEXT NOT NULL DEFAULT 'pending',
    moderation_version INTEGER NOT NULL DEFAULT 0,
    spam_score DOUBLE PRECISION,
    spam_verdict JSONB,
    report_count INTEGER NOT NULL DEFAULT 0,
    intake_signals JSONB NOT NULL DEFAULT '{}'::jsonb
);

CREATE INDEX IF NOT EXISTS forum_content_queue_idx
    ON forum_content (moderation_status, (COALESCE(spam_score, 0)) DESC, created_at ASC, id ASC);

CREATE TABLE IF NOT EXISTS mod_decision (
    id TEXT PRIMARY KEY,
    item_id TEXT NOT NULL REFERENCES forum_content(id),
    reviewer_id TEXT NOT NULL,
    prior_status TEXT NOT NULL,
    new_status TEXT NOT NULL,
    action TEXT NOT NULL,
    rationale TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS mod_decision_item_idx ON mod_decision (item_id, created_at ASC);

CREATE TABLE IF NOT EXISTS mod_report (
    id TEXT PRIMARY KEY,
    item_id TEXT NOT NULL REFERENCES forum_content(id),
    reporter_id TEXT,
    reporter_ip TEXT,
    reason TEXT NOT NULL,
    note TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    reviewer_id TEXT,
    reviewed_at TIMESTAMPTZ,
    admin_notes TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS mod_report_item_idx ON mod_report (item_id, status, created_at ASC);

CREATE TABLE IF NOT EXISTS mod_banned_word (
    pattern TEXT PRIMARY KEY,
    severity TEXT NOT NULL,
    match_type TEXT NOT NULL DEFAULT 'exact',
    category TEXT NOT NULL DEFAULT 'general',
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

_ITEM_COLUMNS = """
    id, author_id, content_type, title, body, created_at, is_anonymous, ip_address, topic_id,
    category_slug, moderation_status, moderation_version, spam_verdict, report_count, intake_signals
"""

_REPORT_COLUMNS = (
    "id, item_id, reporter_id, reporter_ip, reason, note, status, reviewer_id, reviewed_at, admin_notes, created_at"
)

_SCORE_EXPR = "COALESCE(spam_score, 0)"


class PostgresModerationRepository(ModerationRepository):
    """Persists moderation mutations using asyncpg.

    Payload columns of ``forum_content`` are written only at intake; after that
    this repository touches status, version, verdict, reports and the report counter.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def ensure_schema(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    async def insert_item(self, item: ContentItem) -> ContentItem:
        query = f"""
        INSERT INTO forum_content (
            id, author_id, content_type, title, body, created_at, is_anonymous, ip_address, topic_id,
            category_slug, moderation_status, moderation_version, spam_score, spam_verdict, report_count,
            intake_signals
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14::jsonb, $15, $16::jsonb)
        ON CONFLICT (id) DO NOTHING
        RETURNING {_ITEM_COLUMNS}
        """
        record = await self.pool.fetchrow(
            query,
            item.item_id,
            item.author_id,
            item.content_type,
            item.title,
            item.body,
            item.created_at,
            item.is_anonymous,
            item.ip_address,
            item.topic_id,
            item.category_slug,
            item.status.value,
            item.version,
            item.spam.score if item.spam else None,
            _dump_verdict(item.spam),
            item.report_count,
            json.dumps(dict(item.signals)),
        )
        if record is None:
            raise ValueError(f"duplicate_item:{item.item_id}")
        return _item_from_record(record)

    async def get_item(self, item_id: str) -> ContentItem | None:
        async with self.pool.acquire() as conn:
            record = await conn.fetchrow(f"SELECT {_ITEM_COLUMNS} FROM forum_content WHERE id = $1", item_id)
            if record is None:
                return None
            history = await _fetch_decisions(conn, item_id)
        return _item_from_record(record, history=history)

    async def list_queue(
        self,
        *,
        status: ModerationStatus,
        min_spam_score: Optional[float],
        content_type: Optional[str],
        after: Optional[QueueCursor],
        limit: int,
    ) -> list[ContentItem]:
        params: list[Any] = [status.value]
        clauses = ["moderation_status = $1"]
        if min_spam_score is not None:
            params.append(min_spam_score)
            clauses.append(f"{_SCORE_EXPR} >= ${len(params)}")
        if content_type:
            params.append(content_type)
            clauses.append(f"content_type = ${len(params)}")
        if after is not None:
            params.extend([after.spam_score, after.created_at, after.item_id])
            score_idx, created_idx, id_idx = len(params) - 2, len(params) - 1, len(params)
            clauses.append(
                f"({_SCORE_EXPR} < ${score_idx}"
                f" OR ({_SCORE_EXPR} = ${score_idx} AND created_at > ${created_idx})"
                f" OR ({_SCORE_EXPR} = ${score_idx} AND created_at = ${created_idx} AND id > ${id_idx}))"
            )
        params.append(limit)
        query = "\n".join(
            [
                f"SELECT {_ITEM_COLUMNS}",
                "FROM forum_content",
                f"WHERE {' AND '.join(clauses)}",
                f"ORDER BY {_SCORE_EXPR} DESC, created_at ASC, id ASC",
                f"LIMIT ${len(params)}",
            ]
        )
        records = await self.pool.fetch(query, *params)
        return [_item_from_record(record) for record in records]

    async def apply_decision(self, item_id: str, expected_version: int, record: DecisionRecord) -> ContentItem:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"""
                    UPDATE forum_content
                    SET moderation_status = $3,
                        moderation_version = moderation_version + 1
                    WHERE id = $1 AND moderation_version = $2
                    RETURNING {_ITEM_COLUMNS}
                    """,
                    item_id,
                    expected_version,
                    record.new_status.value,
                )
                if row is None:
                    exists = await conn.fetchval("SELECT 1 FROM forum_content WHERE id = $1", item_id)
                    if exists is None:
                        raise ItemNotFoundError(item_id)
                    raise ConcurrentDecisionConflict(item_id, expected_version)
                await conn.execute(
                    """
                    INSERT INTO mod_decision(id, item_id, reviewer_id, prior_status, new_status, action, rationale, created_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    """,
                    record.record_id,
                    item_id,
                    record.reviewer_id,
                    record.prior_status.value,
                    record.new_status.value,
                    record.action,
                    record.rationale,
                    record.created_at,
                )
                history = await _fetch_decisions(conn, item_id)
        return _item_from_record(row, history=history)

    async def save_verdict(
        self,
        item_id: str,
        verdict: SpamVerdict,
        *,
        expected_report_count: Optional[int] = None,
    ) -> ContentItem | None:
        params: list[Any] = [item_id, verdict.score, _dump_verdict(verdict)]
        guard = ""
        if expected_report_count is not None:
            params.append(expected_report_count)
            guard = " AND report_count = $4"
        query = f"""
        UPDATE forum_content
        SET spam_score = $2, spam_verdict = $3::jsonb
        WHERE id = $1{guard}
        RETURNING {_ITEM_COLUMNS}
        """
        async with self.pool.acquire() as conn:
            record = await conn.fetchrow(query, *params)
            if record is None:
                exists = await conn.fetchval("SELECT 1 FROM forum_content WHERE id = $1", item_id)
                if exists is None:
                    raise ItemNotFoundError(item_id)
                return None
        return _item_from_record(record)

    async def add_report(self, report: Report) -> ContentItem:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                record = await conn.fetchrow(
                    f"""
                    UPDATE forum_content
                    SET report_count = report_count + 1
                    WHERE id = $1
                    RETURNING {_ITEM_COLUMNS}
                    """,
                    report.item_id,
                )
                if record is None:
                    raise ItemNotFoundError(report.item_id)
                await conn.execute(
                    """
                    INSERT INTO mod_report(id, item_id, reporter_id, reporter_ip, reason, note, status, created_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    """,
                    report.report_id,
                    report.item_id,
                    report.reporter_id,
                    report.reporter_ip,
                    report.reason,
                    report.note,
                    report.status.value,
                    report.created_at,
                )
        return _item_from_record(record)

    async def list_reports(
        self,
        item_id: str,
        *,
        statuses: Optional[Collection[ReportStatus]] = None,
    ) -> list[Report]:
        params: list[Any] = [item_id]
        status_clause = ""
        if statuses is not None:
            params.append(sorted(status.value for status in statuses))
            status_clause = " AND status = ANY($2::text[])"
        async with self.pool.acquire() as conn:
            exists = await conn.fetchval("SELECT 1 FROM forum_content WHERE id = $1", item_id)
            if exists is None:
                raise ItemNotFoundError(item_id)
            records = await conn.fetch(
                f"SELECT {_REPORT_COLUMNS} FROM mod_report"
                f" WHERE item_id = $1{status_clause} ORDER BY created_at ASC, id ASC",
                *params,
            )
        return [_report_from_record(record) for record in records]

    async def review_report(
        self,
        item_id: str,
        report_id: str,
        *,
        from_statuses: Collection[ReportStatus],
        new_status: ReportStatus,
        reviewer_id: str,
        reviewed_at: datetime,
        admin_notes: Optional[str] = None,
    ) -> Report:
        async with self.pool.acquire() as conn:
            record = await conn.fetchrow(
                f"""
                UPDATE mod_report
                SET status = $3, reviewed_at = $4, reviewer_id = $5, admin_notes = COALESCE($6, admin_notes)
                WHERE id = $1 AND item_id = $2 AND status = ANY($7::text[])
                RETURNING {_REPORT_COLUMNS}
                """,
                report_id,
                item_id,
                new_status.value,
                reviewed_at,
                reviewer_id,
                admin_notes,
                sorted(status.value for status in from_statuses),
            )
            if record is None:
                current = await conn.fetchval(
                    "SELECT status FROM mod_report WHERE id = $1 AND item_id = $2",
                    report_id,
                    item_id,
                )
                if current is None:
                    raise ReportNotFoundError(report_id)
                raise InvalidReportTransitionError(report_id, str(current), new_status.value)
        return _report_from_record(record)

    async def list_decisions(self, item_id: str) -> list[DecisionRecord]:
        async with self.pool.acquire() as conn:
            exists = await conn.fetchval("SELECT 1 FROM forum_content WHERE id = $1", item_id)
            if exists is None:
                raise ItemNotFoundError(item_id)
            return list(await _fetch_decisions(conn, item_id))


class PostgresLexiconStore(LexiconStore):
    """Banned word entries in ``mod_banned_word``, keyed by pattern."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def ensure_seeded(self, entries: Iterable[BannedWord] = BASELINE_LEXICON) -> None:
        """Load ``entries`` into an empty table; an edited lexicon is left alone."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                count = await conn.fetchval("SELECT count(*) FROM mod_banned_word")
                if count:
                    return
                await conn.executemany(_UPSERT_BANNED_WORD_SQL, [_banned_word_args(entry) for entry in entries])

    async def list_entries(self) -> list[BannedWord]:
        records = await self.pool.fetch(
            "SELECT pattern, severity, match_type, category, is_active FROM mod_banned_word ORDER BY pattern ASC"
        )
        return [
            BannedWord(
                pattern=str(record["pattern"]),
                severity=str(record["severity"]),
                match_type=str(record["match_type"]),
                category=str(record["category"]),
                is_active=bool(record["is_active"]),
            )
            for record in records
        ]

    async def upsert_entry(self, entry: BannedWord) -> BannedWord:
        await self.pool.execute(_UPSERT_BANNED_WORD_SQL, *_banned_word_args(entry))
        return entry

    async def delete_entry(self, pattern: str) -> bool:
        deleted = await self.pool.fetchval("DELETE FROM mod_banned_word WHERE pattern = $1 RETURNING pattern", pattern)
        return deleted is not None


_UPSERT_BANNED_WORD_SQL = """
INSERT INTO mod_banned_word(pattern, severity, match_type, category, is_active, updated_at)
VALUES ($1, $2, $3, $4, $5, now())
ON CONFLICT (pattern) DO UPDATE
SET severity = EXCLUDED.severity,
    match_type = EXCLUDED.match_type,
    category = EXCLUDED.category,
    is_active = EXCLUDED.is_active,
    updated_at = now()
"""


def _banned_word_args(entry: BannedWord) -> tuple[Any, ...]:
    return (entry.pattern, entry.severity, entry.match_type, entry.category, entry.is_active)


async def _fetch_decisions(conn: asyncpg.Connection, item_id: str) -> tuple[DecisionRecord, ...]:
    records = await conn.fetch(
        """
        SELECT id, item_id, reviewer_id, prior_status, new_status, action, rationale, created_at
        FROM mod_decision
        WHERE item_id = $1
        ORDER BY created_at ASC, id ASC
        """,
        item_id,
    )
    return tuple(_decision_from_record(record) for record in records)


def _status_from_db(raw: object, item_id: str) -> ModerationStatus:
    status = classify(raw)
    if not status:
        logger.warning("unrecognized moderation status in store", extra={"item_id": item_id, "raw_status": raw})
        return ModerationStatus.PENDING
    return status


def _load_json(value: object) -> Mapping[str, Any]:
    if value is None:
        return {}
    if isinstance(value, str):
        try:
            loaded = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return loaded if isinstance(loaded, dict) else {}
    return dict(value)  # type: ignore[arg-type]


def _dump_verdict(verdict: SpamVerdict | None) -> str | None:
    if verdict is None:
        return None
    return json.dumps(verdict.to_dict())


def _verdict_from_json(value: object) -> SpamVerdict | None:
    payload = _load_json(value)
    if not payload:
        return None
    evaluated_at = payload.get("evaluated_at")
    return SpamVerdict(
        score=float(payload.get("score") or 0.0),
        signals=tuple(str(tag) for tag in payload.get("signals") or ()),
        evaluator_version=str(payload.get("evaluator_version") or ""),
        recommendation=str(payload.get("recommendation") or "clean"),
        evaluated_at=datetime.fromisoformat(evaluated_at) if evaluated_at else None,
    )


def _item_from_record(record: asyncpg.Record, *, history: tuple[DecisionRecord, ...] = ()) -> ContentItem:
    item_id = str(record["id"])
    return ContentItem(
        item_id=item_id,
        author_id=str(record["author_id"]) if record["author_id"] is not None else None,
        content_type=str(record["content_type"]),
        title=record["title"],
        body=record["body"],
        created_at=record["created_at"],
        status=_status_from_db(record["moderation_status"], item_id),
        version=int(record["moderation_version"]),
        spam=_verdict_from_json(record["spam_verdict"]),
        report_count=int(record["report_count"] or 0),
        is_anonymous=bool(record["is_anonymous"]),
        ip_address=record["ip_address"],
        topic_id=str(record["topic_id"]) if record["topic_id"] is not None else None,
        category_slug=record["category_slug"],
        signals=_load_json(record["intake_signals"]),
        history=history,
    )


def _decision_from_record(record: asyncpg.Record) -> DecisionRecord:
    item_id = str(record["item_id"])
    return DecisionRecord(
        record_id=str(record["id"]),
        item_id=item_id,
        reviewer_id=str(record["reviewer_id"]),
        prior_status=_status_from_db(record["prior_status"], item_id),
        new_status=_status_from_db(record["new_status"], item_id),
        created_at=record["created_at"],
        rationale=record["rationale"],
        action=str(record["action"]),
    )


def _report_from_record(record: asyncpg.Record) -> Report:
    raw_status = record["status"]
    try:
        status = ReportStatus(raw_status)
    except ValueError:
        logger.warning("unrecognized report status in store", extra={"report_id": record["id"], "raw_status": raw_status})
        status = ReportStatus.PENDING
    return Report(
        report_id=str(record["id"]),
        item_id=str(record["item_id"]),
        reporter_id=str(record["reporter_id"]) if record["reporter_id"] is not None else None,
        reason=str(record["reason"]),
        created_at=record["created_at"],
        note=record["note"],
        reporter_ip=record["reporter_ip"],
        status=status,
        reviewed_at=record["reviewed_at"],
        reviewer_id=record["reviewer_id"],
        admin_notes=record["admin_notes"],
    )
