"""Keyset pagination helpers for the moderation queue."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from app.moderation.domain.models import ContentItem
from app.moderation.domain.status import ModerationStatus, classify


@dataclass(frozen=True, slots=True)
class QueueCursor:
    """Position of the last yielded item: (score desc, created_at asc, item_id asc)."""

    spam_score: float
    created_at: datetime
    item_id: str
    status: ModerationStatus

    @staticmethod
    def after(item: ContentItem) -> "QueueCursor":
        return QueueCursor(
            spam_score=item.spam_score,
            created_at=item.created_at,
            item_id=item.item_id,
            status=item.status,
        )


def sort_key(item: ContentItem) -> tuple[float, datetime, str]:
    """Ascending key equivalent to the queue order."""

    return (-item.spam_score, item.created_at, item.item_id)


def is_after(item: ContentItem, cursor: QueueCursor) -> bool:
    return sort_key(item) > (-cursor.spam_score, cursor.created_at, cursor.item_id)


def encode_cursor(cursor: QueueCursor) -> str:
    """Encode a cursor payload using URL-safe base64."""

    payload: dict[str, Any] = {
        "s": cursor.spam_score,
        "t": cursor.created_at.isoformat(),
        "id": cursor.item_id,
        "st": cursor.status.value,
    }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(value: str, *, expected_status: ModerationStatus | None = None) -> QueueCursor:
    """Decode a cursor string produced by :func:`encode_cursor`."""

    try:
        raw = base64.urlsafe_b64decode(value.encode("ascii"))
        payload = json.loads(raw.decode("utf-8"))
        spam_score = float(payload["s"])
        created_at = datetime.fromisoformat(payload["t"])
        item_id = str(payload["id"])
    except (ValueError, KeyError, TypeError, UnicodeError, binascii.Error, json.JSONDecodeError) as exc:
        raise ValueError("invalid_cursor") from exc
    # Stored timestamps are aware; a naive one cannot be ordered against them.
    if created_at.tzinfo is None:
        raise ValueError("invalid_cursor")
    status = classify(payload.get("st"))
    if not status or not item_id:
        raise ValueError("invalid_cursor")
    if expected_status is not None and status is not expected_status:
        raise ValueError("invalid_cursor")
    return QueueCursor(spam_score=spam_score, created_at=created_at, item_id=item_id, status=status)
