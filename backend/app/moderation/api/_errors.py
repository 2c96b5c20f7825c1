"""Error translation helpers for moderation API."""

from __future__ import annotations

from fastapi import HTTPException, status

from app.moderation.domain.exceptions import ModerationError
from app.moderation.domain.status import ModerationStatus, Unrecognized, classify


def to_http_error(exc: Exception) -> HTTPException:
    """Translate domain exceptions to FastAPI HTTP errors."""
    if isinstance(exc, HTTPException):
        return exc
    if isinstance(exc, ModerationError):
        return HTTPException(status_code=exc.status_code, detail=exc.detail)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def parse_status(raw: object) -> ModerationStatus:
    """Classify a wire literal, rejecting anything outside the vocabulary."""
    parsed: ModerationStatus | Unrecognized = classify(raw)
    if not parsed:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="unrecognized_status")
    return parsed
