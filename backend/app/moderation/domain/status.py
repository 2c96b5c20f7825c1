"""Moderation status vocabulary.

The three literals below are the wire format for every boundary (API payloads,
database rows, cursors, stream events) and must not change.
"""

from __future__ import annotations

from enum import Enum
from typing import Union


class ModerationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not ModerationStatus.PENDING

    def __str__(self) -> str:
        return self.value


class Unrecognized:
    """Sentinel returned by :func:`classify` for anything outside the vocabulary.

    Falsy, so ``if classify(raw):`` reads naturally. Callers treat it as
    "untrusted, needs re-derivation" and never as an error.
    """

    _instance: "Unrecognized | None" = None

    def __new__(cls) -> "Unrecognized":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNRECOGNIZED"


UNRECOGNIZED = Unrecognized()

_BY_LITERAL = {member.value: member for member in ModerationStatus}


def classify(raw: object) -> Union[ModerationStatus, Unrecognized]:
    """Map untrusted input to a status; exact, case-sensitive, never raises."""

    if isinstance(raw, ModerationStatus):
        return raw
    if type(raw) is not str:
        return UNRECOGNIZED
    return _BY_LITERAL.get(raw, UNRECOGNIZED)


TERMINAL_STATUSES = frozenset({ModerationStatus.APPROVED, ModerationStatus.REJECTED})
