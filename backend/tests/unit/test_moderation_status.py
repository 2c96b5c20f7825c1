from __future__ import annotations

import pytest

from app.moderation.domain.status import (
    TERMINAL_STATUSES,
    UNRECOGNIZED,
    ModerationStatus,
    Unrecognized,
    classify,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("pending", ModerationStatus.PENDING),
        ("approved", ModerationStatus.APPROVED),
        ("rejected", ModerationStatus.REJECTED),
    ],
)
def test_classify_known_literals(raw: str, expected: ModerationStatus) -> None:
    assert classify(raw) is expected


@pytest.mark.parametrize(
    "raw",
    ["Pending", "APPROVED", " pending", "pending ", "", "deleted", None, 0, 1.5, b"pending", ["pending"], object()],
)
def test_classify_anything_else_is_unrecognized(raw: object) -> None:
    assert classify(raw) is UNRECOGNIZED


def test_classify_passes_members_through() -> None:
    assert classify(ModerationStatus.REJECTED) is ModerationStatus.REJECTED


def test_unrecognized_is_falsy_singleton() -> None:
    assert not UNRECOGNIZED
    assert Unrecognized() is UNRECOGNIZED
    assert classify("nope") is classify(42)


def test_wire_literals_and_terminal_states() -> None:
    assert [member.value for member in ModerationStatus] == ["pending", "approved", "rejected"]
    assert str(ModerationStatus.APPROVED) == "approved"
    assert ModerationStatus.PENDING == "pending"
    assert not ModerationStatus.PENDING.is_terminal
    assert ModerationStatus.APPROVED.is_terminal and ModerationStatus.REJECTED.is_terminal
    assert TERMINAL_STATUSES == {ModerationStatus.APPROVED, ModerationStatus.REJECTED}
