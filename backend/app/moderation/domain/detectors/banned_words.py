"""Banned word lexicon matching with leetspeak normalisation."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

SANITIZE_RE = re.compile(r"[^a-z0-9]+")
LEET_REPLACEMENTS: Mapping[str, str] = {
    "4": "a",
    "@": "a",
    "1": "l",
    "3": "e",
    "0": "o",
    "$": "s",
    "7": "t",
}

SEVERITIES = ("warning", "moderate", "ban")
MATCH_TYPES = ("exact", "contains", "regex")
CATEGORIES = ("profanity", "spam", "harassment", "general")


@dataclass(frozen=True)
class BannedWord:
    """One lexicon entry as managed from the spam panel."""

    pattern: str
    severity: str = "moderate"
    match_type: str = "exact"
    category: str = "general"
    is_active: bool = True


@dataclass(frozen=True)
class BannedWordMatch:
    pattern: str
    severity: str


BASELINE_LEXICON: tuple[BannedWord, ...] = (
    BannedWord("viagra", severity="ban"),
    BannedWord("casino", severity="moderate", match_type="contains"),
    BannedWord("free money", severity="moderate", match_type="contains"),
    BannedWord("click here", severity="warning", match_type="contains"),
    BannedWord(r"whats?app\s*\+?\d{6,}", severity="ban", match_type="regex"),
)


def validate_banned_word(entry: BannedWord) -> BannedWord:
    """Reject entries the detector would silently skip or misread."""
    if not entry.pattern or not entry.pattern.strip():
        raise ValueError("invalid_banned_word")
    if entry.severity not in SEVERITIES or entry.match_type not in MATCH_TYPES or entry.category not in CATEGORIES:
        raise ValueError("invalid_banned_word")
    if entry.match_type == "regex":
        try:
            re.compile(entry.pattern)
        except re.error as exc:
            raise ValueError("invalid_banned_word") from exc
    return entry


def severity_rank(severity: str) -> int:
    try:
        return SEVERITIES.index(severity) + 1
    except ValueError:
        return 0


class BannedWordDetector:
    """Matches text against the lexicon; returns the worst hit first."""

    def __init__(self, lexicon: Optional[Iterable[BannedWord]] = None) -> None:
        entries = list(BASELINE_LEXICON if lexicon is None else lexicon)
        self._exact: dict[str, BannedWord] = {}
        self._contains: list[BannedWord] = []
        self._regex: list[tuple[re.Pattern[str], BannedWord]] = []
        for entry in entries:
            if not entry.is_active:
                continue
            if entry.match_type == "regex":
                try:
                    self._regex.append((re.compile(entry.pattern, re.IGNORECASE), entry))
                except re.error:
                    logger.warning("skipping invalid banned word regex", extra={"pattern": entry.pattern})
            elif entry.match_type == "contains":
                self._contains.append(entry)
            else:
                self._exact[self._normalize(entry.pattern)] = entry

    def evaluate(self, text: str) -> list[BannedWordMatch]:
        if not text:
            return []
        matches: list[BannedWordMatch] = []
        normalized_text = self._deleet(text.lower())
        for token in SANITIZE_RE.split(normalized_text):
            entry = self._exact.get(token)
            if entry is not None:
                matches.append(BannedWordMatch(entry.pattern, entry.severity))
        for entry in self._contains:
            if self._deleet(entry.pattern.lower()) in normalized_text:
                matches.append(BannedWordMatch(entry.pattern, entry.severity))
        for pattern, entry in self._regex:
            if pattern.search(text):
                matches.append(BannedWordMatch(entry.pattern, entry.severity))
        return sorted(matches, key=lambda match: -severity_rank(match.severity))

    def worst_severity(self, matches: Sequence[BannedWordMatch]) -> Optional[str]:
        if not matches:
            return None
        return max((match.severity for match in matches), key=severity_rank)

    def _deleet(self, text: str) -> str:
        for src, dest in LEET_REPLACEMENTS.items():
            text = text.replace(src, dest)
        return text

    def _normalize(self, token: str) -> str:
        return SANITIZE_RE.sub("", self._deleet(token.lower()))
