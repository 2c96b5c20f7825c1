"""Banned word lexicon storage behind the spam panel."""

from __future__ import annotations

import hashlib
import json
from typing import Iterable, Optional, Protocol

from app.moderation.domain.detectors.banned_words import BASELINE_LEXICON, BannedWord


class LexiconStore(Protocol):
    async def list_entries(self) -> list[BannedWord]:
        ...

    async def upsert_entry(self, entry: BannedWord) -> BannedWord:
        """Insert or replace the entry keyed by its pattern."""
        ...

    async def delete_entry(self, pattern: str) -> bool:
        ...


class InMemoryLexiconStore(LexiconStore):
    def __init__(self, entries: Optional[Iterable[BannedWord]] = None) -> None:
        self.entries: dict[str, BannedWord] = {
            entry.pattern: entry for entry in (BASELINE_LEXICON if entries is None else entries)
        }

    async def list_entries(self) -> list[BannedWord]:
        return sorted(self.entries.values(), key=lambda entry: entry.pattern)

    async def upsert_entry(self, entry: BannedWord) -> BannedWord:
        self.entries[entry.pattern] = entry
        return entry

    async def delete_entry(self, pattern: str) -> bool:
        return self.entries.pop(pattern, None) is not None


def lexicon_fingerprint(entries: Iterable[BannedWord]) -> str:
    """Stable short digest of a lexicon, independent of entry order."""
    payload = sorted(
        (entry.pattern, entry.severity, entry.match_type, entry.category, entry.is_active) for entry in entries
    )
    return hashlib.sha256(json.dumps(payload).encode("utf-8")).hexdigest()[:8]


BASELINE_FINGERPRINT = lexicon_fingerprint(BASELINE_LEXICON)
