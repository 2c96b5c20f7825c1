"""Velocity and duplicate-submission tracking captured at intake time."""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass, field
from typing import Dict, Protocol


class RateCounter(Protocol):
    """Protocol describing the rate counting backend."""

    async def increment(self, key: str, ttl_seconds: int) -> int:
        ...


class RollingStore(Protocol):
    """Minimal interface for storing hashes with TTL semantics."""

    async def add(self, key: str, value: str, ttl_seconds: int) -> int:
        ...


class InMemoryRateCounter:
    """In-memory counter that respects TTL semantics."""

    def __init__(self) -> None:
        self.store: Dict[str, tuple[int, float]] = {}

    async def increment(self, key: str, ttl_seconds: int) -> int:
        now = time.time()
        value, expiry = self.store.get(key, (0, 0.0))
        if expiry <= now:
            value = 0
        value += 1
        self.store[key] = (value, now + ttl_seconds)
        return value


class InMemoryRollingStore:
    """Rolling store counting occurrences of a value until the TTL expires."""

    def __init__(self) -> None:
        self.store: Dict[str, list[tuple[str, float]]] = {}

    async def add(self, key: str, value: str, ttl_seconds: int) -> int:
        now = time.time()
        bucket = [(item, expiry) for item, expiry in self.store.get(key, []) if expiry > now]
        bucket.append((value, now + ttl_seconds))
        self.store[key] = bucket
        return sum(1 for item, _ in bucket if item == value)


@dataclass
class IntakeSignalCollector:
    """Records per-author facts at submission so later scoring stays deterministic."""

    counter: RateCounter = field(default_factory=InMemoryRateCounter)
    store: RollingStore = field(default_factory=InMemoryRollingStore)
    window_seconds: int = 60
    duplicate_window_seconds: int = 300

    async def collect(self, author_key: str, body: str) -> dict[str, int]:
        if not author_key:
            return {}
        hits = await self.counter.increment(f"vel:{author_key}", self.window_seconds)
        digest = hashlib.sha256(body.strip().lower().encode("utf-8")).hexdigest()
        duplicates = await self.store.add(f"dup:{author_key}", digest, self.duplicate_window_seconds)
        return {
            "author_recent_submissions": hits,
            "author_duplicate_submissions": duplicates,
        }
