"""Link safety detector covering denylist and link volume."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable


URL_RE = re.compile(r"https?://([a-z0-9.-]+)", re.IGNORECASE)


@dataclass(frozen=True)
class LinkReport:
    total: int
    flagged_domains: tuple[str, ...]
    excessive: bool

    @property
    def unsafe(self) -> bool:
        return bool(self.flagged_domains)


class LinkSafetyDetector:
    """Detects unsafe links based on a denylist and link count."""

    def __init__(self, denylist: Iterable[str] | None = None, max_links: int = 3) -> None:
        self.denylist = {domain.lower() for domain in (denylist or [])}
        self.max_links = max_links

    def evaluate(self, text: str) -> LinkReport:
        domains = [match.group(1).lower() for match in URL_RE.finditer(text or "")]
        flagged = tuple(
            dict.fromkeys(
                domain
                for domain in domains
                if any(domain == item or domain.endswith(f".{item}") for item in self.denylist)
            )
        )
        return LinkReport(total=len(domains), flagged_domains=flagged, excessive=len(domains) > self.max_links)
