"""Spam signal evaluator.

Produces an advisory :class:`SpamVerdict` from content features, intake-time
author signals and reporter flags. The verdict informs queue ordering and the
reviewer UI; it never moves an item's status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping, Optional

from app.moderation.domain.detectors.banned_words import BannedWord, BannedWordDetector
from app.moderation.domain.detectors.links import LinkSafetyDetector
from app.moderation.domain.detectors.text_features import is_repetitive, is_shouting
from app.moderation.domain.lexicon import BASELINE_FINGERPRINT, lexicon_fingerprint
from app.moderation.domain.models import ContentItem, SpamVerdict
from app.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

EVALUATOR_VERSION = "heuristic-v1"

SEVERITY_WEIGHTS: Mapping[str, float] = {
    "warning": 0.15,
    "moderate": 0.35,
    "ban": 0.7,
}
UNSAFE_LINK_WEIGHT = 0.5
EXCESSIVE_LINKS_WEIGHT = 0.25
REPETITIVE_WEIGHT = 0.2
SHOUTING_WEIGHT = 0.1
VELOCITY_WEIGHT = 0.3
DUPLICATE_WEIGHT = 0.3
REPORT_WEIGHT = 0.15
REPORT_WEIGHT_CAP = 0.6
ANONYMOUS_WEIGHT = 0.05

DUPLICATE_THRESHOLD = 3


@dataclass(frozen=True)
class SpamThresholds:
    likely: float = 0.7
    suspicious: float = 0.4

    def recommend(self, score: float) -> str:
        if score >= self.likely:
            return "likely_spam"
        if score >= self.suspicious:
            return "suspicious"
        return "clean"


def _combine(weights: Iterable[float]) -> float:
    remaining = 1.0
    for weight in weights:
        remaining *= 1.0 - max(0.0, min(1.0, weight))
    return round(min(1.0, max(0.0, 1.0 - remaining)), 4)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SpamEvaluator:
    """Deterministic heuristic scorer; same inputs and version give the same verdict."""

    banned_words: BannedWordDetector = field(default_factory=BannedWordDetector)
    links: LinkSafetyDetector = field(default_factory=LinkSafetyDetector)
    thresholds: SpamThresholds = field(default_factory=SpamThresholds)
    velocity_limit: int = 5
    version: str = EVALUATOR_VERSION
    clock: Callable[[], datetime] = _utcnow

    @classmethod
    def from_settings(
        cls,
        settings,
        *,
        lexicon: Optional[Iterable[BannedWord]] = None,
    ) -> "SpamEvaluator":
        evaluator = cls(
            links=LinkSafetyDetector(denylist=settings.spam_link_denylist, max_links=settings.spam_max_links),
            thresholds=SpamThresholds(
                likely=settings.spam_likely_threshold,
                suspicious=settings.spam_suspicious_threshold,
            ),
            velocity_limit=settings.spam_velocity_limit,
        )
        return evaluator if lexicon is None else evaluator.with_lexicon(lexicon)

    def with_lexicon(self, lexicon: Iterable[BannedWord]) -> "SpamEvaluator":
        """Copy of this evaluator matching ``lexicon``; a custom lexicon changes the version."""
        entries = tuple(lexicon)
        fingerprint = lexicon_fingerprint(entries)
        base = self.version.split("+", 1)[0]
        version = base if fingerprint == BASELINE_FINGERPRINT else f"{base}+lex.{fingerprint}"
        return replace(self, banned_words=BannedWordDetector(entries), version=version)

    def evaluate(self, item: ContentItem) -> SpamVerdict:
        body = getattr(item, "body", None)
        if not isinstance(body, str):
            obs_metrics.MOD_SPAM_EVALUATION_FAILURES_TOTAL.labels(reason="malformed_input").inc()
            return self._zero("malformed_input")
        try:
            verdict = self._score(item, body)
        except Exception:  # noqa: BLE001 - spam scoring must never block the pipeline
            logger.exception("spam evaluation failed", extra={"item_id": getattr(item, "item_id", None)})
            obs_metrics.MOD_SPAM_EVALUATION_FAILURES_TOTAL.labels(reason="error").inc()
            return self._zero("evaluation_failed")
        obs_metrics.MOD_SPAM_SCORE.observe(verdict.score)
        return verdict

    def _score(self, item: ContentItem, body: str) -> SpamVerdict:
        text = f"{item.title}\n{body}" if item.title else body
        contributions: list[tuple[str, float]] = []

        matches = self.banned_words.evaluate(text)
        worst = self.banned_words.worst_severity(matches)
        if worst is not None:
            contributions.append((f"banned_word:{worst}", SEVERITY_WEIGHTS.get(worst, 0.0)))

        link_report = self.links.evaluate(text)
        if link_report.unsafe:
            contributions.append(("unsafe_link", UNSAFE_LINK_WEIGHT))
        if link_report.excessive:
            contributions.append(("excessive_links", EXCESSIVE_LINKS_WEIGHT))

        if is_repetitive(text):
            contributions.append(("repetitive_text", REPETITIVE_WEIGHT))
        if is_shouting(text):
            contributions.append(("shouting", SHOUTING_WEIGHT))

        signals = item.signals or {}
        if _as_int(signals.get("author_recent_submissions")) > self.velocity_limit:
            contributions.append(("high_velocity", VELOCITY_WEIGHT))
        if _as_int(signals.get("author_duplicate_submissions")) >= DUPLICATE_THRESHOLD:
            contributions.append(("duplicate_text", DUPLICATE_WEIGHT))

        reports = max(0, int(item.report_count or 0))
        if reports:
            contributions.append((f"reported:{reports}", min(REPORT_WEIGHT * reports, REPORT_WEIGHT_CAP)))
        if item.is_anonymous:
            contributions.append(("anonymous_author", ANONYMOUS_WEIGHT))

        score = _combine(weight for _, weight in contributions)
        tags = tuple(dict.fromkeys(tag for tag, _ in contributions))
        return SpamVerdict(
            score=score,
            signals=tags,
            evaluator_version=self.version,
            recommendation=self.thresholds.recommend(score),
            evaluated_at=self.clock(),
        )

    def _zero(self, reason: str) -> SpamVerdict:
        return SpamVerdict(
            score=0.0,
            signals=(reason,),
            evaluator_version=self.version,
            recommendation="clean",
            evaluated_at=self.clock(),
        )


def _as_int(value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
