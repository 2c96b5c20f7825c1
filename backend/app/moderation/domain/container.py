"""Lightweight service container shared by moderation modules."""

from __future__ import annotations

from typing import Iterable, Optional

import asyncpg
from redis.asyncio import Redis

from app.infra.redis import RedisProxy, redis_client
from app.moderation.domain.detectors.banned_words import BannedWord
from app.moderation.domain.detectors.velocity import IntakeSignalCollector
from app.moderation.domain.lexicon import InMemoryLexiconStore, LexiconStore
from app.moderation.domain.queue import ModerationQueue
from app.moderation.domain.repository import InMemoryModerationRepository, ModerationRepository
from app.moderation.domain.review_service import AdminReviewService
from app.moderation.domain.spam import SpamEvaluator
from app.moderation.domain.workflow import DecisionPublisher, ModerationWorkflow
from app.moderation.infra.postgres_repo import PostgresLexiconStore, PostgresModerationRepository
from app.moderation.infra.redis_counters import RedisDecisionPublisher, RedisRateCounter, RedisRollingStore
from app.settings import settings


def _build_collector() -> IntakeSignalCollector:
    return IntakeSignalCollector(window_seconds=settings.spam_velocity_window_seconds)


_repository: ModerationRepository = InMemoryModerationRepository()
_evaluator: SpamEvaluator = SpamEvaluator.from_settings(settings)
_collector: IntakeSignalCollector = _build_collector()
_publisher: Optional[DecisionPublisher] = None
_lexicon: LexiconStore = InMemoryLexiconStore()
_workflow = ModerationWorkflow(
    repository=_repository,
    evaluator=_evaluator,
    signal_collector=_collector,
    lexicon=_lexicon,
)
_queue = ModerationQueue(
    repository=_repository,
    default_page_size=settings.moderation_queue_page_size,
    max_page_size=settings.moderation_queue_max_page_size,
)
_review_service = AdminReviewService(workflow=_workflow, queue=_queue)


def configure(
    *,
    repository: Optional[ModerationRepository] = None,
    evaluator: Optional[SpamEvaluator] = None,
    collector: Optional[IntakeSignalCollector] = None,
    publisher: Optional[DecisionPublisher] = None,
    lexicon: Optional[Iterable[BannedWord]] = None,
    lexicon_store: Optional[LexiconStore] = None,
    reset: bool = False,
) -> None:
    """Rewire the moderation services; ``reset`` restores fresh in-memory defaults."""
    global _repository, _evaluator, _collector, _publisher, _lexicon, _workflow, _queue, _review_service
    if reset:
        _repository = InMemoryModerationRepository()
        _evaluator = SpamEvaluator.from_settings(settings)
        _collector = _build_collector()
        _publisher = None
        _lexicon = InMemoryLexiconStore()
    if repository is not None:
        _repository = repository
    if evaluator is not None:
        _evaluator = evaluator
    elif lexicon is not None:
        _evaluator = SpamEvaluator.from_settings(settings, lexicon=lexicon)
    if lexicon_store is not None:
        _lexicon = lexicon_store
    elif lexicon is not None:
        _lexicon = InMemoryLexiconStore(lexicon)
    if collector is not None:
        _collector = collector
    if publisher is not None:
        _publisher = publisher
    _workflow = ModerationWorkflow(
        repository=_repository,
        evaluator=_evaluator,
        signal_collector=_collector,
        publisher=_publisher,
        lexicon=_lexicon,
    )
    _queue = ModerationQueue(
        repository=_repository,
        default_page_size=settings.moderation_queue_page_size,
        max_page_size=settings.moderation_queue_max_page_size,
    )
    _review_service = AdminReviewService(workflow=_workflow, queue=_queue)


def configure_postgres(pool: asyncpg.Pool, redis_conn: Redis | RedisProxy | None = None) -> None:
    proxy = redis_conn if isinstance(redis_conn, RedisProxy) else (RedisProxy(redis_conn) if redis_conn else redis_client)
    configure(
        repository=PostgresModerationRepository(pool),
        collector=IntakeSignalCollector(
            counter=RedisRateCounter(proxy),
            store=RedisRollingStore(proxy),
            window_seconds=settings.spam_velocity_window_seconds,
        ),
        publisher=RedisDecisionPublisher(proxy, settings.moderation_decision_stream),
        lexicon_store=PostgresLexiconStore(pool),
    )


def get_repository() -> ModerationRepository:
    return _repository


def get_workflow() -> ModerationWorkflow:
    return _workflow


def get_queue() -> ModerationQueue:
    return _queue


def get_review_service() -> AdminReviewService:
    return _review_service
