"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api import ops
from app.api.errors import install_error_handlers
from app.api.openapi import custom_openapi
from app.infra import postgres
from app.infra.redis import close_redis, redis_client
from app.moderation import configure_postgres as configure_moderation
from app.moderation import router as moderation_router
from app.moderation.domain.container import get_workflow
from app.moderation.infra.postgres_repo import PostgresLexiconStore, PostgresModerationRepository
from app.obs import init as obs_init
from app.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	uses_postgres = settings.moderation_storage == "postgres"
	if uses_postgres:
		pool = await postgres.init_pool()
		await PostgresModerationRepository(pool).ensure_schema()
		await PostgresLexiconStore(pool).ensure_seeded()
		configure_moderation(pool, redis_client)
		await get_workflow().refresh_lexicon()
	logger.info(
		"moderation service started",
		extra={"storage": settings.moderation_storage, "environment": settings.environment},
	)
	try:
		yield
	finally:
		if uses_postgres:
			await postgres.close_pool()
		await close_redis()


app = FastAPI(title="Forum Moderation", lifespan=lifespan)
custom_openapi(app)
install_error_handlers(app)
obs_init(app)

app.include_router(ops.router)
app.include_router(moderation_router, tags=["moderation"])
