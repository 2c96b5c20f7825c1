import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from app.infra import postgres
from app.main import app
from app.moderation.domain import container
from app.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from app.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via X-User-Id/X-User-Roles headers, which are only
	accepted in dev mode. Storage stays in memory.
	"""
	original_env = settings.environment
	original_storage = settings.moderation_storage
	settings.environment = "dev"
	settings.moderation_storage = "memory"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.moderation_storage = original_storage


@pytest.fixture(autouse=True)
def fresh_moderation_container():
	container.configure(reset=True)
	yield
	container.configure(reset=True)


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client


ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Roles": "admin"}
MODERATOR_HEADERS = {"X-User-Id": "mod-1", "X-User-Roles": "staff.moderator"}
MEMBER_HEADERS = {"X-User-Id": "member-1"}


@pytest.fixture
def admin_headers():
	return dict(ADMIN_HEADERS)


@pytest.fixture
def moderator_headers():
	return dict(MODERATOR_HEADERS)


@pytest.fixture
def member_headers():
	return dict(MEMBER_HEADERS)
