import os
import sys
from pathlib import Path

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "learnhub-test-secret-0123456789abcdef")
os.environ.setdefault("ENV", "dev")
os.environ.setdefault("OBS_ENABLED", "false")

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from learnhub.infra import jwt as jwt_helper
from learnhub.infra import postgres
from learnhub.infra.redis import redis_client, set_redis_client
from learnhub.main import build_app
from learnhub.realtime.gateway import Gateway
from learnhub.realtime.models import Identity


class InMemoryDirectory:
	"""User store stand-in keyed by user id."""

	def __init__(self, *identities: Identity) -> None:
		self.users = {identity.id: identity for identity in identities}
		self.lookups: list[str] = []

	async def get(self, user_id: str):
		self.lookups.append(user_id)
		return self.users.get(user_id)


ALICE = Identity(id="u-alice", display_name="Alice")
BOB = Identity(id="u-bob", display_name="Bob")
CAROL = Identity(id="u-carol", display_name="Carol")


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture
def directory() -> InMemoryDirectory:
	return InMemoryDirectory(ALICE, BOB, CAROL)


@pytest.fixture
def gateway() -> Gateway:
	return Gateway()


@pytest.fixture
def make_token():
	def _make(user_id: str, *, ttl_seconds: int = 3600, **claims) -> str:
		return jwt_helper.encode_access({"sub": user_id, **claims}, ttl_seconds=ttl_seconds)

	return _make


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture
def api_app(directory):
	app = build_app(directory=directory)
	app.state.realtime.emit = AsyncMock()
	return app


@pytest_asyncio.fixture
async def api_client(api_app):
	transport = ASGITransport(app=api_app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
