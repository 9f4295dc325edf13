import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from railtrust.main import app
from railtrust.settings import settings
from railtrust.trust.domain import container

# Noon in the daily reset zone (America/Chicago, UTC-6 in January), so daily
# windows have twelve hours left and burst slots start on a minute boundary.
NOON = datetime(2026, 1, 15, 18, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from railtrust.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	container.reset()
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()
		container.reset()


@pytest.fixture
def admin_token(monkeypatch):
	monkeypatch.setattr(settings, "admin_token", "test-admin-token")
	return "test-admin-token"


@pytest.fixture
def now() -> datetime:
	return NOON


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
