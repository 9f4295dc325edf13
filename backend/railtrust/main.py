"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from railtrust.api import ops
from railtrust.api.middleware_request_id import RequestIdMiddleware
from railtrust.infra import postgres
from railtrust.infra.redis import redis_client
from railtrust.obs.logging import configure_logging
from railtrust.settings import settings
from railtrust.trust.api import router as trust_router
from railtrust.trust.domain.container import configure_postgres

_DEFAULT_CONFIG = Path(__file__).resolve().parent.parent / "config" / "trust.yaml"


@asynccontextmanager
async def lifespan(app: FastAPI):
	configure_logging()
	pool = await postgres.init_pool()
	config_path = settings.trust_config_path or (str(_DEFAULT_CONFIG) if _DEFAULT_CONFIG.exists() else None)
	configure_postgres(pool, redis_client, config_path=config_path)
	try:
		yield
	finally:
		await postgres.close_pool()


app = FastAPI(title="Rail Exchange Trust Engine", lifespan=lifespan)
app.add_middleware(RequestIdMiddleware)
app.include_router(ops.router)
app.include_router(trust_router)
