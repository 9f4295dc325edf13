"""AsyncPG pool management for the trust engine."""

from __future__ import annotations

from typing import Optional

import asyncpg

from railtrust.settings import settings

_pool: Optional[asyncpg.pool.Pool] = None


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		_pool = await asyncpg.create_pool(
			dsn=settings.postgres_url,
			min_size=0,
			max_size=settings.postgres_max_pool_size,
		)
	return _pool


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None
