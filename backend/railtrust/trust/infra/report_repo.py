"""PostgreSQL persistence for filed reports."""

from __future__ import annotations

from datetime import datetime

import asyncpg

from railtrust.trust.domain.models import ReportRecord
from railtrust.trust.domain.reporting import ReportRepository


class PostgresReportRepository(ReportRepository):
    """Append-only rows in ``trust_report``."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def append(self, record: ReportRecord) -> ReportRecord:
        await self._pool.execute(
            """
            INSERT INTO trust_report (reporter_id, target_id, created_at, reason)
            VALUES ($1, $2, $3, $4)
            """,
            record.reporter_id,
            record.target_id,
            record.created_at,
            record.reason,
        )
        return record

    async def has_reported(self, reporter_id: str, target_id: str) -> bool:
        value = await self._pool.fetchval(
            "SELECT EXISTS (SELECT 1 FROM trust_report WHERE reporter_id = $1 AND target_id = $2)",
            reporter_id,
            target_id,
        )
        return bool(value)

    async def count_by_target(self, target_id: str) -> int:
        value = await self._pool.fetchval("SELECT COUNT(*) FROM trust_report WHERE target_id = $1", target_id)
        return int(value or 0)

    async def count_by_reporter(self, reporter_id: str, since: datetime) -> int:
        value = await self._pool.fetchval(
            "SELECT COUNT(*) FROM trust_report WHERE reporter_id = $1 AND created_at >= $2",
            reporter_id,
            since,
        )
        return int(value or 0)

    async def count_since(self, since: datetime) -> int:
        value = await self._pool.fetchval("SELECT COUNT(*) FROM trust_report WHERE created_at >= $1", since)
        return int(value or 0)
