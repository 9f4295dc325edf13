"""PostgreSQL persistence for identity trust fields."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import asyncpg

from railtrust.trust.domain.identities import IdentityRepository
from railtrust.trust.domain.models import Identity, LockoutState, ReportState, SellerPlan

_COLUMNS = """
    id, created_at, email_verified, spam_warnings, spam_suspended_until,
    rejected_report_count, report_rate_limited_until, serial_reporter_flagged,
    serial_reporter_flagged_at, seller_plan, seller_verification_status,
    seller_verification_expires_at, verified_seller_status, verified_seller_expires_at,
    contractor_verification_status, contractor_verification_expires_at
"""


def _row_to_identity(row: asyncpg.Record) -> Identity:
    plan = row["seller_plan"]
    return Identity(
        id=str(row["id"]),
        created_at=row["created_at"],
        email_verified=bool(row["email_verified"]),
        spam_warnings=int(row["spam_warnings"] or 0),
        spam_suspended_until=row["spam_suspended_until"],
        rejected_report_count=int(row["rejected_report_count"] or 0),
        report_rate_limited_until=row["report_rate_limited_until"],
        serial_reporter_flagged=bool(row["serial_reporter_flagged"]),
        serial_reporter_flagged_at=row["serial_reporter_flagged_at"],
        seller_plan=SellerPlan(plan) if plan else SellerPlan.FREE,
        seller_status=row["seller_verification_status"],
        seller_expires_at=row["seller_verification_expires_at"],
        legacy_seller_status=row["verified_seller_status"],
        legacy_seller_expires_at=row["verified_seller_expires_at"],
        contractor_status=row["contractor_verification_status"],
        contractor_expires_at=row["contractor_verification_expires_at"],
    )


class PostgresIdentityRepository(IdentityRepository):
    """Reads and conditionally updates rows in ``trust_identity``."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get(self, identity_id: str) -> Optional[Identity]:
        row = await self._pool.fetchrow(f"SELECT {_COLUMNS} FROM trust_identity WHERE id = $1", identity_id)
        return _row_to_identity(row) if row else None

    async def compare_and_set_lockout(
        self,
        identity_id: str,
        expected: LockoutState,
        updated: LockoutState,
    ) -> bool:
        row = await self._pool.fetchrow(
            """
            UPDATE trust_identity
            SET spam_warnings = $4, spam_suspended_until = $5
            WHERE id = $1
              AND spam_warnings = $2
              AND spam_suspended_until IS NOT DISTINCT FROM $3
            RETURNING id
            """,
            identity_id,
            expected.spam_warnings,
            expected.suspended_until,
            updated.spam_warnings,
            updated.suspended_until,
        )
        return row is not None

    async def compare_and_set_reporting(
        self,
        identity_id: str,
        expected: ReportState,
        updated: ReportState,
    ) -> bool:
        row = await self._pool.fetchrow(
            """
            UPDATE trust_identity
            SET rejected_report_count = $4, report_rate_limited_until = $5
            WHERE id = $1
              AND rejected_report_count = $2
              AND report_rate_limited_until IS NOT DISTINCT FROM $3
            RETURNING id
            """,
            identity_id,
            expected.rejected_report_count,
            expected.rate_limited_until,
            updated.rejected_report_count,
            updated.rate_limited_until,
        )
        return row is not None

    async def flag_serial_reporter(self, identity_id: str, flagged_at: datetime) -> bool:
        row = await self._pool.fetchrow(
            """
            UPDATE trust_identity
            SET serial_reporter_flagged = TRUE, serial_reporter_flagged_at = $2
            WHERE id = $1 AND serial_reporter_flagged = FALSE
            RETURNING id
            """,
            identity_id,
            flagged_at,
        )
        return row is not None

    async def count_locked(self, now: datetime) -> int:
        value = await self._pool.fetchval(
            "SELECT COUNT(*) FROM trust_identity WHERE spam_suspended_until > $1",
            now,
        )
        return int(value or 0)

    async def count_serial_reporters(self) -> int:
        value = await self._pool.fetchval("SELECT COUNT(*) FROM trust_identity WHERE serial_reporter_flagged")
        return int(value or 0)

    async def count_report_restricted(self, now: datetime) -> int:
        value = await self._pool.fetchval(
            "SELECT COUNT(*) FROM trust_identity WHERE report_rate_limited_until > $1",
            now,
        )
        return int(value or 0)

    async def count_high_warnings(self, min_warnings: int) -> int:
        value = await self._pool.fetchval(
            "SELECT COUNT(*) FROM trust_identity WHERE spam_warnings >= $1",
            min_warnings,
        )
        return int(value or 0)
