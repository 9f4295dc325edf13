from datetime import timedelta

import pytest

from railtrust.trust.domain.models import LockoutState, ReportRecord, SellerPlan
from railtrust.trust.infra.identity_repo import PostgresIdentityRepository
from railtrust.trust.infra.listing_repo import PostgresListingIndex
from railtrust.trust.infra.report_repo import PostgresReportRepository


class StubPool:
    def __init__(self, *, row=None, rows=(), value=0) -> None:
        self.row = row
        self.rows = list(rows)
        self.value = value
        self.calls: list[tuple[str, tuple]] = []

    async def fetchrow(self, query, *args):
        self.calls.append((query, args))
        return self.row

    async def fetch(self, query, *args):
        self.calls.append((query, args))
        return self.rows

    async def fetchval(self, query, *args):
        self.calls.append((query, args))
        return self.value

    async def execute(self, query, *args):
        self.calls.append((query, args))
        return "INSERT 0 1"


def _row(now) -> dict:
    return {
        "id": "seller-1",
        "created_at": now - timedelta(days=10),
        "email_verified": True,
        "spam_warnings": 1,
        "spam_suspended_until": None,
        "rejected_report_count": None,
        "report_rate_limited_until": None,
        "serial_reporter_flagged": False,
        "serial_reporter_flagged_at": None,
        "seller_plan": "pro",
        "seller_verification_status": None,
        "seller_verification_expires_at": None,
        "verified_seller_status": "active",
        "verified_seller_expires_at": now + timedelta(days=3),
        "contractor_verification_status": None,
        "contractor_verification_expires_at": None,
    }


@pytest.mark.asyncio
async def test_identity_row_maps_legacy_columns(now) -> None:
    repo = PostgresIdentityRepository(StubPool(row=_row(now)))

    identity = await repo.get("seller-1")

    assert identity is not None
    assert identity.seller_plan is SellerPlan.PRO
    assert identity.rejected_report_count == 0
    assert identity.legacy_seller_status == "active"
    assert identity.legacy_seller_expires_at == now + timedelta(days=3)


@pytest.mark.asyncio
async def test_lockout_compare_and_set_reports_lost_race(now) -> None:
    pool = StubPool(row=None)
    repo = PostgresIdentityRepository(pool)

    written = await repo.compare_and_set_lockout("seller-1", LockoutState(2, None), LockoutState(0, now))

    assert written is False
    query, args = pool.calls[0]
    assert "IS NOT DISTINCT FROM" in query
    assert args == ("seller-1", 2, None, 0, now)


@pytest.mark.asyncio
async def test_report_counts(now) -> None:
    pool = StubPool(value=4)
    repo = PostgresReportRepository(pool)

    await repo.append(ReportRecord("r", "t", now, "spam"))
    assert await repo.count_by_reporter("r", now - timedelta(hours=24)) == 4
    assert pool.calls[0][1] == ("r", "t", now, "spam")


@pytest.mark.asyncio
async def test_foreign_image_lookup_skips_empty_input() -> None:
    pool = StubPool(rows=[{"hash": "abc"}])
    index = PostgresListingIndex(pool)

    assert await index.foreign_image_hashes([], "seller-1") == set()
    assert pool.calls == []
    assert await index.foreign_image_hashes(["abc", "abc", "def"], "seller-1") == {"abc"}
    assert pool.calls[0][1] == ("seller-1", ["abc", "def"])


@pytest.mark.asyncio
async def test_report_windows_include_the_boundary(now) -> None:
    pool = StubPool(value=2)
    repo = PostgresReportRepository(pool)

    since = now - timedelta(days=7)
    assert await repo.count_by_reporter("r", since) == 2
    assert await repo.count_since(since) == 2
    assert all("created_at >= $" in query for query, _ in pool.calls)
    assert pool.calls[1][1] == (since,)


@pytest.mark.asyncio
async def test_report_target_lookups() -> None:
    pool = StubPool(value=True)
    repo = PostgresReportRepository(pool)

    assert await repo.has_reported("r", "listing-1")
    assert pool.calls[0][1] == ("r", "listing-1")
    pool.value = 5
    assert await repo.count_by_target("listing-1") == 5


@pytest.mark.asyncio
async def test_listing_flag_is_conditional() -> None:
    pool = StubPool(row=None, value="seller-1")
    index = PostgresListingIndex(pool)

    assert await index.owner_of("listing-1") == "seller-1"
    assert not await index.flag("listing-1")
    assert "NOT auto_flagged" in pool.calls[1][0]
    pool.row = {"id": "listing-1"}
    assert await index.flag("listing-1")
