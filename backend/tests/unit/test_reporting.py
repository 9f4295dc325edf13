from datetime import timedelta

import pytest

from railtrust.trust.domain.engine_config import ReportingConfig
from railtrust.trust.domain.errors import (
    AlreadyReported,
    EmailVerificationRequired,
    ReportingRestricted,
    SelfReportRejected,
    StoreUnavailable,
)
from railtrust.trust.domain.identities import InMemoryIdentityRepository
from railtrust.trust.domain.listings import IndexedListing, InMemoryListingIndex
from railtrust.trust.domain.models import Identity, ReportRecord
from railtrust.trust.domain.reporting import InMemoryReportRepository, ReportGuard, SerialReporterMonitor


def _guard(identities, reports=None, listings=None) -> ReportGuard:
    reports = reports or InMemoryReportRepository()
    config = ReportingConfig()
    return ReportGuard(
        identities, reports, config, SerialReporterMonitor(identities, reports, config), listings=listings
    )


def _reporter(now, **fields) -> Identity:
    return Identity(id="reporter", created_at=now - timedelta(days=30), email_verified=True, **fields)


def test_new_accounts_cannot_report(now) -> None:
    identities = InMemoryIdentityRepository()
    young = Identity(id="young", created_at=now - timedelta(hours=2), email_verified=True)

    with pytest.raises(ReportingRestricted) as exc:
        _guard(identities).check(young, now=now)
    assert exc.value.retry_after_seconds == 22 * 3600
    assert exc.value.status_code == 429


@pytest.mark.asyncio
async def test_three_rejected_reports_restrict_reporting(now) -> None:
    identities = InMemoryIdentityRepository()
    identities.add(_reporter(now))
    guard = _guard(identities)

    first = await guard.record_rejected_report("reporter", now=now)
    assert first.rejected_report_count == 1
    assert first.rate_limited_until is None
    await guard.record_rejected_report("reporter", now=now)
    third = await guard.record_rejected_report("reporter", now=now)

    assert third.rejected_report_count == 0
    assert third.rate_limited_until == now + timedelta(hours=48)
    with pytest.raises(ReportingRestricted):
        guard.check(identities.store["reporter"], now=now + timedelta(hours=47))
    guard.check(identities.store["reporter"], now=now + timedelta(hours=48))


@pytest.mark.asyncio
async def test_serial_reporter_is_flagged_but_not_blocked(now) -> None:
    identities = InMemoryIdentityRepository()
    identities.add(_reporter(now))
    reports = InMemoryReportRepository()
    guard = _guard(identities, reports)

    receipts = []
    for index in range(6):
        reporter = identities.store["reporter"]
        receipts.append(await guard.file_report(reporter, f"listing-{index}", now=now + timedelta(minutes=index)))

    assert [r.reporter_flagged for r in receipts] == [False] * 5 + [True]
    stored = identities.store["reporter"]
    assert stored.serial_reporter_flagged
    assert stored.serial_reporter_flagged_at == now + timedelta(minutes=5)
    guard.check(stored, now=now + timedelta(minutes=10))
    assert len(reports.records) == 6


@pytest.mark.asyncio
async def test_weekly_threshold_flags(now) -> None:
    identities = InMemoryIdentityRepository()
    identities.add(_reporter(now))
    reports = InMemoryReportRepository()
    for day in range(1, 6):
        for index in range(4):
            await reports.append(ReportRecord("reporter", f"t-{day}-{index}", now - timedelta(days=day)))
    monitor = SerialReporterMonitor(identities, reports, ReportingConfig())

    assert await monitor.observe("reporter", now=now)
    assert identities.store["reporter"].serial_reporter_flagged


class UnavailableReports(InMemoryReportRepository):
    async def count_by_reporter(self, reporter_id, since) -> int:
        raise StoreUnavailable()


@pytest.mark.asyncio
async def test_monitor_failure_never_blocks_the_report(now) -> None:
    identities = InMemoryIdentityRepository()
    identities.add(_reporter(now))
    reports = UnavailableReports()
    guard = _guard(identities, reports)

    receipt = await guard.file_report(identities.store["reporter"], "listing-1", now=now)

    assert not receipt.reporter_flagged
    assert len(reports.records) == 1


def test_unverified_email_cannot_report(now) -> None:
    identities = InMemoryIdentityRepository()
    unverified = Identity(id="reporter", created_at=now - timedelta(days=30))

    with pytest.raises(EmailVerificationRequired) as exc:
        _guard(identities).check(unverified, now=now)
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_same_target_cannot_be_reported_twice(now) -> None:
    identities = InMemoryIdentityRepository()
    identities.add(_reporter(now))
    reports = InMemoryReportRepository()
    guard = _guard(identities, reports)

    await guard.file_report(identities.store["reporter"], "listing-1", now=now)
    with pytest.raises(AlreadyReported) as exc:
        await guard.file_report(identities.store["reporter"], "listing-1", now=now + timedelta(minutes=1))

    assert exc.value.status_code == 409
    assert len(reports.records) == 1
    await guard.file_report(identities.store["reporter"], "listing-2", now=now + timedelta(minutes=2))


@pytest.mark.asyncio
async def test_own_listing_cannot_be_reported(now) -> None:
    identities = InMemoryIdentityRepository()
    identities.add(_reporter(now))
    listings = InMemoryListingIndex()
    listings.add(IndexedListing(id="listing-1", seller_id="reporter", title="Tie plates"))
    reports = InMemoryReportRepository()

    with pytest.raises(SelfReportRejected) as exc:
        await _guard(identities, reports, listings).file_report(identities.store["reporter"], "listing-1", now=now)

    assert exc.value.status_code == 400
    assert reports.records == []


@pytest.mark.asyncio
async def test_fifth_report_auto_flags_the_listing(now) -> None:
    identities = InMemoryIdentityRepository()
    listings = InMemoryListingIndex()
    listings.add(IndexedListing(id="listing-1", seller_id="seller", title="Used 115RE rail"))
    reports = InMemoryReportRepository()
    guard = _guard(identities, reports, listings)

    receipts = []
    for index in range(6):
        reporter = identities.add(
            Identity(id=f"reporter-{index}", created_at=now - timedelta(days=30), email_verified=True)
        )
        receipts.append(await guard.file_report(reporter, "listing-1", now=now + timedelta(minutes=index)))

    assert [r.target_flagged for r in receipts] == [False] * 4 + [True, True]
    assert listings.listings["listing-1"].flagged
    assert await listings.count_flagged() == 1


@pytest.mark.asyncio
async def test_reporter_windows_include_the_boundary(now) -> None:
    reports = InMemoryReportRepository()
    await reports.append(ReportRecord("reporter", "listing-1", now - timedelta(hours=24)))

    assert await reports.count_by_reporter("reporter", now - timedelta(hours=24)) == 1
    assert await reports.count_since(now - timedelta(hours=24)) == 1
    assert await reports.count_by_reporter("reporter", now - timedelta(hours=23)) == 0
