"""Report filing guards and the serial-reporter soft flag.

A heavy reporter is flagged for an administrator and never blocked by the
flag. Only reports that moderators reject count toward a temporary reporting
restriction. An identity reports a target once, and a target that collects
enough reports is flagged for review.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

from railtrust.obs import metrics
from railtrust.trust.domain.engine_config import ReportingConfig
from railtrust.trust.domain.errors import (
    AlreadyReported,
    EmailVerificationRequired,
    IdentityNotFound,
    ReportingRestricted,
    SelfReportRejected,
    StoreUnavailable,
)
from railtrust.trust.domain.identities import IdentityRepository
from railtrust.trust.domain.listings import ListingIndex
from railtrust.trust.domain.models import Identity, ReportRecord, ReportState, utcnow

logger = logging.getLogger(__name__)


class ReportRepository(Protocol):
    async def append(self, record: ReportRecord) -> ReportRecord:
        ...

    async def has_reported(self, reporter_id: str, target_id: str) -> bool:
        ...

    async def count_by_target(self, target_id: str) -> int:
        ...

    async def count_by_reporter(self, reporter_id: str, since: datetime) -> int:
        ...

    async def count_since(self, since: datetime) -> int:
        ...


@dataclass(frozen=True)
class ReportReceipt:
    record: ReportRecord
    reporter_flagged: bool
    target_flagged: bool = False


class SerialReporterMonitor:
    """Flags identities whose report rate crosses the rolling thresholds."""

    def __init__(
        self,
        identities: IdentityRepository,
        reports: ReportRepository,
        config: ReportingConfig,
    ) -> None:
        self._identities = identities
        self._reports = reports
        self._config = config

    async def observe(self, reporter_id: str, *, now: Optional[datetime] = None) -> bool:
        """Return True when the reporter is over a threshold. Store failures never propagate."""

        now = now or utcnow()
        try:
            window = await self._tripped_window(reporter_id, now)
            if window is None:
                return False
            if await self._identities.flag_serial_reporter(reporter_id, now):
                metrics.inc_serial_reporter_flag(window)
                logger.warning("serial reporter flagged", extra={"identity_id": reporter_id, "window": window})
            return True
        except StoreUnavailable:
            metrics.inc_store_failure("serial_reporter", "open")
            logger.warning("serial reporter check skipped", extra={"identity_id": reporter_id})
            return False

    async def _tripped_window(self, reporter_id: str, now: datetime) -> Optional[str]:
        daily = await self._reports.count_by_reporter(reporter_id, now - timedelta(hours=24))
        if daily > self._config.serial_daily_threshold:
            return "24h"
        weekly = await self._reports.count_by_reporter(reporter_id, now - timedelta(days=7))
        if weekly > self._config.serial_weekly_threshold:
            return "7d"
        return None


class ReportGuard:
    """Decides whether an identity may file reports and tracks rejected ones."""

    def __init__(
        self,
        identities: IdentityRepository,
        reports: ReportRepository,
        config: ReportingConfig,
        monitor: SerialReporterMonitor,
        *,
        listings: Optional[ListingIndex] = None,
        max_write_attempts: int = 5,
    ) -> None:
        self._identities = identities
        self._reports = reports
        self._config = config
        self._monitor = monitor
        self._listings = listings
        self._max_attempts = max_write_attempts

    def check(self, identity: Identity, *, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        if not identity.email_verified:
            raise EmailVerificationRequired()
        eligible_at = identity.created_at + timedelta(hours=self._config.min_account_age_hours)
        if now < eligible_at:
            raise ReportingRestricted(math.ceil((eligible_at - now).total_seconds()))
        state = identity.reporting
        if state.is_restricted(now):
            assert state.rate_limited_until is not None
            raise ReportingRestricted(math.ceil((state.rate_limited_until - now).total_seconds()))

    async def file_report(
        self,
        identity: Identity,
        target_id: str,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReportReceipt:
        now = now or utcnow()
        self.check(identity, now=now)
        if self._listings is not None and await self._listings.owner_of(target_id) == identity.id:
            raise SelfReportRejected()
        if await self._reports.has_reported(identity.id, target_id):
            raise AlreadyReported()
        record = await self._reports.append(
            ReportRecord(reporter_id=identity.id, target_id=target_id, created_at=now, reason=reason)
        )
        reporter_flagged = await self._monitor.observe(identity.id, now=now)
        target_flagged = await self._auto_flag(target_id)
        return ReportReceipt(record=record, reporter_flagged=reporter_flagged, target_flagged=target_flagged)

    async def _auto_flag(self, target_id: str) -> bool:
        """Flag the target once it has collected enough reports."""

        if self._listings is None:
            return False
        count = await self._reports.count_by_target(target_id)
        if count < self._config.auto_flag_threshold:
            return False
        if await self._listings.flag(target_id):
            metrics.inc_listing_auto_flag()
            logger.warning("listing auto-flagged", extra={"target_id": target_id, "reports": count})
        return True

    async def record_rejected_report(self, identity_id: str, *, now: Optional[datetime] = None) -> ReportState:
        """Count a report that moderators dismissed; enough of them pause reporting."""

        now = now or utcnow()
        for _ in range(self._max_attempts):
            identity = await self._identities.get(identity_id)
            if identity is None:
                raise IdentityNotFound()
            previous = identity.reporting
            count = previous.rejected_report_count + 1
            if count >= self._config.false_reports_for_restriction:
                updated = ReportState(0, now + timedelta(hours=self._config.restriction_hours))
            else:
                updated = ReportState(count, previous.rate_limited_until)
            if await self._identities.compare_and_set_reporting(identity_id, previous, updated):
                if updated.rate_limited_until != previous.rate_limited_until:
                    logger.warning(
                        "reporting restricted",
                        extra={"identity_id": identity_id, "until": updated.rate_limited_until},
                    )
                return updated
        raise StoreUnavailable()


class InMemoryReportRepository(ReportRepository):
    def __init__(self) -> None:
        self.records: list[ReportRecord] = []

    async def append(self, record: ReportRecord) -> ReportRecord:
        self.records.append(record)
        return record

    async def has_reported(self, reporter_id: str, target_id: str) -> bool:
        return any(r.reporter_id == reporter_id and r.target_id == target_id for r in self.records)

    async def count_by_target(self, target_id: str) -> int:
        return sum(1 for r in self.records if r.target_id == target_id)

    async def count_by_reporter(self, reporter_id: str, since: datetime) -> int:
        return sum(1 for r in self.records if r.reporter_id == reporter_id and r.created_at >= since)

    async def count_since(self, since: datetime) -> int:
        return sum(1 for r in self.records if r.created_at >= since)


__all__ = [
    "InMemoryReportRepository",
    "ReportGuard",
    "ReportReceipt",
    "ReportRepository",
    "SerialReporterMonitor",
]
