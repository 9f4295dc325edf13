"""Admin roll-up of abuse signals across the marketplace."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from railtrust.trust.domain.identities import IdentityRepository
from railtrust.trust.domain.listings import ListingIndex
from railtrust.trust.domain.models import utcnow
from railtrust.trust.domain.reporting import ReportRepository

HIGH_SEVERITY = 50
MEDIUM_SEVERITY = 20
HIGH_WARNING_MIN = 2


@dataclass(frozen=True, slots=True)
class AbuseSignalCounts:
    locked_accounts: int = 0
    serial_reporters: int = 0
    flagged_listings: int = 0
    pending_reports: int = 0
    high_warning_accounts: int = 0
    report_restricted: int = 0
    reports_24h: int = 0
    reports_7d: int = 0


@dataclass(frozen=True, slots=True)
class AbuseSignalSummary:
    counts: AbuseSignalCounts
    severity: int
    level: str
    requires_attention: bool


def summarize_abuse_signals(counts: AbuseSignalCounts) -> AbuseSignalSummary:
    severity = min(
        100,
        counts.locked_accounts * 5
        + counts.serial_reporters * 10
        + counts.flagged_listings * 3
        + counts.pending_reports * 2
        + counts.high_warning_accounts * 5,
    )
    if severity >= HIGH_SEVERITY:
        level = "high"
    elif severity >= MEDIUM_SEVERITY:
        level = "medium"
    else:
        level = "low"
    return AbuseSignalSummary(
        counts=counts,
        severity=severity,
        level=level,
        requires_attention=severity >= MEDIUM_SEVERITY,
    )


async def collect_abuse_signals(
    identities: IdentityRepository,
    reports: ReportRepository,
    listings: ListingIndex,
    *,
    now: Optional[datetime] = None,
) -> AbuseSignalSummary:
    """Gather counts from the repositories and summarize them.

    Reports filed in the last 24 hours stand in for the triage queue.
    """

    now = now or utcnow()
    reports_24h = await reports.count_since(now - timedelta(hours=24))
    counts = AbuseSignalCounts(
        locked_accounts=await identities.count_locked(now),
        serial_reporters=await identities.count_serial_reporters(),
        flagged_listings=await listings.count_flagged(),
        pending_reports=reports_24h,
        high_warning_accounts=await identities.count_high_warnings(HIGH_WARNING_MIN),
        report_restricted=await identities.count_report_restricted(now),
        reports_24h=reports_24h,
        reports_7d=await reports.count_since(now - timedelta(days=7)),
    )
    return summarize_abuse_signals(counts)


__all__ = ["AbuseSignalCounts", "AbuseSignalSummary", "collect_abuse_signals", "summarize_abuse_signals"]
