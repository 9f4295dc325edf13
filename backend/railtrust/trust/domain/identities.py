"""Identity storage contract used by the lockout and reporting paths."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Optional, Protocol

from railtrust.trust.domain.models import Identity, LockoutState, ReportState


class IdentityRepository(Protocol):
    async def get(self, identity_id: str) -> Optional[Identity]:
        ...

    async def compare_and_set_lockout(
        self,
        identity_id: str,
        expected: LockoutState,
        updated: LockoutState,
    ) -> bool:
        """Write ``updated`` only if the stored lockout fields still equal ``expected``."""
        ...

    async def compare_and_set_reporting(
        self,
        identity_id: str,
        expected: ReportState,
        updated: ReportState,
    ) -> bool:
        ...

    async def flag_serial_reporter(self, identity_id: str, flagged_at: datetime) -> bool:
        """Set the serial-reporter flag; True only when it was not already set."""
        ...

    async def count_locked(self, now: datetime) -> int:
        ...

    async def count_serial_reporters(self) -> int:
        ...

    async def count_report_restricted(self, now: datetime) -> int:
        ...

    async def count_high_warnings(self, min_warnings: int) -> int:
        ...


class InMemoryIdentityRepository(IdentityRepository):
    """Dict-backed repository; each compare-and-set runs without yielding."""

    def __init__(self) -> None:
        self.store: dict[str, Identity] = {}

    def add(self, identity: Identity) -> Identity:
        self.store[identity.id] = identity
        return identity

    async def get(self, identity_id: str) -> Optional[Identity]:
        return self.store.get(identity_id)

    async def compare_and_set_lockout(
        self,
        identity_id: str,
        expected: LockoutState,
        updated: LockoutState,
    ) -> bool:
        current = self.store.get(identity_id)
        if current is None or current.lockout != expected:
            return False
        self.store[identity_id] = replace(
            current,
            spam_warnings=updated.spam_warnings,
            spam_suspended_until=updated.suspended_until,
        )
        return True

    async def compare_and_set_reporting(
        self,
        identity_id: str,
        expected: ReportState,
        updated: ReportState,
    ) -> bool:
        current = self.store.get(identity_id)
        if current is None or current.reporting != expected:
            return False
        self.store[identity_id] = replace(
            current,
            rejected_report_count=updated.rejected_report_count,
            report_rate_limited_until=updated.rate_limited_until,
        )
        return True

    async def flag_serial_reporter(self, identity_id: str, flagged_at: datetime) -> bool:
        current = self.store.get(identity_id)
        if current is None or current.serial_reporter_flagged:
            return False
        self.store[identity_id] = replace(
            current,
            serial_reporter_flagged=True,
            serial_reporter_flagged_at=flagged_at,
        )
        return True

    async def count_locked(self, now: datetime) -> int:
        return sum(1 for identity in self.store.values() if identity.lockout.is_locked(now))

    async def count_serial_reporters(self) -> int:
        return sum(1 for identity in self.store.values() if identity.serial_reporter_flagged)

    async def count_report_restricted(self, now: datetime) -> int:
        return sum(1 for identity in self.store.values() if identity.reporting.is_restricted(now))

    async def count_high_warnings(self, min_warnings: int) -> int:
        return sum(1 for identity in self.store.values() if identity.spam_warnings >= min_warnings)


__all__ = ["IdentityRepository", "InMemoryIdentityRepository"]
