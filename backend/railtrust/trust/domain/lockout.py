"""Escalating account lockout: NORMAL -> WARNED -> LOCKED -> NORMAL.

The machine is the pure :func:`transition` below. :class:`TrustStateMachine`
only reads the stored state, applies the transition and writes it back with
a compare-and-set, retrying when another request won the race. Leaving the
locked phase is lazy: nothing clears ``suspended_until``, readers compare it
to the clock.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from railtrust.obs import metrics
from railtrust.trust.domain.engine_config import LockoutConfig
from railtrust.trust.domain.errors import IdentityNotFound, StoreUnavailable
from railtrust.trust.domain.identities import IdentityRepository
from railtrust.trust.domain.models import Identity, LockoutState, utcnow

logger = logging.getLogger(__name__)


class LockoutPhase(str, Enum):
    NORMAL = "normal"
    WARNED = "warned"
    LOCKED = "locked"


class ViolationKind(str, Enum):
    CONTENT_BLOCK = "content_block"
    CONFIRMED_SPAM_REPORT = "confirmed_spam_report"


@dataclass(frozen=True)
class LockoutPolicy:
    threshold: int
    lockout: timedelta

    @classmethod
    def from_config(cls, config: LockoutConfig) -> "LockoutPolicy":
        return cls(threshold=config.spam_flag_threshold, lockout=config.lockout)


def phase_of(state: LockoutState, now: datetime) -> LockoutPhase:
    if state.is_locked(now):
        return LockoutPhase.LOCKED
    if state.spam_warnings > 0:
        return LockoutPhase.WARNED
    return LockoutPhase.NORMAL


def transition(state: LockoutState, now: datetime, policy: LockoutPolicy) -> LockoutState:
    """Apply one confirmed violation to ``state``."""

    if state.is_locked(now):
        return state
    warnings = state.spam_warnings + 1
    if warnings >= policy.threshold:
        return LockoutState(spam_warnings=0, suspended_until=now + policy.lockout)
    return LockoutState(spam_warnings=warnings, suspended_until=None)


@dataclass(frozen=True)
class ViolationOutcome:
    identity_id: str
    previous: LockoutState
    current: LockoutState
    phase: LockoutPhase

    @property
    def locked_now(self) -> bool:
        return self.phase is LockoutPhase.LOCKED and self.previous != self.current

    @property
    def locked(self) -> bool:
        return self.phase is LockoutPhase.LOCKED

    def retry_after_seconds(self, now: datetime) -> Optional[int]:
        if not self.current.is_locked(now):
            return None
        assert self.current.suspended_until is not None
        return max(1, math.ceil((self.current.suspended_until - now).total_seconds()))


class TrustStateMachine:
    """Reads and escalates per-account lockout state."""

    def __init__(self, repository: IdentityRepository, config: LockoutConfig) -> None:
        self._repo = repository
        self._policy = LockoutPolicy.from_config(config)
        self._max_attempts = config.max_write_attempts

    def is_locked(self, identity: Identity, *, now: Optional[datetime] = None) -> bool:
        return identity.lockout.is_locked(now or utcnow())

    def phase(self, identity: Identity, *, now: Optional[datetime] = None) -> LockoutPhase:
        return phase_of(identity.lockout, now or utcnow())

    async def record_violation(
        self,
        identity_id: str,
        kind: ViolationKind,
        *,
        now: Optional[datetime] = None,
    ) -> ViolationOutcome:
        now = now or utcnow()
        for _ in range(self._max_attempts):
            identity = await self._repo.get(identity_id)
            if identity is None:
                raise IdentityNotFound()
            previous = identity.lockout
            current = transition(previous, now, self._policy)
            if current == previous:
                return ViolationOutcome(identity_id, previous, current, phase_of(current, now))
            if await self._repo.compare_and_set_lockout(identity_id, previous, current):
                outcome = ViolationOutcome(identity_id, previous, current, phase_of(current, now))
                metrics.inc_violation(kind.value)
                if outcome.locked_now:
                    metrics.inc_lockout()
                    logger.warning(
                        "account locked",
                        extra={
                            "identity_id": identity_id,
                            "violation": kind.value,
                            "suspended_until": current.suspended_until,
                        },
                    )
                else:
                    logger.info(
                        "violation recorded",
                        extra={"identity_id": identity_id, "violation": kind.value, "spam_warnings": current.spam_warnings},
                    )
                return outcome
        logger.error("lockout write contended", extra={"identity_id": identity_id, "attempts": self._max_attempts})
        raise StoreUnavailable()


__all__ = [
    "LockoutPhase",
    "LockoutPolicy",
    "TrustStateMachine",
    "ViolationKind",
    "ViolationOutcome",
    "phase_of",
    "transition",
]
