from datetime import timedelta

import pytest

from railtrust.trust.domain.engine_config import LockoutConfig
from railtrust.trust.domain.errors import IdentityNotFound
from railtrust.trust.domain.identities import InMemoryIdentityRepository
from railtrust.trust.domain.lockout import (
    LockoutPhase,
    LockoutPolicy,
    TrustStateMachine,
    ViolationKind,
    phase_of,
    transition,
)
from railtrust.trust.domain.models import Identity, LockoutState

POLICY = LockoutPolicy(threshold=3, lockout=timedelta(hours=24))


def test_transition_escalates_then_locks(now) -> None:
    state = LockoutState()
    state = transition(state, now, POLICY)
    assert state == LockoutState(1, None)
    assert phase_of(state, now) is LockoutPhase.WARNED

    state = transition(state, now, POLICY)
    state = transition(state, now, POLICY)
    assert state == LockoutState(0, now + timedelta(hours=24))
    assert phase_of(state, now) is LockoutPhase.LOCKED


def test_violation_while_locked_is_a_noop(now) -> None:
    locked = LockoutState(0, now + timedelta(hours=5))
    assert transition(locked, now + timedelta(hours=1), POLICY) is locked


def test_lockout_expires_lazily(now) -> None:
    locked = LockoutState(0, now + timedelta(hours=24))
    later = now + timedelta(hours=24)
    assert not locked.is_locked(later)
    assert phase_of(locked, later) is LockoutPhase.NORMAL
    assert transition(locked, later, POLICY) == LockoutState(1, None)


@pytest.mark.asyncio
async def test_violation_at_threshold_locks_and_resets_warnings(now) -> None:
    repo = InMemoryIdentityRepository()
    repo.add(Identity(id="seller", created_at=now - timedelta(days=30), spam_warnings=2))
    machine = TrustStateMachine(repo, LockoutConfig(spam_flag_threshold=3, lockout_hours=24))

    outcome = await machine.record_violation("seller", ViolationKind.CONTENT_BLOCK, now=now)

    assert outcome.locked_now
    assert outcome.retry_after_seconds(now) == 24 * 3600
    stored = repo.store["seller"]
    assert stored.spam_warnings == 0
    assert stored.spam_suspended_until == now + timedelta(hours=24)
    assert machine.is_locked(stored, now=now)


@pytest.mark.asyncio
async def test_duplicate_violations_do_not_extend_lockout(now) -> None:
    repo = InMemoryIdentityRepository()
    repo.add(Identity(id="seller", created_at=now - timedelta(days=30), spam_warnings=2))
    machine = TrustStateMachine(repo, LockoutConfig())

    await machine.record_violation("seller", ViolationKind.CONTENT_BLOCK, now=now)
    again = await machine.record_violation(
        "seller", ViolationKind.CONFIRMED_SPAM_REPORT, now=now + timedelta(minutes=10)
    )

    assert again.locked
    assert not again.locked_now
    assert repo.store["seller"].spam_suspended_until == now + timedelta(hours=24)


class RacingRepository(InMemoryIdentityRepository):
    """Loses the first compare-and-set to a concurrent writer."""

    def __init__(self) -> None:
        super().__init__()
        self.raced = False

    async def compare_and_set_lockout(self, identity_id, expected, updated) -> bool:
        if not self.raced:
            self.raced = True
            await super().compare_and_set_lockout(identity_id, expected, LockoutState(expected.spam_warnings + 1, None))
            return False
        return await super().compare_and_set_lockout(identity_id, expected, updated)


@pytest.mark.asyncio
async def test_lost_write_is_retried_from_fresh_state(now) -> None:
    repo = RacingRepository()
    repo.add(Identity(id="seller", created_at=now - timedelta(days=30), spam_warnings=1))
    machine = TrustStateMachine(repo, LockoutConfig())

    outcome = await machine.record_violation("seller", ViolationKind.CONTENT_BLOCK, now=now)

    # The concurrent write took warnings to 2; ours is the third and locks.
    assert outcome.locked_now
    assert repo.store["seller"].spam_warnings == 0


@pytest.mark.asyncio
async def test_unknown_identity_raises(now) -> None:
    machine = TrustStateMachine(InMemoryIdentityRepository(), LockoutConfig())
    with pytest.raises(IdentityNotFound):
        await machine.record_violation("ghost", ViolationKind.CONTENT_BLOCK, now=now)
