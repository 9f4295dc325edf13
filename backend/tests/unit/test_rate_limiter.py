import asyncio
from datetime import datetime, timedelta

import pytest

from railtrust.trust.domain.engine_config import EngineConfig, QuotaBucket, RateLimitConfig, RateWindow
from railtrust.trust.domain.errors import RateLimited, StoreUnavailable
from railtrust.trust.domain.models import ActionType, Identity
from railtrust.trust.domain.rate_limiter import Allow, Deny, FailPolicy, RateLimiter, quota_bucket
from railtrust.trust.infra.counter_store import RedisCounterStore


def _identity(now: datetime, *, age: timedelta, verified: bool = True, identity_id: str = "buyer-1") -> Identity:
    return Identity(id=identity_id, created_at=now - age, email_verified=verified)


def _limiter(fake_redis, windows=None) -> RateLimiter:
    config = RateLimitConfig(
        windows=windows or EngineConfig.default().rate_limit.windows,
        reset_timezone="America/Chicago",
        fail_open=True,
    )
    return RateLimiter(RedisCounterStore(fake_redis, timeout_seconds=2.0), config)


class FailingStore:
    async def incr(self, key: str, ttl_seconds: int) -> int:
        raise StoreUnavailable()

    async def decr(self, key: str) -> int:
        raise StoreUnavailable()

    async def get(self, key: str):
        raise StoreUnavailable()

    async def set_if_greater(self, key: str, value: int, ttl_seconds: int) -> int:
        raise StoreUnavailable()


def test_quota_buckets(now) -> None:
    assert quota_bucket(_identity(now, age=timedelta(days=30), verified=False), now, 7) is QuotaBucket.UNVERIFIED
    assert quota_bucket(_identity(now, age=timedelta(hours=2)), now, 7) is QuotaBucket.NEW_ACCOUNT
    assert quota_bucket(_identity(now, age=timedelta(days=7)), now, 7) is QuotaBucket.ESTABLISHED


@pytest.mark.asyncio
async def test_sixth_inquiry_from_new_account_is_denied(fake_redis, now) -> None:
    limiter = _limiter(fake_redis)
    identity = _identity(now, age=timedelta(hours=2))

    for expected_remaining in (4, 3, 2, 1, 0):
        decision = await limiter.check(identity, ActionType.INQUIRY, now=now)
        assert isinstance(decision, Allow)
        assert decision.remaining == expected_remaining

    denied = await limiter.check(identity, ActionType.INQUIRY, now=now)
    assert isinstance(denied, Deny)
    assert denied.window == "daily"
    # Twelve hours to local midnight.
    assert denied.retry_after_seconds == 12 * 3600


@pytest.mark.asyncio
async def test_denied_requests_are_not_counted(fake_redis, now) -> None:
    limiter = _limiter(fake_redis)
    identity = _identity(now, age=timedelta(hours=2))
    for _ in range(8):
        await limiter.check(identity, ActionType.INQUIRY, now=now)

    daily_key = f"rl:inquiry:{identity.id}:d2026-01-15"
    assert await fake_redis.get(daily_key) == "5"


@pytest.mark.asyncio
async def test_retry_after_is_stable_while_blocked(fake_redis, now) -> None:
    limiter = _limiter(fake_redis)
    identity = _identity(now, age=timedelta(hours=2))
    for _ in range(6):
        await limiter.check(identity, ActionType.INQUIRY, now=now)

    later = now + timedelta(hours=1)
    denied = await limiter.check(identity, ActionType.INQUIRY, now=later)
    assert isinstance(denied, Deny)
    assert denied.window == "block"
    assert denied.retry_after_seconds == 11 * 3600


@pytest.mark.asyncio
async def test_concurrent_requests_get_exactly_limit_successes(fake_redis, now) -> None:
    limiter = _limiter(fake_redis)
    identity = _identity(now, age=timedelta(hours=2))

    decisions = await asyncio.gather(*(limiter.check(identity, ActionType.INQUIRY, now=now) for _ in range(8)))

    assert sum(1 for d in decisions if d.allowed) == 5


@pytest.mark.asyncio
async def test_unverified_account_has_no_inquiry_quota(fake_redis, now) -> None:
    limiter = _limiter(fake_redis)
    identity = _identity(now, age=timedelta(days=90), verified=False)

    decision = await limiter.check(identity, ActionType.INQUIRY, now=now)

    assert isinstance(decision, Deny)
    assert decision.window == "daily"
    assert await fake_redis.get(f"rl:inquiry:{identity.id}:d2026-01-15") is None


@pytest.mark.asyncio
async def test_burst_window_trips_first(fake_redis, now) -> None:
    windows = {
        ActionType.MESSAGE: (
            RateWindow("burst_10s", 10, {bucket: 2 for bucket in QuotaBucket}),
            RateWindow("daily", None, {bucket: 100 for bucket in QuotaBucket}),
        )
    }
    limiter = _limiter(fake_redis, windows=windows)
    identity = _identity(now, age=timedelta(days=30))

    await limiter.check(identity, ActionType.MESSAGE, now=now)
    await limiter.check(identity, ActionType.MESSAGE, now=now)
    denied = await limiter.check(identity, ActionType.MESSAGE, now=now)

    assert isinstance(denied, Deny)
    assert denied.window == "burst_10s"
    assert denied.retry_after_seconds == 10


@pytest.mark.asyncio
async def test_release_refunds_charged_windows(fake_redis, now) -> None:
    limiter = _limiter(fake_redis)
    identity = _identity(now, age=timedelta(days=30))

    decision = await limiter.check(identity, ActionType.INQUIRY, now=now)
    assert decision.remaining == 9
    await limiter.release(decision)

    again = await limiter.check(identity, ActionType.INQUIRY, now=now)
    assert again.remaining == 9


@pytest.mark.asyncio
async def test_enforce_raises_rate_limited(fake_redis, now) -> None:
    limiter = _limiter(fake_redis)
    identity = _identity(now, age=timedelta(days=30), verified=False)

    with pytest.raises(RateLimited) as exc:
        await limiter.enforce(identity, ActionType.INQUIRY, now=now)
    assert exc.value.status_code == 429
    assert exc.value.headers()["Retry-After"] == str(12 * 3600)


@pytest.mark.asyncio
async def test_store_failure_fails_open_by_default(now) -> None:
    config = EngineConfig.default().rate_limit
    limiter = RateLimiter(FailingStore(), RateLimitConfig(windows=config.windows, fail_open=True))
    identity = _identity(now, age=timedelta(days=30))

    decision = await limiter.check(identity, ActionType.INQUIRY, now=now)

    assert isinstance(decision, Allow)
    assert decision.degraded
    assert decision.remaining is None


@pytest.mark.asyncio
async def test_store_failure_fails_closed_when_requested(now) -> None:
    config = EngineConfig.default().rate_limit
    limiter = RateLimiter(FailingStore(), RateLimitConfig(windows=config.windows, fail_open=True))
    identity = _identity(now, age=timedelta(days=30))

    with pytest.raises(StoreUnavailable):
        await limiter.check(identity, ActionType.INQUIRY, now=now, policy=FailPolicy.CLOSED)
