"""Per-identity, per-action quota windows.

Each action carries an ordered list of :class:`RateWindow`; the first window
whose counter goes over its limit denies the request. Counters are plain
atomic increments keyed by the window boundary, so they reset by key expiry
and never need a sweep.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Optional, Protocol, Union
from zoneinfo import ZoneInfo

from railtrust.obs import metrics
from railtrust.trust.domain.engine_config import QuotaBucket, RateLimitConfig, RateWindow
from railtrust.trust.domain.errors import RateLimited, StoreUnavailable
from railtrust.trust.domain.models import ActionType, Identity, utcnow

logger = logging.getLogger(__name__)


class CounterStore(Protocol):
    """Atomic counters with expiry."""

    async def incr(self, key: str, ttl_seconds: int) -> int:
        ...

    async def decr(self, key: str) -> int:
        ...

    async def get(self, key: str) -> Optional[int]:
        ...

    async def set_if_greater(self, key: str, value: int, ttl_seconds: int) -> int:
        ...


class FailPolicy(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class Allow:
    action: ActionType
    remaining: Optional[int]
    charged_keys: tuple[str, ...] = field(default=(), repr=False)
    degraded: bool = False

    allowed = True


@dataclass(frozen=True, slots=True)
class Deny:
    action: ActionType
    retry_after_seconds: int
    window: str

    allowed = False


RateDecision = Union[Allow, Deny]


def quota_bucket(identity: Identity, now: datetime, new_account_days: int) -> QuotaBucket:
    if not identity.email_verified:
        return QuotaBucket.UNVERIFIED
    if identity.account_age(now) < timedelta(days=new_account_days):
        return QuotaBucket.NEW_ACCOUNT
    return QuotaBucket.ESTABLISHED


class RateLimiter:
    """Counts protected actions against the configured window list."""

    def __init__(
        self,
        store: CounterStore,
        config: RateLimitConfig,
        *,
        namespace: str = "rl",
    ) -> None:
        self._store = store
        self._config = config
        self._namespace = namespace
        self._tz = ZoneInfo(config.reset_timezone)

    async def check(
        self,
        identity: Identity,
        action: ActionType,
        *,
        now: Optional[datetime] = None,
        policy: Optional[FailPolicy] = None,
    ) -> RateDecision:
        now = now or utcnow()
        if policy is None:
            policy = FailPolicy.OPEN if self._config.fail_open else FailPolicy.CLOSED
        try:
            decision = await self._check(identity, action, now)
        except StoreUnavailable:
            metrics.inc_store_failure("rate_limit", policy.value)
            if policy is FailPolicy.CLOSED:
                raise
            logger.warning(
                "rate limit store unavailable; allowing",
                extra={"identity_id": identity.id, "action": action.value, "policy": policy.value},
            )
            metrics.inc_rate_limit(action.value, "fail_open")
            return Allow(action=action, remaining=None, degraded=True)
        metrics.inc_rate_limit(action.value, "allow" if decision.allowed else "deny")
        return decision

    async def enforce(
        self,
        identity: Identity,
        action: ActionType,
        *,
        now: Optional[datetime] = None,
        policy: Optional[FailPolicy] = None,
    ) -> Allow:
        decision = await self.check(identity, action, now=now, policy=policy)
        if isinstance(decision, Deny):
            raise RateLimited(decision.retry_after_seconds)
        return decision

    async def release(self, decision: RateDecision) -> None:
        """Refund an allowed action that a later stage rejected."""

        if not isinstance(decision, Allow):
            return
        for key in decision.charged_keys:
            try:
                await self._store.decr(key)
            except StoreUnavailable:
                metrics.inc_store_failure("rate_limit_refund", FailPolicy.OPEN.value)
                logger.warning("rate limit refund failed", extra={"key": key})

    async def _check(self, identity: Identity, action: ActionType, now: datetime) -> RateDecision:
        windows = self._config.windows_for(action)
        if not windows:
            return Allow(action=action, remaining=None)
        now_ts = now.timestamp()
        block_key = f"{self._namespace}:block:{action.value}:{identity.id}"
        blocked_until = await self._store.get(block_key)
        if blocked_until is not None and blocked_until > now_ts:
            return Deny(action=action, retry_after_seconds=max(1, math.ceil(blocked_until - now_ts)), window="block")

        bucket = quota_bucket(identity, now, self._config.new_account_days)
        charged: list[str] = []
        remaining: Optional[int] = None
        for window in windows:
            limit = window.limit_for(bucket)
            key, ttl = self._window_key(window, identity.id, action, now)
            if limit <= 0:
                await self._refund(charged)
                return Deny(action=action, retry_after_seconds=ttl, window=window.name)
            count = await self._store.incr(key, ttl)
            charged.append(key)
            if count > limit:
                await self._refund(charged)
                await self._store.set_if_greater(block_key, math.ceil(now_ts) + ttl, ttl)
                logger.info(
                    "rate limit reached",
                    extra={"identity_id": identity.id, "action": action.value, "window": window.name},
                )
                return Deny(action=action, retry_after_seconds=ttl, window=window.name)
            left = limit - count
            remaining = left if remaining is None else min(remaining, left)
        return Allow(action=action, remaining=remaining, charged_keys=tuple(charged))

    async def _refund(self, keys: list[str]) -> None:
        for key in keys:
            await self._store.decr(key)

    def _window_key(self, window: RateWindow, identity_id: str, action: ActionType, now: datetime) -> tuple[str, int]:
        """Return the counter key for the window containing ``now`` and the seconds until it closes."""

        prefix = f"{self._namespace}:{action.value}:{identity_id}"
        if window.is_daily:
            local = now.astimezone(self._tz)
            next_midnight = datetime.combine(local.date() + timedelta(days=1), time.min, tzinfo=self._tz)
            ttl = max(1, math.ceil((next_midnight - now).total_seconds()))
            return f"{prefix}:d{local.date().isoformat()}", ttl
        seconds = max(1, int(window.seconds or 1))
        now_ts = now.timestamp()
        slot = int(math.floor(now_ts / seconds))
        ttl = max(1, math.ceil((slot + 1) * seconds - now_ts))
        return f"{prefix}:{slot}:{seconds}", ttl


__all__ = [
    "Allow",
    "CounterStore",
    "Deny",
    "FailPolicy",
    "RateDecision",
    "RateLimiter",
    "quota_bucket",
]
