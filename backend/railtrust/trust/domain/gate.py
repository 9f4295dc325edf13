"""Write-path pipeline run before any protected action is persisted.

Stages, in order: rate limit, lockout read-check, capability requirement,
content evaluation, and on a violating block the lockout escalation. Any
rejection after the rate limiter refunds the counters it charged, so only
actions that go through are counted against the identity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from railtrust.obs import metrics
from railtrust.obs.logging import bind_context, reset_context
from railtrust.trust.domain.abuse_signals import ContentPayload, ModerationFinding, evaluate_content, image_hashes
from railtrust.trust.domain.engine_config import ContentConfig
from railtrust.trust.domain.errors import (
    AccountLocked,
    ContentRejected,
    IdentityNotFound,
    TrustEngineError,
    VerificationRequired,
)
from railtrust.trust.domain.identities import IdentityRepository
from railtrust.trust.domain.listings import ListingIndex
from railtrust.trust.domain.lockout import TrustStateMachine, ViolationKind
from railtrust.trust.domain.models import ActionType, Identity, VerificationType, utcnow
from railtrust.trust.domain.rate_limiter import FailPolicy, RateLimiter
from railtrust.trust.domain.reporting import ReportGuard
from railtrust.trust.domain.verification import resolve_verification

logger = logging.getLogger(__name__)

REMEDIATION = {
    VerificationType.SELLER: "/verification/seller",
    VerificationType.CONTRACTOR: "/verification/contractor",
}


@dataclass(frozen=True)
class Clearance:
    identity_id: str
    action: ActionType
    remaining: Optional[int]
    soft_flags: tuple[str, ...] = ()
    degraded: bool = False


class ProtectedActionGate:
    def __init__(
        self,
        identities: IdentityRepository,
        rate_limiter: RateLimiter,
        state_machine: TrustStateMachine,
        listings: ListingIndex,
        report_guard: ReportGuard,
        content_config: ContentConfig,
    ) -> None:
        self._identities = identities
        self._rate_limiter = rate_limiter
        self._state_machine = state_machine
        self._listings = listings
        self._report_guard = report_guard
        self._content_config = content_config

    async def enforce(
        self,
        identity_id: str,
        action: ActionType,
        *,
        text: str = "",
        title: Optional[str] = None,
        image_urls: Sequence[str] = (),
        now: Optional[datetime] = None,
        policy: Optional[FailPolicy] = None,
    ) -> Clearance:
        tokens = bind_context(identity_id=identity_id)
        try:
            return await self._enforce(identity_id, action, text, title, tuple(image_urls), now or utcnow(), policy)
        finally:
            reset_context(tokens)

    async def _enforce(
        self,
        identity_id: str,
        action: ActionType,
        text: str,
        title: Optional[str],
        image_urls: tuple[str, ...],
        now: datetime,
        policy: Optional[FailPolicy],
    ) -> Clearance:
        identity = await self._identities.get(identity_id)
        if identity is None:
            raise IdentityNotFound()

        decision = await self._rate_limiter.enforce(identity, action, now=now, policy=policy)
        try:
            if self._state_machine.is_locked(identity, now=now):
                raise AccountLocked(_seconds_until(identity.spam_suspended_until, now))
            self._require_capability(identity, action, now)
            payload = await self._build_payload(identity, action, text, title, image_urls)
            finding = evaluate_content(payload, self._content_config)
            self._observe(identity, action, finding)
            if finding.blocked:
                if finding.violation:
                    outcome = await self._state_machine.record_violation(
                        identity.id, ViolationKind.CONTENT_BLOCK, now=now
                    )
                    if outcome.locked:
                        raise AccountLocked(outcome.retry_after_seconds(now))
                raise ContentRejected(finding.category or "content", finding.reason)
        except TrustEngineError:
            await self._rate_limiter.release(decision)
            raise

        return Clearance(
            identity_id=identity.id,
            action=action,
            remaining=decision.remaining,
            soft_flags=finding.soft_flags,
            degraded=decision.degraded,
        )

    def _require_capability(self, identity: Identity, action: ActionType, now: datetime) -> None:
        if action is ActionType.REPORT:
            self._report_guard.check(identity, now=now)
            return
        if action is ActionType.LISTING_PUBLISH:
            if not resolve_verification(identity, now=now).can_sell:
                raise VerificationRequired(VerificationType.SELLER.value, REMEDIATION[VerificationType.SELLER])
        elif action is ActionType.CONTRACTOR_PROFILE:
            if not resolve_verification(identity, now=now).can_contract:
                raise VerificationRequired(
                    VerificationType.CONTRACTOR.value, REMEDIATION[VerificationType.CONTRACTOR]
                )

    async def _build_payload(
        self,
        identity: Identity,
        action: ActionType,
        text: str,
        title: Optional[str],
        image_urls: tuple[str, ...],
    ) -> ContentPayload:
        titles: tuple[str, ...] = ()
        if title and action is ActionType.LISTING_PUBLISH:
            titles = tuple(await self._listings.active_titles(identity.id))
        foreign: frozenset[str] = frozenset()
        if image_urls:
            foreign = frozenset(await self._listings.foreign_image_hashes(image_hashes(image_urls), identity.id))
        return ContentPayload(
            action=action,
            author_id=identity.id,
            text=text,
            title=title,
            image_urls=image_urls,
            seller_active_titles=titles,
            foreign_image_hashes=foreign,
        )

    def _observe(self, identity: Identity, action: ActionType, finding: ModerationFinding) -> None:
        if not finding.triggered_rules and not finding.soft_flags:
            return
        for rule in finding.triggered_rules:
            metrics.inc_content_finding(rule, "block")
        for flag in finding.soft_flags:
            metrics.inc_content_finding(flag, "flag")
        logger.info(
            "content finding",
            extra={
                "identity_id": identity.id,
                "action": action.value,
                "blocked": finding.blocked,
                "rules": list(finding.triggered_rules),
                "soft_flags": list(finding.soft_flags),
            },
        )


def _seconds_until(moment: Optional[datetime], now: datetime) -> Optional[int]:
    if moment is None:
        return None
    return max(1, int((moment - now).total_seconds()))


__all__ = ["Clearance", "ProtectedActionGate", "REMEDIATION"]
