"""Hard admission test for search and directory results.

An entity is visible only when all five conditions hold. Each condition is
evaluated on its own every time, so a stale field on one side never lets an
entity through on the strength of another. The gate is read-only: expirations
it discovers come back as :class:`CorrectionSignal` for a writer to persist.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Iterable, Mapping, Optional, Sequence

from railtrust.obs import metrics
from railtrust.trust.domain.engine_config import VisibilityConfig
from railtrust.trust.domain.errors import StoreUnavailable
from railtrust.trust.domain.models import (
    EntityKind,
    EntitySnapshot,
    SubscriptionStatus,
    VerificationStatus,
    VisibilityTier,
    utcnow,
)
from railtrust.trust.domain.verification import resolve_verification, verification_expires_at

logger = logging.getLogger(__name__)


class VisibilityCondition(str, Enum):
    VERIFICATION_ACTIVE = "verification_active"
    TIER_PAID = "tier_paid"
    SUBSCRIPTION_ACTIVE = "subscription_active"
    VISIBILITY_UNEXPIRED = "visibility_unexpired"
    VERIFICATION_UNEXPIRED = "verification_unexpired"


@dataclass(frozen=True, slots=True)
class CorrectionSignal:
    entity_id: str
    field: str
    expired_at: datetime


@dataclass(frozen=True, slots=True)
class VisibilityDecision:
    entity_id: str
    visible: bool
    failed: tuple[VisibilityCondition, ...] = ()
    corrections: tuple[CorrectionSignal, ...] = ()


@dataclass(frozen=True, slots=True)
class MapVisibility:
    visible: bool
    reason: str
    marker: Optional[str] = None


class VisibilityGate:
    def __init__(self, config: VisibilityConfig, *, add_on_aliases: Optional[Mapping[str, str]] = None) -> None:
        self._config = config
        self._aliases = dict(add_on_aliases or {})

    def explain(self, entity: EntitySnapshot, *, now: Optional[datetime] = None) -> VisibilityDecision:
        now = now or utcnow()
        failed: list[VisibilityCondition] = []
        corrections: list[CorrectionSignal] = []

        verification = resolve_verification(entity.owner, now=now)
        if verification.status is not VerificationStatus.ACTIVE:
            failed.append(VisibilityCondition.VERIFICATION_ACTIVE)
        if entity.tier is VisibilityTier.NONE:
            failed.append(VisibilityCondition.TIER_PAID)
        if entity.subscription_status is not SubscriptionStatus.ACTIVE:
            failed.append(VisibilityCondition.SUBSCRIPTION_ACTIVE)
        if entity.visibility_expires_at is not None and entity.visibility_expires_at <= now:
            failed.append(VisibilityCondition.VISIBILITY_UNEXPIRED)
            corrections.append(CorrectionSignal(entity.id, "visibility_expires_at", entity.visibility_expires_at))
        verification_expiry = verification_expires_at(entity.owner)
        if verification_expiry is not None and verification_expiry <= now:
            failed.append(VisibilityCondition.VERIFICATION_UNEXPIRED)
            corrections.append(CorrectionSignal(entity.owner.id, "verification_expires_at", verification_expiry))
        for add_on in entity.add_ons.values():
            if not add_on.is_active(now):
                assert add_on.expires_at is not None
                corrections.append(CorrectionSignal(entity.id, f"add_on:{add_on.name}", add_on.expires_at))

        return VisibilityDecision(
            entity_id=entity.id,
            visible=not failed,
            failed=tuple(failed),
            corrections=tuple(corrections),
        )

    def is_visible(self, entity: EntitySnapshot, *, now: Optional[datetime] = None) -> bool:
        return self.explain(entity, now=now).visible

    def filter_visible(
        self,
        entities: Iterable[EntitySnapshot],
        *,
        now: Optional[datetime] = None,
    ) -> list[EntitySnapshot]:
        now = now or utcnow()
        admitted: list[EntitySnapshot] = []
        for entity in entities:
            decision = self.explain(entity, now=now)
            if decision.visible:
                admitted.append(entity)
                continue
            for condition in decision.failed:
                metrics.inc_visibility_exclusion(condition.value)
        return admitted

    async def admit(
        self,
        load: Callable[[], Awaitable[Sequence[EntitySnapshot]]],
        *,
        now: Optional[datetime] = None,
    ) -> list[EntitySnapshot]:
        """Load candidates and gate them; a store failure yields an empty result."""

        try:
            entities = await load()
        except StoreUnavailable:
            metrics.inc_store_failure("visibility", "closed")
            logger.warning("visibility candidates unavailable; excluding all")
            return []
        return self.filter_visible(entities, now=now)

    def _has_active_add_on(self, entity: EntitySnapshot, name: str, now: datetime) -> bool:
        for key, add_on in entity.add_ons.items():
            canonical = self._aliases.get(key.lower(), key.lower())
            if canonical == name and add_on.is_active(now):
                return True
        return False

    def map_visibility(self, entity: EntitySnapshot, *, now: Optional[datetime] = None) -> MapVisibility:
        now = now or utcnow()
        if entity.kind is EntityKind.BUYER:
            return MapVisibility(False, "Buyers are not shown on the map. Map is for professional discovery only.")
        if entity.kind is EntityKind.SELLER:
            if not self._has_active_add_on(entity, self._config.map_add_on, now):
                return MapVisibility(
                    False,
                    "Map visibility is available with Elite Placement. Sellers without Elite are not shown.",
                )
            return MapVisibility(True, "Elite Placement active. Seller is visible on map.", "elite")
        if not self.is_visible(entity, now=now):
            return MapVisibility(False, "Contractor/Company must be verified and active to appear on map.")
        if entity.tier not in self._config.map_tiers:
            return MapVisibility(False, "Map visibility requires Professional Marketplace Access.")
        return MapVisibility(True, "Professional Plan active. Contractor/company is visible on map.", "professional")


__all__ = [
    "CorrectionSignal",
    "MapVisibility",
    "VisibilityCondition",
    "VisibilityDecision",
    "VisibilityGate",
]
