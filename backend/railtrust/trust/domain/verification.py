"""Canonical verification state from the redundant stored fields.

Field precedence, highest first:

* contractor record (``contractor_status`` / ``contractor_expires_at``); an
  active, pending or revoked contractor status decides the status even when the
  seller record is active
* current seller record (``seller_status`` / ``seller_expires_at``)
* legacy seller record (``legacy_seller_status`` / ``legacy_seller_expires_at``),
  read only when the current seller field is absent

A stored ``active`` status whose expiry has passed resolves to EXPIRED; the
stored value is never rewritten here.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from railtrust.trust.domain.models import Identity, VerificationStatus, VerificationType, utcnow

_TRUST_LEVEL = {
    VerificationType.NONE: 0,
    VerificationType.SELLER: 1,
    VerificationType.CONTRACTOR: 2,
}

_DISPLAY_PENDING = {
    VerificationStatus.PENDING_AI: "Verification Pending (Document Review)",
    VerificationStatus.PENDING_ADMIN: "Verification Pending (Admin Review)",
    VerificationStatus.EXPIRED: "Verification Expired",
    VerificationStatus.REVOKED: "Verification Revoked",
}


@dataclass(frozen=True, slots=True)
class VerificationResult:
    type: VerificationType
    status: VerificationStatus
    expires_at: Optional[datetime]
    is_expired: bool
    can_sell: bool
    can_contract: bool
    display_name: str


def canonical_status(raw: Optional[str]) -> VerificationStatus:
    if not raw:
        return VerificationStatus.NONE
    try:
        return VerificationStatus(raw.strip().lower().replace("_", "-"))
    except ValueError:
        return VerificationStatus.NONE


def _seller_status(identity: Identity) -> VerificationStatus:
    if identity.seller_status:
        return canonical_status(identity.seller_status)
    return canonical_status(identity.legacy_seller_status)


def _seller_expires_at(identity: Identity) -> Optional[datetime]:
    if identity.seller_expires_at is not None:
        return identity.seller_expires_at
    return identity.legacy_seller_expires_at


def _stored_status(identity: Identity) -> VerificationStatus:
    # A lapsed contractor record says nothing about the seller record.
    contractor = canonical_status(identity.contractor_status)
    if contractor not in (VerificationStatus.NONE, VerificationStatus.EXPIRED):
        return contractor
    return _seller_status(identity)


def verification_type(identity: Identity) -> VerificationType:
    if canonical_status(identity.contractor_status) is VerificationStatus.ACTIVE:
        return VerificationType.CONTRACTOR
    if _seller_status(identity) is VerificationStatus.ACTIVE:
        return VerificationType.SELLER
    return VerificationType.NONE


def verification_expires_at(identity: Identity) -> Optional[datetime]:
    vtype = verification_type(identity)
    if vtype is VerificationType.CONTRACTOR:
        return identity.contractor_expires_at
    if vtype is VerificationType.SELLER:
        return _seller_expires_at(identity)
    return None


def display_name(vtype: VerificationType, status: VerificationStatus) -> str:
    if status is not VerificationStatus.ACTIVE:
        return _DISPLAY_PENDING.get(status, "Not Verified")
    if vtype is VerificationType.CONTRACTOR:
        return "Contractor Verified"
    if vtype is VerificationType.SELLER:
        return "Seller Verified"
    return "Not Verified"


def resolve_verification(identity: Identity, *, now: Optional[datetime] = None) -> VerificationResult:
    now = now or utcnow()
    vtype = verification_type(identity)
    stored = _stored_status(identity)
    expires_at = verification_expires_at(identity)
    is_expired = expires_at is not None and expires_at <= now
    status = VerificationStatus.EXPIRED if is_expired else stored
    active = status is VerificationStatus.ACTIVE
    return VerificationResult(
        type=vtype,
        status=status,
        expires_at=expires_at,
        is_expired=is_expired,
        can_sell=active and vtype in (VerificationType.SELLER, VerificationType.CONTRACTOR),
        can_contract=active and vtype is VerificationType.CONTRACTOR,
        display_name=display_name(vtype, status),
    )


# --- Helpers for account and billing screens --------------------------------


def badge_variant(identity: Identity, *, now: Optional[datetime] = None) -> str:
    result = resolve_verification(identity, now=now)
    if result.is_expired:
        return "expired"
    if result.status in (VerificationStatus.PENDING_AI, VerificationStatus.PENDING_ADMIN):
        return "pending"
    if result.status is not VerificationStatus.ACTIVE:
        return "none"
    return result.type.value if result.type is not VerificationType.NONE else "none"


def days_until_expiration(identity: Identity, *, now: Optional[datetime] = None) -> Optional[int]:
    expires_at = verification_expires_at(identity)
    if expires_at is None:
        return None
    now = now or utcnow()
    return math.floor((expires_at - now).total_seconds() / 86400)


def is_expiring_soon(identity: Identity, *, days: int = 30, now: Optional[datetime] = None) -> bool:
    remaining = days_until_expiration(identity, now=now)
    return remaining is not None and 0 < remaining <= days


def has_verification_level(current: VerificationType, required: VerificationType) -> bool:
    return _TRUST_LEVEL[current] >= _TRUST_LEVEL[required]


def is_already_verified_at(
    identity: Identity,
    target: VerificationType,
    *,
    now: Optional[datetime] = None,
) -> bool:
    if target is VerificationType.NONE:
        return False
    result = resolve_verification(identity, now=now)
    if result.status is not VerificationStatus.ACTIVE:
        return False
    return has_verification_level(result.type, target)


def is_eligible_for_contractor_upgrade(identity: Identity, *, now: Optional[datetime] = None) -> bool:
    result = resolve_verification(identity, now=now)
    return result.type is VerificationType.SELLER and result.status is VerificationStatus.ACTIVE


def recommended_verification_type(
    identity: Identity,
    requested: VerificationType,
    *,
    now: Optional[datetime] = None,
) -> Optional[VerificationType]:
    """Return the verification worth purchasing, or None when ``requested`` is already covered."""

    if is_already_verified_at(identity, requested, now=now):
        return None
    return requested


def purchase_conflict(
    identity: Identity,
    requested: VerificationType,
    *,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """User-facing reason a verification purchase would be redundant, else None."""

    result = resolve_verification(identity, now=now)
    if result.status is not VerificationStatus.ACTIVE:
        return None
    if result.type is VerificationType.CONTRACTOR:
        if requested is VerificationType.SELLER:
            return (
                "You are already Contractor Verified, which includes all Seller features. "
                "No additional verification needed."
            )
        if requested is VerificationType.CONTRACTOR:
            return "You are already Contractor Verified."
    if result.type is VerificationType.SELLER and requested is VerificationType.SELLER:
        return "You are already Seller Verified. Consider upgrading to Contractor Verification for more features."
    return None


__all__ = [
    "VerificationResult",
    "badge_variant",
    "canonical_status",
    "days_until_expiration",
    "display_name",
    "has_verification_level",
    "is_already_verified_at",
    "is_eligible_for_contractor_upgrade",
    "is_expiring_soon",
    "purchase_conflict",
    "recommended_verification_type",
    "resolve_verification",
    "verification_expires_at",
    "verification_type",
]
