"""Core records shared by the trust engine components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Mapping, Optional


class VerificationType(str, Enum):
    NONE = "none"
    SELLER = "seller"
    CONTRACTOR = "contractor"


class VerificationStatus(str, Enum):
    NONE = "none"
    PENDING_AI = "pending-ai"
    PENDING_ADMIN = "pending-admin"
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class VisibilityTier(str, Enum):
    """Paid placement levels, cheapest first."""

    NONE = "none"
    STANDARD = "standard"
    VERIFIED = "verified"
    FEATURED = "featured"
    PRIORITY = "priority"
    PROFESSIONAL = "professional"


class SubscriptionStatus(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class SellerPlan(str, Enum):
    FREE = "free"
    PLUS = "plus"
    PRO = "pro"


class ActionType(str, Enum):
    INQUIRY = "inquiry"
    LISTING_PUBLISH = "listing_publish"
    CONTRACTOR_PROFILE = "contractor_profile"
    REPORT = "report"
    MESSAGE = "message"
    CONTACT = "contact"


class EntityKind(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    CONTRACTOR = "contractor"
    COMPANY = "company"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class LockoutState:
    """Lockout fields of an identity; the unit of compare-and-set writes."""

    spam_warnings: int = 0
    suspended_until: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        return self.suspended_until is not None and self.suspended_until > now


@dataclass(frozen=True, slots=True)
class ReportState:
    rejected_report_count: int = 0
    rate_limited_until: Optional[datetime] = None

    def is_restricted(self, now: datetime) -> bool:
        return self.rate_limited_until is not None and self.rate_limited_until > now


@dataclass(frozen=True, slots=True)
class Identity:
    """Account snapshot as stored by the surrounding application.

    Seller verification exists twice: the current ``seller_status`` /
    ``seller_expires_at`` pair and the legacy pair kept for accounts that
    predate the split. Only the verification resolver reads these fields.
    """

    id: str
    created_at: datetime
    email_verified: bool = False
    spam_warnings: int = 0
    spam_suspended_until: Optional[datetime] = None
    rejected_report_count: int = 0
    report_rate_limited_until: Optional[datetime] = None
    serial_reporter_flagged: bool = False
    serial_reporter_flagged_at: Optional[datetime] = None
    seller_plan: SellerPlan = SellerPlan.FREE
    seller_status: Optional[str] = None
    seller_expires_at: Optional[datetime] = None
    legacy_seller_status: Optional[str] = None
    legacy_seller_expires_at: Optional[datetime] = None
    contractor_status: Optional[str] = None
    contractor_expires_at: Optional[datetime] = None

    def account_age(self, now: datetime) -> timedelta:
        return now - self.created_at

    @property
    def lockout(self) -> LockoutState:
        return LockoutState(self.spam_warnings, self.spam_suspended_until)

    @property
    def reporting(self) -> ReportState:
        return ReportState(self.rejected_report_count, self.report_rate_limited_until)


@dataclass(frozen=True, slots=True)
class AddOn:
    """A purchased add-on. Active while ``now < expires_at``; no expiry means permanent."""

    name: str
    expires_at: Optional[datetime] = None

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or now < self.expires_at


@dataclass(frozen=True, slots=True)
class EntitySnapshot:
    """A listing or directory profile as seen by the read path."""

    id: str
    owner: Identity
    created_at: datetime
    tier: VisibilityTier = VisibilityTier.NONE
    subscription_status: SubscriptionStatus = SubscriptionStatus.NONE
    visibility_expires_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    add_ons: Mapping[str, AddOn] = field(default_factory=dict)
    base_score: Optional[float] = None
    kind: EntityKind = EntityKind.SELLER


@dataclass(frozen=True, slots=True)
class ReportRecord:
    reporter_id: str
    target_id: str
    created_at: datetime
    reason: Optional[str] = None


__all__ = [
    "ActionType",
    "AddOn",
    "EntityKind",
    "EntitySnapshot",
    "Identity",
    "LockoutState",
    "ReportRecord",
    "ReportState",
    "SellerPlan",
    "SubscriptionStatus",
    "VerificationStatus",
    "VerificationType",
    "VisibilityTier",
    "utcnow",
]
