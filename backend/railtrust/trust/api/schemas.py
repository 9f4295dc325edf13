"""Request and response models for the trust API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import AwareDatetime, BaseModel, Field

from railtrust.trust.domain.abuse_signals import ContentPayload, ModerationFinding
from railtrust.trust.domain.gate import Clearance
from railtrust.trust.domain.lockout import LockoutPhase, ViolationKind, ViolationOutcome
from railtrust.trust.domain.models import (
    ActionType,
    AddOn,
    EntityKind,
    EntitySnapshot,
    Identity,
    ReportState,
    SellerPlan,
    SubscriptionStatus,
    VerificationStatus,
    VerificationType,
    VisibilityTier,
)
from railtrust.trust.domain.ranking import RankedEntity
from railtrust.trust.domain.signals_summary import AbuseSignalSummary
from railtrust.trust.domain.verification import VerificationResult
from railtrust.trust.domain.visibility import MapVisibility, VisibilityDecision


class IdentityIn(BaseModel):
    id: str
    created_at: AwareDatetime
    email_verified: bool = False
    spam_warnings: int = Field(0, ge=0)
    spam_suspended_until: Optional[AwareDatetime] = None
    seller_plan: SellerPlan = SellerPlan.FREE
    seller_status: Optional[str] = None
    seller_expires_at: Optional[AwareDatetime] = None
    legacy_seller_status: Optional[str] = None
    legacy_seller_expires_at: Optional[AwareDatetime] = None
    contractor_status: Optional[str] = None
    contractor_expires_at: Optional[AwareDatetime] = None

    def to_domain(self) -> Identity:
        return Identity(**self.model_dump())


class AddOnIn(BaseModel):
    expires_at: Optional[AwareDatetime] = None


class EntityIn(BaseModel):
    id: str
    owner: IdentityIn
    created_at: AwareDatetime
    tier: VisibilityTier = VisibilityTier.NONE
    subscription_status: SubscriptionStatus = SubscriptionStatus.NONE
    visibility_expires_at: Optional[AwareDatetime] = None
    expires_at: Optional[AwareDatetime] = None
    add_ons: dict[str, AddOnIn] = Field(default_factory=dict)
    base_score: Optional[float] = None
    kind: EntityKind = EntityKind.SELLER

    def to_domain(self) -> EntitySnapshot:
        return EntitySnapshot(
            id=self.id,
            owner=self.owner.to_domain(),
            created_at=self.created_at,
            tier=self.tier,
            subscription_status=self.subscription_status,
            visibility_expires_at=self.visibility_expires_at,
            expires_at=self.expires_at,
            add_ons={name: AddOn(name=name, expires_at=item.expires_at) for name, item in self.add_ons.items()},
            base_score=self.base_score,
            kind=self.kind,
        )


class ActionIn(BaseModel):
    identity_id: str
    text: str = Field("", max_length=20000)
    title: Optional[str] = Field(None, max_length=500)
    image_urls: list[str] = Field(default_factory=list, max_length=50)


class ClearanceOut(BaseModel):
    identity_id: str
    action: ActionType
    remaining: Optional[int]
    soft_flags: list[str]

    @classmethod
    def from_clearance(cls, clearance: Clearance) -> "ClearanceOut":
        return cls(
            identity_id=clearance.identity_id,
            action=clearance.action,
            remaining=clearance.remaining,
            soft_flags=list(clearance.soft_flags),
        )


class ContentIn(BaseModel):
    action: ActionType
    author_id: str
    text: str = Field("", max_length=20000)
    title: Optional[str] = Field(None, max_length=500)
    image_urls: list[str] = Field(default_factory=list)
    seller_active_titles: list[str] = Field(default_factory=list)
    foreign_image_hashes: list[str] = Field(default_factory=list)

    def to_domain(self) -> ContentPayload:
        return ContentPayload(
            action=self.action,
            author_id=self.author_id,
            text=self.text,
            title=self.title,
            image_urls=tuple(self.image_urls),
            seller_active_titles=tuple(self.seller_active_titles),
            foreign_image_hashes=frozenset(self.foreign_image_hashes),
        )


class FindingOut(BaseModel):
    blocked: bool
    reason: Optional[str]
    category: Optional[str]
    triggered_rules: list[str]
    soft_flags: list[str]
    violation: bool

    @classmethod
    def from_finding(cls, finding: ModerationFinding) -> "FindingOut":
        return cls(
            blocked=finding.blocked,
            reason=finding.reason,
            category=finding.category,
            triggered_rules=list(finding.triggered_rules),
            soft_flags=list(finding.soft_flags),
            violation=finding.violation,
        )


class LockStatusOut(BaseModel):
    identity_id: str
    locked: bool
    phase: LockoutPhase
    spam_warnings: int
    suspended_until: Optional[datetime]


class ViolationIn(BaseModel):
    kind: ViolationKind = ViolationKind.CONFIRMED_SPAM_REPORT


class ViolationOut(BaseModel):
    identity_id: str
    phase: LockoutPhase
    spam_warnings: int
    suspended_until: Optional[datetime]
    locked_now: bool

    @classmethod
    def from_outcome(cls, outcome: ViolationOutcome) -> "ViolationOut":
        return cls(
            identity_id=outcome.identity_id,
            phase=outcome.phase,
            spam_warnings=outcome.current.spam_warnings,
            suspended_until=outcome.current.suspended_until,
            locked_now=outcome.locked_now,
        )


class ReportIn(BaseModel):
    reporter_id: str
    target_id: str
    reason: Optional[str] = Field(None, max_length=2000)


class ReportOut(BaseModel):
    reporter_id: str
    target_id: str
    created_at: datetime
    target_flagged: bool = False


class RejectedReportOut(BaseModel):
    identity_id: str
    rejected_report_count: int
    rate_limited_until: Optional[datetime]

    @classmethod
    def from_state(cls, identity_id: str, state: ReportState) -> "RejectedReportOut":
        return cls(
            identity_id=identity_id,
            rejected_report_count=state.rejected_report_count,
            rate_limited_until=state.rate_limited_until,
        )


class VerificationOut(BaseModel):
    type: VerificationType
    status: VerificationStatus
    expires_at: Optional[datetime]
    is_expired: bool
    can_sell: bool
    can_contract: bool
    display_name: str
    badge: str
    days_until_expiration: Optional[int]
    expiring_soon: bool

    @classmethod
    def from_result(
        cls,
        result: VerificationResult,
        *,
        badge: str,
        days_until_expiration: Optional[int],
        expiring_soon: bool,
    ) -> "VerificationOut":
        return cls(
            type=result.type,
            status=result.status,
            expires_at=result.expires_at,
            is_expired=result.is_expired,
            can_sell=result.can_sell,
            can_contract=result.can_contract,
            display_name=result.display_name,
            badge=badge,
            days_until_expiration=days_until_expiration,
            expiring_soon=expiring_soon,
        )


class CorrectionOut(BaseModel):
    entity_id: str
    field: str
    expired_at: datetime


class MapVisibilityOut(BaseModel):
    visible: bool
    reason: str
    marker: Optional[str]

    @classmethod
    def from_map(cls, result: MapVisibility) -> "MapVisibilityOut":
        return cls(visible=result.visible, reason=result.reason, marker=result.marker)


class VisibilityOut(BaseModel):
    entity_id: str
    visible: bool
    failed: list[str]
    corrections: list[CorrectionOut]
    map: MapVisibilityOut

    @classmethod
    def from_decision(cls, decision: VisibilityDecision, map_result: MapVisibility) -> "VisibilityOut":
        return cls(
            entity_id=decision.entity_id,
            visible=decision.visible,
            failed=[condition.value for condition in decision.failed],
            corrections=[
                CorrectionOut(entity_id=c.entity_id, field=c.field, expired_at=c.expired_at)
                for c in decision.corrections
            ],
            map=MapVisibilityOut.from_map(map_result),
        )


class RankIn(BaseModel):
    entities: list[EntityIn] = Field(default_factory=list, max_length=500)


class RankedOut(BaseModel):
    id: str
    score: float

    @classmethod
    def from_ranked(cls, ranked: RankedEntity) -> "RankedOut":
        return cls(id=ranked.entity.id, score=ranked.score)


class RankOut(BaseModel):
    items: list[RankedOut]
    excluded: int


class AbuseSignalsOut(BaseModel):
    severity: int
    level: str
    requires_attention: bool
    locked_accounts: int
    serial_reporters: int
    flagged_listings: int
    pending_reports: int
    high_warning_accounts: int
    report_restricted: int
    reports_24h: int
    reports_7d: int

    @classmethod
    def from_summary(cls, summary: AbuseSignalSummary) -> "AbuseSignalsOut":
        counts = summary.counts
        return cls(
            severity=summary.severity,
            level=summary.level,
            requires_attention=summary.requires_attention,
            locked_accounts=counts.locked_accounts,
            serial_reporters=counts.serial_reporters,
            flagged_listings=counts.flagged_listings,
            pending_reports=counts.pending_reports,
            high_warning_accounts=counts.high_warning_accounts,
            report_restricted=counts.report_restricted,
            reports_24h=counts.reports_24h,
            reports_7d=counts.reports_7d,
        )
