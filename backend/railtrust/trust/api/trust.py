"""Trust & visibility endpoints consumed by the marketplace application."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from railtrust.api.ops import require_admin
from railtrust.obs.logging import bind_context, reset_context
from railtrust.trust.api._errors import to_http_error
from railtrust.trust.api.schemas import (
    AbuseSignalsOut,
    ActionIn,
    ClearanceOut,
    ContentIn,
    EntityIn,
    FindingOut,
    IdentityIn,
    LockStatusOut,
    RankedOut,
    RankIn,
    RankOut,
    RejectedReportOut,
    ReportIn,
    ReportOut,
    VerificationOut,
    ViolationIn,
    ViolationOut,
    VisibilityOut,
)
from railtrust.trust.domain import container, verification
from railtrust.trust.domain.abuse_signals import evaluate_content
from railtrust.trust.domain.errors import TrustEngineError
from railtrust.trust.domain.gate import ProtectedActionGate
from railtrust.trust.domain.identities import IdentityRepository
from railtrust.trust.domain.lockout import TrustStateMachine
from railtrust.trust.domain.models import ActionType, EntitySnapshot, utcnow
from railtrust.trust.domain.ranking import RankingComposer
from railtrust.trust.domain.reporting import ReportGuard
from railtrust.trust.domain.signals_summary import collect_abuse_signals
from railtrust.trust.domain.visibility import VisibilityGate

router = APIRouter(prefix="/api/trust/v1", tags=["trust"])


def get_action_gate_dep() -> ProtectedActionGate:
    return container.get_action_gate()


def get_identity_repository_dep() -> IdentityRepository:
    return container.get_identity_repository()


def get_state_machine_dep() -> TrustStateMachine:
    return container.get_state_machine()


def get_report_guard_dep() -> ReportGuard:
    return container.get_report_guard()


def get_visibility_gate_dep() -> VisibilityGate:
    return container.get_visibility_gate()


def get_ranking_dep() -> RankingComposer:
    return container.get_ranking_composer()


@router.post("/actions/{action}", response_model=ClearanceOut)
async def enforce_action(
    action: ActionType,
    body: ActionIn,
    gate: ProtectedActionGate = Depends(get_action_gate_dep),
) -> ClearanceOut:
    try:
        clearance = await gate.enforce(
            body.identity_id,
            action,
            text=body.text,
            title=body.title,
            image_urls=body.image_urls,
        )
    except TrustEngineError as exc:
        raise to_http_error(exc) from exc
    return ClearanceOut.from_clearance(clearance)


@router.post("/content/evaluate", response_model=FindingOut)
async def evaluate(body: ContentIn) -> FindingOut:
    finding = evaluate_content(body.to_domain(), container.get_config().content)
    return FindingOut.from_finding(finding)


@router.get("/identities/{identity_id}/lock", response_model=LockStatusOut)
async def lock_status(
    identity_id: str,
    identities: IdentityRepository = Depends(get_identity_repository_dep),
    machine: TrustStateMachine = Depends(get_state_machine_dep),
) -> LockStatusOut:
    identity = await identities.get(identity_id)
    if identity is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="identity_not_found")
    now = utcnow()
    locked = machine.is_locked(identity, now=now)
    return LockStatusOut(
        identity_id=identity.id,
        locked=locked,
        phase=machine.phase(identity, now=now),
        spam_warnings=identity.spam_warnings,
        suspended_until=identity.spam_suspended_until if locked else None,
    )


@router.post(
    "/identities/{identity_id}/violations",
    response_model=ViolationOut,
    dependencies=[Depends(require_admin)],
)
async def record_violation(
    identity_id: str,
    body: ViolationIn,
    machine: TrustStateMachine = Depends(get_state_machine_dep),
) -> ViolationOut:
    try:
        outcome = await machine.record_violation(identity_id, body.kind)
    except TrustEngineError as exc:
        raise to_http_error(exc) from exc
    return ViolationOut.from_outcome(outcome)


@router.post(
    "/identities/{identity_id}/reports/rejected",
    response_model=RejectedReportOut,
    dependencies=[Depends(require_admin)],
)
async def reject_report(
    identity_id: str,
    guard: ReportGuard = Depends(get_report_guard_dep),
) -> RejectedReportOut:
    try:
        state = await guard.record_rejected_report(identity_id)
    except TrustEngineError as exc:
        raise to_http_error(exc) from exc
    return RejectedReportOut.from_state(identity_id, state)


@router.post("/reports", response_model=ReportOut, status_code=status.HTTP_201_CREATED)
async def file_report(
    body: ReportIn,
    gate: ProtectedActionGate = Depends(get_action_gate_dep),
    guard: ReportGuard = Depends(get_report_guard_dep),
    identities: IdentityRepository = Depends(get_identity_repository_dep),
) -> ReportOut:
    tokens = bind_context(identity_id=body.reporter_id)
    try:
        await gate.enforce(body.reporter_id, ActionType.REPORT, text=body.reason or "")
        reporter = await identities.get(body.reporter_id)
        if reporter is None:
            raise HTTPException(status.HTTP_404_NOT_FOUND, detail="identity_not_found")
        receipt = await guard.file_report(reporter, body.target_id, reason=body.reason)
    except TrustEngineError as exc:
        raise to_http_error(exc) from exc
    finally:
        reset_context(tokens)
    return ReportOut(
        reporter_id=receipt.record.reporter_id,
        target_id=receipt.record.target_id,
        created_at=receipt.record.created_at,
        target_flagged=receipt.target_flagged,
    )


@router.post("/verification/resolve", response_model=VerificationOut)
async def resolve(body: IdentityIn) -> VerificationOut:
    identity = body.to_domain()
    now = utcnow()
    days = container.get_config().visibility.expiring_soon_days
    return VerificationOut.from_result(
        verification.resolve_verification(identity, now=now),
        badge=verification.badge_variant(identity, now=now),
        days_until_expiration=verification.days_until_expiration(identity, now=now),
        expiring_soon=verification.is_expiring_soon(identity, days=days, now=now),
    )


@router.post("/visibility/check", response_model=VisibilityOut)
async def check_visibility(
    body: EntityIn,
    gate: VisibilityGate = Depends(get_visibility_gate_dep),
) -> VisibilityOut:
    entity = body.to_domain()
    now = utcnow()
    return VisibilityOut.from_decision(gate.explain(entity, now=now), gate.map_visibility(entity, now=now))


@router.post("/search/rank", response_model=RankOut)
async def rank(
    body: RankIn,
    gate: VisibilityGate = Depends(get_visibility_gate_dep),
    composer: RankingComposer = Depends(get_ranking_dep),
) -> RankOut:
    now = utcnow()

    async def _load() -> list[EntitySnapshot]:
        return [item.to_domain() for item in body.entities]

    admitted = await gate.admit(_load, now=now)
    ranked = composer.rank_scored(admitted, now=now)
    return RankOut(
        items=[RankedOut.from_ranked(item) for item in ranked],
        excluded=len(body.entities) - len(admitted),
    )


@router.get("/admin/abuse-signals", response_model=AbuseSignalsOut, dependencies=[Depends(require_admin)])
async def abuse_signals() -> AbuseSignalsOut:
    summary = await collect_abuse_signals(
        container.get_identity_repository(),
        container.get_report_repository(),
        container.get_listing_index(),
    )
    return AbuseSignalsOut.from_summary(summary)
