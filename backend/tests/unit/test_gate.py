from datetime import timedelta

import pytest

from railtrust.trust.domain import container
from railtrust.trust.domain.errors import (
    AccountLocked,
    ContentRejected,
    IdentityNotFound,
    ReportingRestricted,
    VerificationRequired,
)
from railtrust.trust.domain.listings import IndexedListing
from railtrust.trust.domain.abuse_signals import image_hash
from railtrust.trust.domain.models import ActionType, Identity


def _add(identity: Identity) -> Identity:
    return container.get_identity_repository().add(identity)


def _buyer(now, **fields) -> Identity:
    return Identity(id="buyer", created_at=now - timedelta(hours=2), email_verified=True, **fields)


def _seller(now, **fields) -> Identity:
    base = dict(seller_status="active", seller_expires_at=now + timedelta(days=60))
    base.update(fields)
    return Identity(id="seller", created_at=now - timedelta(days=30), email_verified=True, **base)


@pytest.mark.asyncio
async def test_clean_inquiry_is_cleared(now) -> None:
    _add(_buyer(now))

    clearance = await container.get_action_gate().enforce(
        "buyer", ActionType.INQUIRY, text="Is the 90lb rail still available?", now=now
    )

    assert clearance.remaining == 4
    assert clearance.soft_flags == ()


@pytest.mark.asyncio
async def test_unknown_identity(now) -> None:
    with pytest.raises(IdentityNotFound):
        await container.get_action_gate().enforce("ghost", ActionType.INQUIRY, text="hello there", now=now)


@pytest.mark.asyncio
async def test_violation_at_threshold_locks_and_denies_action(fake_redis, now) -> None:
    _add(_buyer(now, spam_warnings=2))

    with pytest.raises(AccountLocked) as exc:
        await container.get_action_gate().enforce(
            "buyer", ActionType.INQUIRY, text="email me at bob@example.com", now=now
        )

    assert exc.value.retry_after_seconds == 24 * 3600
    stored = container.get_identity_repository().store["buyer"]
    assert stored.spam_warnings == 0
    assert stored.spam_suspended_until == now + timedelta(hours=24)
    # Rejected actions are refunded.
    assert await fake_redis.get("rl:inquiry:buyer:d2026-01-15") == "0"


@pytest.mark.asyncio
async def test_locked_account_cannot_act(now) -> None:
    _add(_buyer(now, spam_suspended_until=now + timedelta(hours=3)))

    with pytest.raises(AccountLocked) as exc:
        await container.get_action_gate().enforce("buyer", ActionType.MESSAGE, text="hi", now=now)
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_first_violation_rejects_content_and_warns(now) -> None:
    _add(_buyer(now))

    with pytest.raises(ContentRejected) as exc:
        await container.get_action_gate().enforce(
            "buyer", ActionType.INQUIRY, text="see https://example.com", now=now
        )

    assert exc.value.category == "off_platform_contact"
    assert container.get_identity_repository().store["buyer"].spam_warnings == 1


@pytest.mark.asyncio
async def test_listing_requires_seller_verification(now) -> None:
    _add(_seller(now, seller_status="pending-ai"))

    with pytest.raises(VerificationRequired) as exc:
        await container.get_action_gate().enforce("seller", ActionType.LISTING_PUBLISH, title="Tie plates", now=now)

    assert exc.value.to_payload()["remediation"] == "/verification/seller"


@pytest.mark.asyncio
async def test_contractor_profile_requires_contractor(now) -> None:
    _add(_seller(now))

    with pytest.raises(VerificationRequired) as exc:
        await container.get_action_gate().enforce("seller", ActionType.CONTRACTOR_PROFILE, text="Track work", now=now)
    assert exc.value.required == "contractor"


@pytest.mark.asyncio
async def test_duplicate_title_rejected_without_warning(now) -> None:
    _add(_seller(now))
    container.get_listing_index().add(IndexedListing(id="l1", seller_id="seller", title="Used Rail Tie Plates"))

    with pytest.raises(ContentRejected) as exc:
        await container.get_action_gate().enforce(
            "seller", ActionType.LISTING_PUBLISH, title="used  rail tie plates", now=now
        )

    assert exc.value.category == "duplicate"
    assert container.get_identity_repository().store["seller"].spam_warnings == 0


@pytest.mark.asyncio
async def test_foreign_image_is_flagged_not_blocked(now) -> None:
    _add(_seller(now))
    container.get_listing_index().add(
        IndexedListing(
            id="l9",
            seller_id="someone-else",
            title="Joint bars",
            image_hashes=(image_hash("https://cdn.example/bars.jpg"),),
        )
    )

    clearance = await container.get_action_gate().enforce(
        "seller",
        ActionType.LISTING_PUBLISH,
        title="Joint bars, 132RE",
        image_urls=["https://cdn.example/bars.jpg?w=800"],
        now=now,
    )

    assert clearance.soft_flags == ("duplicate_image",)


@pytest.mark.asyncio
async def test_young_account_cannot_report(now) -> None:
    _add(_buyer(now))

    with pytest.raises(ReportingRestricted):
        await container.get_action_gate().enforce("buyer", ActionType.REPORT, text="spam listing", now=now)
