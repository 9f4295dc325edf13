from datetime import timedelta

import pytest

from railtrust.trust.domain.engine_config import VisibilityConfig
from railtrust.trust.domain.models import AddOn, EntitySnapshot, Identity, SubscriptionStatus, VisibilityTier
from railtrust.trust.domain.visibility import VisibilityGate
from railtrust.trust.jobs import addon_expiry


@pytest.mark.asyncio
async def test_collects_each_lapsed_field_once(now) -> None:
    owner = Identity(
        id="owner",
        created_at=now - timedelta(days=400),
        seller_status="active",
        seller_expires_at=now - timedelta(days=1),
    )
    entities = [
        EntitySnapshot(
            id=f"listing-{index}",
            owner=owner,
            created_at=now - timedelta(days=10),
            tier=VisibilityTier.STANDARD,
            subscription_status=SubscriptionStatus.ACTIVE,
            add_ons={"elite": AddOn("elite", now - timedelta(hours=index + 1))},
        )
        for index in range(2)
    ]
    persisted = []

    async def sink(signal) -> None:
        persisted.append(signal)

    signals = await addon_expiry.run(VisibilityGate(VisibilityConfig()), entities=entities, sink=sink, now=now)

    assert signals == persisted
    assert sorted((s.entity_id, s.field) for s in signals) == [
        ("listing-0", "add_on:elite"),
        ("listing-1", "add_on:elite"),
        ("owner", "verification_expires_at"),
    ]


@pytest.mark.asyncio
async def test_nothing_to_correct(now) -> None:
    entity = EntitySnapshot(
        id="listing",
        owner=Identity(id="owner", created_at=now - timedelta(days=1)),
        created_at=now,
        add_ons={"spec-sheet": AddOn("spec-sheet")},
    )
    assert await addon_expiry.run(VisibilityGate(VisibilityConfig()), entities=[entity], now=now) == []
