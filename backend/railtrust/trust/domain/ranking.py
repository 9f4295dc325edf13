"""Deterministic ordering for gated search and directory results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from time import perf_counter
from typing import Iterable, Optional

from railtrust.obs import metrics
from railtrust.trust.domain.engine_config import RankingConfig
from railtrust.trust.domain.models import EntitySnapshot, utcnow


@dataclass(slots=True)
class ScoreBreakdown:
    base: float
    tier: float
    add_ons: float
    plan: float
    penalty: float

    @property
    def total(self) -> float:
        return self.base + self.tier + self.add_ons + self.plan - self.penalty


@dataclass(slots=True)
class RankedEntity:
    entity: EntitySnapshot
    score: float
    breakdown: ScoreBreakdown

    @property
    def sort_key(self) -> tuple[float, float, str]:
        # Score desc, newest first, then id asc: a total order over distinct ids.
        return (-self.score, -self.entity.created_at.timestamp(), self.entity.id)


class RankingComposer:
    def __init__(self, config: RankingConfig) -> None:
        self._config = config

    def breakdown(self, entity: EntitySnapshot, *, now: Optional[datetime] = None) -> ScoreBreakdown:
        now = now or utcnow()
        cfg = self._config
        boosts = 0.0
        seen: set[str] = set()
        for name, add_on in entity.add_ons.items():
            canonical = cfg.canonical_add_on(name)
            # A legacy alias and its successor on the same listing boost once.
            if canonical in seen or not add_on.is_active(now):
                continue
            seen.add(canonical)
            boosts += cfg.add_on_rule(canonical).boost
        expired = entity.expires_at is not None and entity.expires_at <= now
        return ScoreBreakdown(
            base=cfg.base_score if entity.base_score is None else float(entity.base_score),
            tier=float(cfg.tier_weights.get(entity.tier, 0.0)),
            add_ons=boosts,
            plan=float(cfg.plan_bonus.get(entity.owner.seller_plan, 0.0)),
            penalty=cfg.expired_penalty if expired else 0.0,
        )

    def score(self, entity: EntitySnapshot, *, now: Optional[datetime] = None) -> float:
        return self.breakdown(entity, now=now).total

    def rank_scored(self, entities: Iterable[EntitySnapshot], *, now: Optional[datetime] = None) -> list[RankedEntity]:
        """Score and order entities that already passed the visibility gate."""

        start = perf_counter()
        now = now or utcnow()
        ranked = []
        for entity in entities:
            breakdown = self.breakdown(entity, now=now)
            ranked.append(RankedEntity(entity=entity, score=breakdown.total, breakdown=breakdown))
        ranked.sort(key=lambda item: item.sort_key)
        metrics.observe_ranking(perf_counter() - start)
        return ranked

    def rank(self, entities: Iterable[EntitySnapshot], *, now: Optional[datetime] = None) -> list[EntitySnapshot]:
        return [item.entity for item in self.rank_scored(entities, now=now)]


__all__ = ["RankedEntity", "RankingComposer", "ScoreBreakdown"]
