"""Tunable tables for the trust engine.

Scalars that operators flip per environment (lockout threshold, lockout hours,
reset time zone, fail policy) come from :mod:`railtrust.settings`; the larger
tables live in a YAML file pointed to by ``TRUST_CONFIG_PATH``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from railtrust.settings import settings
from railtrust.trust.domain.models import ActionType, SellerPlan, VisibilityTier

logger = logging.getLogger(__name__)


class QuotaBucket(str, Enum):
    UNVERIFIED = "unverified"
    NEW_ACCOUNT = "new_account"
    ESTABLISHED = "established"


@dataclass(frozen=True)
class RateWindow:
    """One quota window. ``seconds=None`` means the calendar day in the reset time zone."""

    name: str
    seconds: Optional[int]
    limits: Mapping[QuotaBucket, int]

    @property
    def is_daily(self) -> bool:
        return self.seconds is None

    def limit_for(self, bucket: QuotaBucket) -> int:
        return int(self.limits.get(bucket, 0))


def _uniform(limit: int) -> dict[QuotaBucket, int]:
    return {bucket: limit for bucket in QuotaBucket}


def _tiered(unverified: int, new_account: int, established: int) -> dict[QuotaBucket, int]:
    return {
        QuotaBucket.UNVERIFIED: unverified,
        QuotaBucket.NEW_ACCOUNT: new_account,
        QuotaBucket.ESTABLISHED: established,
    }


def _default_windows() -> dict[ActionType, tuple[RateWindow, ...]]:
    return {
        ActionType.INQUIRY: (
            RateWindow("burst_60s", 60, _uniform(10)),
            RateWindow("daily", None, _tiered(0, 5, 20)),
        ),
        ActionType.CONTACT: (
            RateWindow("burst_60s", 60, _uniform(5)),
            RateWindow("daily", None, _tiered(0, 5, 20)),
        ),
        ActionType.LISTING_PUBLISH: (
            RateWindow("burst_60s", 60, _uniform(5)),
            RateWindow("daily", None, _tiered(2, 10, 50)),
        ),
        ActionType.CONTRACTOR_PROFILE: (
            RateWindow("burst_60s", 60, _uniform(5)),
            RateWindow("daily", None, _tiered(2, 5, 20)),
        ),
        ActionType.REPORT: (
            RateWindow("burst_60s", 60, _uniform(5)),
            RateWindow("daily", None, _tiered(3, 10, 30)),
        ),
        ActionType.MESSAGE: (
            RateWindow("burst_10s", 10, _uniform(8)),
            RateWindow("burst_60s", 60, _uniform(30)),
            RateWindow("daily", None, _tiered(20, 100, 500)),
        ),
    }


@dataclass(frozen=True)
class RateLimitConfig:
    windows: Mapping[ActionType, tuple[RateWindow, ...]]
    new_account_days: int = 7
    reset_timezone: str = "America/Chicago"
    fail_open: bool = True

    def windows_for(self, action: ActionType) -> tuple[RateWindow, ...]:
        return tuple(self.windows.get(action, ()))


BLOCKED_PHRASES: tuple[str, ...] = (
    "click here",
    "visit my website",
    "check out my site",
    "free offer",
    "limited time offer",
    "act now",
    "don't miss out",
    "exclusive deal",
    "make money fast",
    "work from home",
    "earn extra income",
    "send money",
    "wire transfer",
    "western union",
    "moneygram",
    "gift card payment",
    "bitcoin payment",
    "crypto payment",
    "verify your account",
    "confirm your identity",
    "contact me at",
    "email me at",
    "call me at",
    "text me at",
    "whatsapp",
    "telegram",
    "signal me",
)


@dataclass(frozen=True)
class ContentConfig:
    min_token_length: int = 3
    max_token_repeats: int = 10
    min_tokens_for_ratio: int = 50
    min_unique_ratio: float = 0.2
    min_length_for_density: int = 20
    max_caps_ratio: float = 0.7
    max_symbol_ratio: float = 0.3
    blocked_phrases: tuple[str, ...] = BLOCKED_PHRASES
    contact_restricted_actions: frozenset[ActionType] = frozenset({ActionType.INQUIRY, ActionType.CONTACT})


@dataclass(frozen=True)
class LockoutConfig:
    spam_flag_threshold: int = 3
    lockout_hours: int = 24
    max_write_attempts: int = 5

    @property
    def lockout(self) -> timedelta:
        return timedelta(hours=self.lockout_hours)


@dataclass(frozen=True)
class ReportingConfig:
    false_reports_for_restriction: int = 3
    restriction_hours: int = 48
    min_account_age_hours: int = 24
    serial_daily_threshold: int = 5
    serial_weekly_threshold: int = 15
    auto_flag_threshold: int = 5


@dataclass(frozen=True)
class AddOnRule:
    boost: float = 0.0
    duration_days: Optional[int] = None

    def expires_from(self, start: datetime) -> Optional[datetime]:
        if self.duration_days is None:
            return None
        return start + timedelta(days=self.duration_days)


def _default_tier_weights() -> dict[VisibilityTier, float]:
    return {
        VisibilityTier.NONE: 0.0,
        VisibilityTier.STANDARD: 50.0,
        VisibilityTier.VERIFIED: 100.0,
        VisibilityTier.FEATURED: 200.0,
        VisibilityTier.PRIORITY: 300.0,
        VisibilityTier.PROFESSIONAL: 400.0,
    }


def _default_add_ons() -> dict[str, AddOnRule]:
    return {
        "elite": AddOnRule(boost=750.0, duration_days=30),
        "ai-enhancement": AddOnRule(),
        "spec-sheet": AddOnRule(),
        "verified-badge": AddOnRule(duration_days=30),
        "seller-analytics": AddOnRule(duration_days=365),
    }


@dataclass(frozen=True)
class RankingConfig:
    tier_weights: Mapping[VisibilityTier, float] = field(default_factory=_default_tier_weights)
    add_ons: Mapping[str, AddOnRule] = field(default_factory=_default_add_ons)
    # Retired placement products still present on old listings.
    add_on_aliases: Mapping[str, str] = field(default_factory=lambda: {"featured": "elite", "premium": "elite"})
    plan_bonus: Mapping[SellerPlan, float] = field(
        default_factory=lambda: {SellerPlan.FREE: 0.0, SellerPlan.PLUS: 40.0, SellerPlan.PRO: 100.0}
    )
    base_score: float = 100.0
    expired_penalty: float = 50.0

    def canonical_add_on(self, name: str) -> str:
        key = name.strip().lower()
        return self.add_on_aliases.get(key, key)

    def add_on_rule(self, name: str) -> AddOnRule:
        return self.add_ons.get(self.canonical_add_on(name), AddOnRule())


@dataclass(frozen=True)
class VisibilityConfig:
    map_tiers: frozenset[VisibilityTier] = frozenset(
        {VisibilityTier.VERIFIED, VisibilityTier.FEATURED, VisibilityTier.PRIORITY, VisibilityTier.PROFESSIONAL}
    )
    map_add_on: str = "elite"
    expiring_soon_days: int = 30


@dataclass(frozen=True)
class EngineConfig:
    rate_limit: RateLimitConfig
    content: ContentConfig
    lockout: LockoutConfig
    reporting: ReportingConfig
    ranking: RankingConfig
    visibility: VisibilityConfig

    @staticmethod
    def default() -> "EngineConfig":
        return EngineConfig(
            rate_limit=RateLimitConfig(
                windows=_default_windows(),
                reset_timezone=settings.daily_reset_tz,
                fail_open=settings.rate_limit_fail_open,
            ),
            content=ContentConfig(),
            lockout=LockoutConfig(
                spam_flag_threshold=settings.spam_flag_threshold,
                lockout_hours=settings.lockout_hours,
            ),
            reporting=ReportingConfig(),
            ranking=RankingConfig(),
            visibility=VisibilityConfig(),
        )

    # --- Serialization ---------------------------------------------------

    @staticmethod
    def from_mapping(config: Mapping[str, Any]) -> "EngineConfig":
        base = EngineConfig.default()
        return EngineConfig(
            rate_limit=_rate_limit_from(config.get("rate_limit") or {}, base.rate_limit),
            content=_content_from(config.get("content") or {}, base.content),
            lockout=_lockout_from(config.get("lockout") or {}, base.lockout),
            reporting=_reporting_from(config.get("reporting") or {}, base.reporting),
            ranking=_ranking_from(config.get("ranking") or {}, base.ranking),
            visibility=_visibility_from(config.get("visibility") or {}, base.visibility),
        )


def _window_from(raw: Mapping[str, Any]) -> RateWindow:
    limits_cfg = raw.get("limits", {})
    if isinstance(limits_cfg, Mapping):
        limits = {QuotaBucket(key): int(value) for key, value in limits_cfg.items()}
    else:
        limits = _uniform(int(limits_cfg))
    seconds = raw.get("seconds")
    return RateWindow(
        name=str(raw.get("name") or ("daily" if seconds is None else f"window_{seconds}s")),
        seconds=None if seconds is None else int(seconds),
        limits=limits,
    )


def _rate_limit_from(cfg: Mapping[str, Any], base: RateLimitConfig) -> RateLimitConfig:
    windows = dict(base.windows)
    for action, entries in (cfg.get("actions") or {}).items():
        windows[ActionType(action)] = tuple(_window_from(entry) for entry in entries)
    return RateLimitConfig(
        windows=windows,
        new_account_days=int(cfg.get("new_account_days", base.new_account_days)),
        reset_timezone=str(cfg.get("reset_timezone", base.reset_timezone)),
        fail_open=bool(cfg.get("fail_open", base.fail_open)),
    )


def _content_from(cfg: Mapping[str, Any], base: ContentConfig) -> ContentConfig:
    actions = cfg.get("contact_restricted_actions")
    return ContentConfig(
        min_token_length=int(cfg.get("min_token_length", base.min_token_length)),
        max_token_repeats=int(cfg.get("max_token_repeats", base.max_token_repeats)),
        min_tokens_for_ratio=int(cfg.get("min_tokens_for_ratio", base.min_tokens_for_ratio)),
        min_unique_ratio=float(cfg.get("min_unique_ratio", base.min_unique_ratio)),
        min_length_for_density=int(cfg.get("min_length_for_density", base.min_length_for_density)),
        max_caps_ratio=float(cfg.get("max_caps_ratio", base.max_caps_ratio)),
        max_symbol_ratio=float(cfg.get("max_symbol_ratio", base.max_symbol_ratio)),
        blocked_phrases=tuple(str(p).lower() for p in cfg.get("blocked_phrases", base.blocked_phrases)),
        contact_restricted_actions=(
            frozenset(ActionType(a) for a in actions) if actions is not None else base.contact_restricted_actions
        ),
    )


def _lockout_from(cfg: Mapping[str, Any], base: LockoutConfig) -> LockoutConfig:
    return LockoutConfig(
        spam_flag_threshold=max(1, int(cfg.get("spam_flag_threshold", base.spam_flag_threshold))),
        lockout_hours=max(1, int(cfg.get("lockout_hours", base.lockout_hours))),
        max_write_attempts=max(1, int(cfg.get("max_write_attempts", base.max_write_attempts))),
    )


def _reporting_from(cfg: Mapping[str, Any], base: ReportingConfig) -> ReportingConfig:
    return ReportingConfig(
        false_reports_for_restriction=int(
            cfg.get("false_reports_for_restriction", base.false_reports_for_restriction)
        ),
        restriction_hours=int(cfg.get("restriction_hours", base.restriction_hours)),
        min_account_age_hours=int(cfg.get("min_account_age_hours", base.min_account_age_hours)),
        serial_daily_threshold=int(cfg.get("serial_daily_threshold", base.serial_daily_threshold)),
        serial_weekly_threshold=int(cfg.get("serial_weekly_threshold", base.serial_weekly_threshold)),
        auto_flag_threshold=int(cfg.get("auto_flag_threshold", base.auto_flag_threshold)),
    )


def _ranking_from(cfg: Mapping[str, Any], base: RankingConfig) -> RankingConfig:
    tier_weights = dict(base.tier_weights)
    for tier, weight in (cfg.get("tier_weights") or {}).items():
        tier_weights[VisibilityTier(tier)] = float(weight)
    add_ons = dict(base.add_ons)
    for name, rule in (cfg.get("add_ons") or {}).items():
        rule = rule or {}
        duration = rule.get("duration_days")
        add_ons[str(name).lower()] = AddOnRule(
            boost=float(rule.get("boost", 0.0)),
            duration_days=None if duration is None else int(duration),
        )
    plan_bonus = dict(base.plan_bonus)
    for plan, bonus in (cfg.get("plan_bonus") or {}).items():
        plan_bonus[SellerPlan(plan)] = float(bonus)
    aliases = dict(base.add_on_aliases)
    aliases.update({str(k).lower(): str(v).lower() for k, v in (cfg.get("add_on_aliases") or {}).items()})
    return RankingConfig(
        tier_weights=tier_weights,
        add_ons=add_ons,
        add_on_aliases=aliases,
        plan_bonus=plan_bonus,
        base_score=float(cfg.get("base_score", base.base_score)),
        expired_penalty=float(cfg.get("expired_penalty", base.expired_penalty)),
    )


def _visibility_from(cfg: Mapping[str, Any], base: VisibilityConfig) -> VisibilityConfig:
    tiers = cfg.get("map_tiers")
    return VisibilityConfig(
        map_tiers=frozenset(VisibilityTier(t) for t in tiers) if tiers is not None else base.map_tiers,
        map_add_on=str(cfg.get("map_add_on", base.map_add_on)),
        expiring_soon_days=int(cfg.get("expiring_soon_days", base.expiring_soon_days)),
    )


def load_engine_config(path: str | Path | None = None) -> EngineConfig:
    """Load engine tables from YAML, falling back to in-code defaults."""

    path = path or settings.trust_config_path
    if not path:
        return EngineConfig.default()
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("trust engine config missing at %s; using defaults", path)
        return EngineConfig.default()
    data = yaml.safe_load(text)
    if not isinstance(data, Mapping):
        logger.warning("trust engine config at %s is not a mapping; using defaults", path)
        return EngineConfig.default()
    return EngineConfig.from_mapping(data)


__all__ = [
    "AddOnRule",
    "BLOCKED_PHRASES",
    "ContentConfig",
    "EngineConfig",
    "LockoutConfig",
    "QuotaBucket",
    "RankingConfig",
    "RateLimitConfig",
    "RateWindow",
    "ReportingConfig",
    "VisibilityConfig",
    "load_engine_config",
]
