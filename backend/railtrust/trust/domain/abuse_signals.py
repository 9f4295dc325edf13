"""Deterministic content heuristics for listings, inquiries and messages.

Every detector here is a pure function of its arguments. Context that needs a
lookup (the seller's live titles, image hashes used by other sellers) is
fetched by the caller and passed in on the payload.
"""

from __future__ import annotations

import hashlib
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional

from railtrust.trust.domain.engine_config import ContentConfig
from railtrust.trust.domain.models import ActionType

_DEFAULT_CONFIG = ContentConfig()

URL_PATTERN = re.compile(r"https?://[^\s]+|www\.[^\s]+|\[url\]|\[link\]", re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
PHONE_PATTERN = re.compile(r"(?<!\d)(?:\+?1[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}(?!\d)")
_WHITESPACE = re.compile(r"\s+")

LINK_REASON = "External links are not allowed in inquiries."
DISALLOWED_REASON = "Your message contains content that is not allowed."
STUFFING_REASON = (
    "Your submission appears to contain keyword stuffing. Please use natural language in your title and description."
)
DUPLICATE_TITLE_REASON = "You already have an active listing with this title. Please use a unique title."


@dataclass(frozen=True, slots=True)
class RuleHit:
    rule: str
    category: str
    reason: str
    blocking: bool
    violation: bool


@dataclass(frozen=True, slots=True)
class ModerationFinding:
    """Outcome of one content evaluation. Logged, never persisted."""

    blocked: bool
    reason: Optional[str] = None
    category: Optional[str] = None
    triggered_rules: tuple[str, ...] = ()
    soft_flags: tuple[str, ...] = ()
    violation: bool = False


@dataclass(frozen=True, slots=True)
class ContentPayload:
    action: ActionType
    author_id: str
    text: str = ""
    title: Optional[str] = None
    image_urls: tuple[str, ...] = ()
    seller_active_titles: tuple[str, ...] = ()
    foreign_image_hashes: frozenset[str] = field(default_factory=frozenset)


# --- Detectors -------------------------------------------------------------


def keyword_stuffing(text: str, config: ContentConfig = _DEFAULT_CONFIG) -> Optional[str]:
    """Return the stuffing signal name (``repetition``, ``low_variety``, ``caps``, ``symbols``) or None."""

    if not text:
        return None
    tokens = [t for t in text.lower().split() if len(t) >= config.min_token_length]
    if tokens:
        counts = Counter(tokens)
        if counts.most_common(1)[0][1] > config.max_token_repeats:
            return "repetition"
        if len(tokens) > config.min_tokens_for_ratio and len(counts) / len(tokens) < config.min_unique_ratio:
            return "low_variety"
    stripped = text.strip()
    if len(stripped) < config.min_length_for_density:
        return None
    letters = [c for c in stripped if c.isalpha()]
    if letters and sum(1 for c in letters if c.isupper()) / len(letters) > config.max_caps_ratio:
        return "caps"
    visible = [c for c in stripped if not c.isspace()]
    symbols = sum(1 for c in visible if not c.isalnum())
    if visible and symbols / len(visible) > config.max_symbol_ratio:
        return "symbols"
    return None


def normalize_title(title: str) -> str:
    return _WHITESPACE.sub(" ", title).strip().lower()


def duplicate_title(title: Optional[str], seller_active_titles: Iterable[str]) -> bool:
    if not title or not title.strip():
        return False
    wanted = normalize_title(title)
    return any(normalize_title(existing) == wanted for existing in seller_active_titles)


def image_hash(url: str) -> str:
    normalized = url.split("?", 1)[0].lower().strip()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def image_hashes(urls: Iterable[str]) -> tuple[str, ...]:
    return tuple(image_hash(url) for url in urls if url)


def duplicate_image(hashes: Iterable[str], foreign_hashes: Iterable[str]) -> bool:
    foreign = set(foreign_hashes)
    return any(h in foreign for h in hashes)


def disallowed_content(message: str, config: ContentConfig = _DEFAULT_CONFIG) -> Optional[RuleHit]:
    if not message:
        return None
    if URL_PATTERN.search(message):
        return RuleHit("external_link", "off_platform_contact", LINK_REASON, blocking=True, violation=True)
    if EMAIL_PATTERN.search(message) or PHONE_PATTERN.search(message):
        return RuleHit("contact_redirect", "off_platform_contact", DISALLOWED_REASON, blocking=True, violation=True)
    lowered = message.lower()
    for phrase in config.blocked_phrases:
        if phrase in lowered:
            return RuleHit("blocked_phrase", "prohibited_content", DISALLOWED_REASON, blocking=True, violation=True)
    return None


# --- Composition -----------------------------------------------------------


def evaluate_content(payload: ContentPayload, config: ContentConfig = _DEFAULT_CONFIG) -> ModerationFinding:
    """Run every detector that applies to ``payload`` and fold the hits into one finding.

    Violating rules are ranked ahead of corrective ones so the reported reason
    is the one that also feeds the lockout machine.
    """

    hits: list[RuleHit] = []
    if payload.action in config.contact_restricted_actions:
        for part in (payload.title, payload.text):
            hit = disallowed_content(part or "", config)
            if hit is not None:
                hits.append(hit)
                break
    if any(keyword_stuffing(part or "", config) for part in (payload.title, payload.text)):
        hits.append(RuleHit("keyword_stuffing", "spam", STUFFING_REASON, blocking=True, violation=True))
    if duplicate_title(payload.title, payload.seller_active_titles):
        hits.append(RuleHit("duplicate_title", "duplicate", DUPLICATE_TITLE_REASON, blocking=True, violation=False))

    soft_flags: list[str] = []
    if payload.image_urls and duplicate_image(image_hashes(payload.image_urls), payload.foreign_image_hashes):
        soft_flags.append("duplicate_image")

    blocking = [hit for hit in hits if hit.blocking]
    blocking.sort(key=lambda hit: not hit.violation)
    first = blocking[0] if blocking else None
    return ModerationFinding(
        blocked=first is not None,
        reason=first.reason if first else None,
        category=first.category if first else None,
        triggered_rules=tuple(hit.rule for hit in hits),
        soft_flags=tuple(soft_flags),
        violation=any(hit.violation for hit in blocking),
    )


__all__ = [
    "ContentPayload",
    "ModerationFinding",
    "RuleHit",
    "disallowed_content",
    "duplicate_image",
    "duplicate_title",
    "evaluate_content",
    "image_hash",
    "image_hashes",
    "keyword_stuffing",
    "normalize_title",
]
