"""Collect expired visibility, verification and add-on fields for persistence."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional

from railtrust.trust.domain.models import EntitySnapshot
from railtrust.trust.domain.visibility import CorrectionSignal, VisibilityGate

logger = logging.getLogger(__name__)

CorrectionSink = Callable[[CorrectionSignal], Awaitable[None]]


async def run(
    gate: VisibilityGate,
    *,
    entities: Iterable[EntitySnapshot],
    sink: Optional[CorrectionSink] = None,
    now: datetime | None = None,
) -> list[CorrectionSignal]:
    """Return correction signals for every lapsed field, handing each to ``sink`` once."""

    now = now or datetime.now(timezone.utc)
    seen: set[tuple[str, str]] = set()
    signals: list[CorrectionSignal] = []
    for entity in entities:
        for signal in gate.explain(entity, now=now).corrections:
            # One owner can back many listings; report their verification once.
            key = (signal.entity_id, signal.field)
            if key in seen:
                continue
            seen.add(key)
            signals.append(signal)
            if sink is not None:
                await sink(signal)
    if signals:
        logger.info("expiry corrections collected", extra={"count": len(signals)})
    return signals
