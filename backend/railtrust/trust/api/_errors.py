"""Error translation helpers for the trust API."""

from __future__ import annotations

from fastapi import HTTPException

from railtrust.trust.domain.errors import TrustEngineError


def to_http_error(exc: TrustEngineError) -> HTTPException:
    """Translate engine errors to FastAPI HTTP errors, keeping Retry-After."""
    return HTTPException(
        status_code=exc.status_code,
        detail=exc.to_payload(),
        headers=exc.headers() or None,
    )
