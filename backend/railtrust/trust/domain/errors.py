"""Error taxonomy raised by the trust engine.

Messages stay generic: callers surface ``detail`` to end users, so
it never names thresholds, counters or the lockout mechanism.
"""

from __future__ import annotations

from typing import Any

from fastapi import status


class TrustEngineError(Exception):
    """Base class for trust engine errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "trust_error"
    detail: str = "Request could not be completed."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.detail}

    def headers(self) -> dict[str, str]:
        return {}


class RateLimited(TrustEngineError):
    """Quota exhausted for the current window; retryable after ``retry_after_seconds``."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "rate_limited"
    detail = "Action temporarily unavailable. Please try again later."

    def __init__(self, retry_after_seconds: int, detail: str | None = None) -> None:
        super().__init__(detail)
        self.retry_after_seconds = max(1, int(retry_after_seconds))

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["retry_after"] = self.retry_after_seconds
        return payload

    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after_seconds)}


class ReportingRestricted(RateLimited):
    """Report submission is paused for this identity."""

    code = "reporting_restricted"
    detail = "You are temporarily unable to submit reports. Please try again later."


class EmailVerificationRequired(TrustEngineError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "email_verification_required"
    detail = "Please verify your email address to submit reports."


class AlreadyReported(TrustEngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "already_reported"
    detail = "You have already reported this listing."


class SelfReportRejected(TrustEngineError):
    code = "self_report"
    detail = "You cannot report your own listing."


class ContentRejected(TrustEngineError):
    """Submitted content failed a moderation rule; the user must edit it."""

    code = "content_rejected"
    detail = "Your submission contains content that is not allowed."

    def __init__(self, category: str, detail: str | None = None) -> None:
        super().__init__(detail)
        self.category = category

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["category"] = self.category
        return payload


class AccountLocked(TrustEngineError):
    """Protected actions are unavailable until the lockout lapses."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "temporarily_unavailable"
    detail = "This action is temporarily unavailable."

    def __init__(self, retry_after_seconds: int | None = None) -> None:
        super().__init__()
        self.retry_after_seconds = retry_after_seconds

    def headers(self) -> dict[str, str]:
        if self.retry_after_seconds:
            return {"Retry-After": str(max(1, int(self.retry_after_seconds)))}
        return {}


class VerificationRequired(TrustEngineError):
    """The action needs a verification level the identity does not hold."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "verification_required"
    detail = "Verification is required for this action."

    def __init__(self, required: str, remediation: str) -> None:
        super().__init__()
        self.required = required
        self.remediation = remediation

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["required"] = self.required
        payload["remediation"] = self.remediation
        return payload


class StoreUnavailable(TrustEngineError):
    """Counting or identity store did not answer in time."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "service_unavailable"
    detail = "Service temporarily unavailable."


class IdentityNotFound(TrustEngineError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "identity_not_found"
    detail = "Account not found."


__all__ = [
    "AccountLocked",
    "AlreadyReported",
    "ContentRejected",
    "EmailVerificationRequired",
    "IdentityNotFound",
    "RateLimited",
    "ReportingRestricted",
    "SelfReportRejected",
    "StoreUnavailable",
    "TrustEngineError",
    "VerificationRequired",
]
