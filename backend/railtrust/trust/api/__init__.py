"""HTTP surface for the trust engine."""

from railtrust.trust.api.trust import router

__all__ = ["router"]
