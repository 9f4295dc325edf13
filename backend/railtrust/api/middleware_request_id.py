"""Bind a request id to the response headers and to the log context."""

from __future__ import annotations

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from railtrust.obs.logging import bind_context, reset_context


class RequestIdMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		rid = request.headers.get("X-Request-Id") or str(uuid.uuid4())
		tokens = bind_context(request_id=rid, route=request.url.path)
		try:
			response = await call_next(request)
		finally:
			reset_context(tokens)
		if "X-Request-Id" not in response.headers:
			response.headers["X-Request-Id"] = rid
		return response
