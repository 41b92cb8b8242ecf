# resizer/middleware/request_id.py
# Summary: per-request correlation id.
# - Reuses a client X-Request-ID (trimmed, at most 128 chars) or mints a UUID4.
# - Published through a contextvar so log lines and error responses can carry it.

from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

HEADER = "X-Request-ID"
_MAX_LEN = 128

_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Request id of the request being handled, or None outside a request."""
    return _REQUEST_ID.get()


def _inbound_id(request: Request) -> Optional[str]:
    raw = (request.headers.get(HEADER) or "").strip()
    return raw[:_MAX_LEN] or None


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = _inbound_id(request) or str(uuid.uuid4())
        request.state.request_id = rid
        token = _REQUEST_ID.set(rid)
        try:
            response = await call_next(request)
        finally:
            _REQUEST_ID.reset(token)
        response.headers.setdefault(HEADER, rid)
        return response


__all__ = ["HEADER", "RequestIDMiddleware", "get_request_id"]
