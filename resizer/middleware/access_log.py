# resizer/middleware/access_log.py
# Summary: one JSON access line per request on the "access" logger.
# - For streamed image responses the duration covers the time until headers were ready.
# - Resize responses also log the reported actions and lossless choice.

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from resizer.middleware.request_id import HEADER

logger = logging.getLogger("access")


class AccessLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        record: Dict[str, Any] = {
            "event": "request",
            "request_id": getattr(request.state, "request_id", None)
            or request.headers.get(HEADER, ""),
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        }
        actions = response.headers.get("X-Result-Actions")
        if actions is not None:
            record["actions"] = actions
            record["lossless"] = response.headers.get("X-Result-Lossless")
        logger.info(json.dumps(record, ensure_ascii=False))
        return response


__all__ = ["AccessLogMiddleware"]
