"""Plain-text 500 responses for media pipeline failures."""

from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from resizer.middleware.request_id import HEADER, get_request_id
from resizer.services.media.errors import MediaError
from resizer.telemetry import metrics

log = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(MediaError)
    async def media_error(request: Request, exc: MediaError) -> PlainTextResponse:
        kind = type(exc).__name__
        metrics.inc_failure(kind)
        log.warning("Processing error: %s", exc, extra={"kind": kind, "path": request.url.path})
        rid = get_request_id() or request.headers.get(HEADER) or str(uuid.uuid4())
        return PlainTextResponse(str(exc), status_code=500, headers={HEADER: rid})


__all__ = ["register_error_handlers"]
