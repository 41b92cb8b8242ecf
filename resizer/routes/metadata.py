from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, Request

from resizer.config import Settings
from resizer.middleware.request_id import get_request_id
from resizer.routes.resize import pipeline_options
from resizer.services.media import pipeline
from resizer.telemetry import metrics
from resizer.telemetry.logging import bind

router = APIRouter(tags=["metadata"])

_log = logging.getLogger("resizer.pipeline")

_TRUTHY = {"1", "true", "yes", "on"}


def _truthy(val: Optional[str]) -> bool:
    return str(val).strip().lower() in _TRUTHY if val is not None else False


@router.post("/metadata")
async def image_metadata(
    request: Request,
    stats: Optional[str] = Query(default=None),
) -> Dict[str, Any]:
    settings: Settings = request.app.state.settings
    log = bind(_log, request_id=get_request_id(), endpoint="/metadata")
    metrics.inc_request("/metadata")

    result = await pipeline.inspect(
        request.stream(),
        with_stats=_truthy(stats),
        options=pipeline_options(settings),
        log=log,
    )
    body = result.metadata.to_dict()
    if result.stats is not None:
        body["stats"] = result.stats.to_dict()
        body["lossyPreferred"] = result.lossy_preferred
    return body
