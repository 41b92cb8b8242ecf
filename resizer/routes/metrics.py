# resizer/routes/metrics.py
# Summary: Prometheus /metrics exposition (mounted when METRICS_ENABLED).
# - Forces Prometheus text exposition v0.0.4 content type regardless of library defaults.

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import REGISTRY, generate_latest

router = APIRouter(tags=["ops"])

# Force the classic Prometheus text exposition content type.
TEXT_EXPO_V004 = "text/plain; version=0.0.4; charset=utf-8"


@router.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    return Response(content=generate_latest(REGISTRY), media_type=TEXT_EXPO_V004)
