from __future__ import annotations

import sys
from typing import Any, Dict

from fastapi import APIRouter, Request
from PIL import __version__ as pillow_version, features

from resizer import config

router = APIRouter(tags=["ops"])


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    settings = request.app.state.settings
    return {
        "status": "ok",
        "version": config.APP_VERSION,
        "runtime": {
            "python": sys.version.split(" ")[0],
            "pillow": pillow_version,
        },
        "codecs": {
            "webp": bool(features.check("webp")),
            "avif": bool(features.check("avif")),
        },
        "defaults": {
            "quality": settings.TARGET_QUALITY,
            "width": settings.TARGET_DEFAULT_WIDTH,
        },
    }
