# resizer/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from PIL import Image

from resizer import config
from resizer.config import Settings, get_settings
from resizer.middleware.access_log import AccessLogMiddleware
from resizer.middleware.request_id import RequestIDMiddleware
from resizer.routes import health, metadata, resize
from resizer.routes import metrics as metrics_route
from resizer.telemetry.errors import register_error_handlers
from resizer.telemetry.logging import configure_root_logging

log = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "resize", "description": "Streaming resize and format conversion"},
    {"name": "metadata", "description": "Image header and pixel statistics"},
    {"name": "ops", "description": "Liveness and metrics"},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    log.info(
        "Image resize API ready",
        extra={
            "quality": settings.TARGET_QUALITY,
            "default_width": settings.TARGET_DEFAULT_WIDTH,
            "port": settings.PORT,
        },
    )
    yield


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_root_logging(settings.LOG_LEVEL)

    # Process-wide decoder guard; larger inputs fail as DecodeError.
    Image.MAX_IMAGE_PIXELS = settings.MAX_IMAGE_PIXELS

    app = FastAPI(
        title=settings.APP_NAME,
        description="Streams uploaded images back resized, re-encoded and orientation-normalized.",
        version=config.APP_VERSION,
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )
    app.state.settings = settings

    register_error_handlers(app)

    app.include_router(resize.router)
    app.include_router(metadata.router)
    app.include_router(health.router)
    if settings.METRICS_ENABLED:
        app.include_router(metrics_route.router)

    # Added last so it runs first: the request id is bound before access logging.
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)

    return app


# Export a module-level app for uvicorn/tests that import it directly
app = create_app()
