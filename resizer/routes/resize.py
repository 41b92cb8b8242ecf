# resizer/routes/resize.py
# Summary: streaming resize/convert endpoints.
# - POST /resize keeps the source format; /resize/webp and /resize/avif convert.
# - Query: width (default TARGET_DEFAULT_WIDTH), height, lossless ("true"/"1").
# - Reports X-Result-Actions and X-Result-Lossless; body streams as it is encoded.

from __future__ import annotations

import logging
import re
import time
from typing import AsyncIterator, Callable, Coroutine, Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import PlainTextResponse, StreamingResponse

from resizer.config import Settings
from resizer.middleware.request_id import get_request_id
from resizer.services.media import pipeline
from resizer.services.media.errors import MediaError
from resizer.services.media.models import COPY, TransformRequest, TransformResult
from resizer.telemetry import metrics
from resizer.telemetry.logging import LoggerLike, bind

router = APIRouter(tags=["resize"])

_log = logging.getLogger("resizer.pipeline")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

USAGE = "\n".join(
    [
        "POST to /resize/[webp|avif] to convert to WebP or AVIF.",
        "POST to /resize to resize keeping the original format.",
        'Query parameter "width" can be used to specify the maximum width.',
        'Query parameter "height" can be used to specify the maximum height.',
        'Query parameter "lossless=true" forces lossless output; otherwise it is chosen from the image.',
        "POST to /metadata to read image dimensions and format (add stats=1 for pixel statistics).",
        "Any EXIF transformations will be baked in to the output.",
    ]
)


def parse_int(raw: Optional[str]) -> int:
    """Leading integer of ``raw``; 0 when absent or not numeric."""
    if raw is None:
        return 0
    m = _LEADING_INT.match(raw)
    return int(m.group(1)) if m else 0


def parse_lossless(raw: Optional[str]) -> Optional[bool]:
    """``true``/``1`` set the override; anything else leaves it unset."""
    if raw is not None and raw.strip().lower() in {"true", "1"}:
        return True
    return None


def pipeline_options(settings: Settings) -> pipeline.PipelineOptions:
    return pipeline.PipelineOptions(
        quality=settings.TARGET_QUALITY,
        chunk_size=settings.STREAM_CHUNK_BYTES,
        buffer_chunks=settings.STREAM_BUFFER_CHUNKS,
        probe_max_bytes=settings.PROBE_MAX_BYTES,
    )


async def _body(result: TransformResult, log: LoggerLike) -> AsyncIterator[bytes]:
    stream = result.stream
    try:
        async for chunk in stream:
            yield chunk
        log.debug("Complete")
    except MediaError as exc:
        # Status and headers are already on the wire; abort the body.
        metrics.inc_failure(type(exc).__name__)
        log.error("Processing error after response start: %s", exc)
        raise
    finally:
        await stream.aclose()


def conversion_handler(
    target_format: str,
) -> Callable[..., Coroutine[None, None, StreamingResponse]]:
    """
    Resize an image to the requested bounds and convert it to ``target_format``.
    It will not enlarge an image past its original size. ``copy`` keeps the
    input format.
    """

    async def handler(
        request: Request,
        width: Optional[str] = Query(default=None),
        height: Optional[str] = Query(default=None),
        lossless: Optional[str] = Query(default=None),
    ) -> StreamingResponse:
        settings: Settings = request.app.state.settings
        endpoint = request.url.path
        log = bind(_log, request_id=get_request_id(), endpoint=endpoint)

        transform_request = TransformRequest(
            width=parse_int(width) or settings.TARGET_DEFAULT_WIDTH,
            height=parse_int(height),
            target_format=target_format,
            lossless=parse_lossless(lossless),
        )
        log.debug(
            "Received request to resize image to %s format, width: %s",
            target_format,
            transform_request.width,
        )
        metrics.inc_request(endpoint)

        started = time.perf_counter()
        result = await pipeline.transform(
            request.stream(),
            transform_request,
            options=pipeline_options(settings),
            log=log,
        )
        metrics.observe_transform(endpoint, time.perf_counter() - started)
        metrics.inc_actions(result.actions)
        metrics.inc_lossless(result.lossless)

        return StreamingResponse(
            _body(result, log),
            media_type=result.content_type,
            headers={
                "X-Result-Actions": result.actions_header,
                "X-Result-Lossless": "true" if result.lossless else "false",
            },
        )

    handler.__name__ = f"resize_{target_format}"
    return handler


router.add_api_route("/resize/webp", conversion_handler("webp"), methods=["POST"])
router.add_api_route("/resize/avif", conversion_handler("avif"), methods=["POST"])
router.add_api_route("/resize", conversion_handler(COPY), methods=["POST"])


@router.get("/", response_class=PlainTextResponse)
def usage() -> str:
    return USAGE
