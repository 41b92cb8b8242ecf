"""
Request-level composition of the media stages:

    body chunks -> ImageSource -> probe -> planner (+ classifier) -> executor

Every codec call runs off the event loop. Planning runs in a worker thread;
when it needs pixel statistics it calls back into the loop to finish reading
the body, so an unsupported target is rejected without waiting for the
pixels.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import AsyncIterable, Optional

import anyio
from PIL import Image

from resizer.telemetry import metrics
from resizer.telemetry.logging import LoggerLike

from .classifier import classify, compute_statistics
from .errors import DecodeError, StatisticsError
from .executor import DEFAULT_BUFFER_CHUNKS, DEFAULT_CHUNK_BYTES, execute
from .models import ImageMetadata, PixelStatistics, TransformRequest, TransformResult
from .planner import DEFAULT_QUALITY, plan
from .probe import DEFAULT_PROBE_MAX_BYTES, probe
from .source import ImageSource

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineOptions:
    quality: int = DEFAULT_QUALITY
    chunk_size: int = DEFAULT_CHUNK_BYTES
    buffer_chunks: int = DEFAULT_BUFFER_CHUNKS
    probe_max_bytes: int = DEFAULT_PROBE_MAX_BYTES


def _stats_from_source(source: ImageSource) -> PixelStatistics:
    # Called from a worker thread started by anyio.
    image = anyio.from_thread.run(source.load)
    return compute_statistics(image)


async def transform(
    chunks: AsyncIterable[bytes],
    request: TransformRequest,
    *,
    options: Optional[PipelineOptions] = None,
    log: Optional[LoggerLike] = None,
) -> TransformResult:
    """
    Resize/convert the image arriving on ``chunks``.

    Raises DecodeError, UnsupportedFormatError or EncodeError before any
    output is produced. The returned stream must be drained or closed.
    """
    opts = options or PipelineOptions()
    log = log or _log

    source = ImageSource(chunks)
    metadata = await probe(source, max_bytes=opts.probe_max_bytes, log=log)
    transform_plan = await anyio.to_thread.run_sync(
        partial(
            plan,
            metadata,
            request,
            stats_provider=partial(_stats_from_source, source),
            quality=opts.quality,
            log=log,
        )
    )
    image = await source.load()
    return await execute(
        image,
        transform_plan,
        chunk_size=opts.chunk_size,
        buffer_chunks=opts.buffer_chunks,
        log=log,
    )


@dataclass(frozen=True)
class Inspection:
    metadata: ImageMetadata
    stats: Optional[PixelStatistics] = None
    lossy_preferred: Optional[bool] = None


def _inspect_pixels(metadata: ImageMetadata, image: Image.Image, log: LoggerLike) -> Inspection:
    try:
        stats = compute_statistics(image)
    except StatisticsError as exc:
        stats = PixelStatistics.failed(str(exc))

    def _provided() -> PixelStatistics:
        if stats.error is not None:
            raise StatisticsError(stats.error)
        return stats

    verdict = classify(metadata, _provided, log=log)
    return Inspection(metadata=metadata, stats=stats, lossy_preferred=verdict.lossy_preferred)


async def inspect(
    chunks: AsyncIterable[bytes],
    *,
    with_stats: bool = False,
    options: Optional[PipelineOptions] = None,
    log: Optional[LoggerLike] = None,
) -> Inspection:
    """Probe ``chunks``; with ``with_stats`` also decode and measure the pixels."""
    opts = options or PipelineOptions()
    log = log or _log

    source = ImageSource(chunks)
    metadata = await probe(source, max_bytes=opts.probe_max_bytes, log=log)
    if not with_stats:
        return Inspection(metadata=metadata)

    try:
        image = await source.load()
    except DecodeError as exc:
        metrics.inc_stats_failure()
        log.warning("pixel statistics failed, defaulting to lossy: %s", exc)
        return Inspection(
            metadata=metadata, stats=PixelStatistics.failed(str(exc)), lossy_preferred=True
        )
    return await anyio.to_thread.run_sync(_inspect_pixels, metadata, image, log)


__all__ = ["Inspection", "PipelineOptions", "inspect", "transform"]
