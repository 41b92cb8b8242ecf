"""
Transformation planner.

Decides, from probed metadata and the caller's options, which operations to
run and what to report. Rules are applied in a fixed order and the resulting
``actions`` are always ordered orient, scale:down, convert:<format>.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from resizer.telemetry.logging import LoggerLike

from .classifier import StatsProvider, classify
from .errors import UnsupportedFormatError
from .models import (
    COPY,
    OUTPUT_FORMATS,
    Classification,
    ImageMetadata,
    TransformPlan,
    TransformRequest,
)

_log = logging.getLogger(__name__)

DEFAULT_QUALITY = 80

# Codecs with no lossless mode; they always get the configured quality.
LOSSY_ONLY_FORMATS = frozenset({"jpeg"})


def needs_resize(metadata: ImageMetadata, request: TransformRequest) -> bool:
    """
    True if either bound is set and smaller than the source.

    Zero means unconstrained. Negative bounds are not special-cased: they
    compare smaller than any source dimension and therefore request a resize.
    """
    return bool(
        (request.width and request.width < metadata.width)
        or (request.height and request.height < metadata.height)
    )


def resolve_format(metadata: ImageMetadata, request: TransformRequest) -> tuple[str, bool]:
    """Return ``(format, needs_conversion)``; rejects unsupported conversion targets."""
    if request.target_format == COPY:
        return metadata.format, False
    if metadata.format == request.target_format:
        return metadata.format, False
    if request.target_format not in OUTPUT_FORMATS:
        raise UnsupportedFormatError(request.target_format)
    return request.target_format, True


def plan(
    metadata: ImageMetadata,
    request: TransformRequest,
    *,
    stats_provider: StatsProvider,
    quality: int = DEFAULT_QUALITY,
    log: Optional[LoggerLike] = None,
) -> TransformPlan:
    """
    Build the plan for one request.

    ``stats_provider`` is only called when no lossless override was given and
    the source format does not settle the question on its own.
    """
    log = log or _log
    actions: List[str] = []

    # Orientation is always baked in; it is only reported when non-default.
    if metadata.needs_orientation:
        actions.append("orient")

    if needs_resize(metadata, request):
        actions.append("scale:down")

    fmt, convert = resolve_format(metadata, request)
    if convert:
        actions.append(f"convert:{fmt}")

    classification: Optional[Classification] = None
    if request.lossless is not None:
        lossless = request.lossless
    else:
        classification = classify(metadata, stats_provider, log=log)
        lossless = not classification.lossy_preferred

    result = TransformPlan(
        actions=tuple(actions),
        format=fmt,
        lossless=lossless,
        quality=None if lossless and fmt not in LOSSY_ONLY_FORMATS else quality,
        width=request.width,
        height=request.height,
        orientation=metadata.orientation,
        classification=classification,
    )
    log.debug(
        "planned transform",
        extra={
            "actions": list(result.actions),
            "format": result.format,
            "lossless": result.lossless,
            "quality": result.quality,
        },
    )
    return result


__all__ = ["DEFAULT_QUALITY", "LOSSY_ONLY_FORMATS", "needs_resize", "plan", "resolve_format"]
