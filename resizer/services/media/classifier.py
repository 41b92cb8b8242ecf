"""
Photo/graphic classifier.

Recommends lossy output for photographs stored in lossless containers while
keeping graphics and screenshots lossless:

- JPEG and lossy WebP sources are already lossy, nothing to analyse.
- Otherwise an opaque image whose greyscale entropy exceeds
  ``PHOTO_ENTROPY_THRESHOLD`` is treated as a photo.

Statistics failures never propagate: the verdict falls back to lossy and the
error is kept on the returned stats for observability.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from PIL import Image, ImageStat

from resizer.telemetry import metrics
from resizer.telemetry.logging import LoggerLike

from .errors import StatisticsError
from .models import Classification, ImageMetadata, PixelStatistics

_log = logging.getLogger(__name__)

PHOTO_ENTROPY_THRESHOLD = 6.0
# Computed and reported, but not part of the verdict.
PHOTO_STD_DEV_THRESHOLD = 28.0

StatsProvider = Callable[[], PixelStatistics]


def _normalized(image: Image.Image) -> Image.Image:
    if image.mode in ("L", "LA", "RGB", "RGBA"):
        return image
    if image.mode == "P" and "transparency" in image.info:
        return image.convert("RGBA")
    if image.mode in ("PA", "La", "RGBa"):
        return image.convert("RGBA")
    return image.convert("RGB")


def compute_statistics(image: Image.Image) -> PixelStatistics:
    """
    Opacity, greyscale entropy and first-channel standard deviation of the
    first frame of ``image``. Raises StatisticsError on any codec failure.
    """
    try:
        pixels = _normalized(image)
        if "A" in pixels.getbands():
            low, _high = pixels.getchannel("A").getextrema()
            is_opaque = low == 255
        else:
            is_opaque = True
        entropy = float(pixels.convert("L").entropy())
        std_dev = float(ImageStat.Stat(pixels).stddev[0])
    except (OSError, ValueError, TypeError, IndexError, MemoryError) as exc:
        raise StatisticsError(f"Failed to analyze image stats: {exc}") from exc
    return PixelStatistics(is_opaque=is_opaque, entropy=entropy, channel_std_dev=std_dev)


def classify(
    metadata: ImageMetadata,
    stats_provider: StatsProvider,
    *,
    log: Optional[LoggerLike] = None,
) -> Classification:
    log = log or _log
    if metadata.is_lossy_source:
        log.debug("source %s is already lossy", metadata.format)
        return Classification(lossy_preferred=True)

    try:
        stats = stats_provider()
    except Exception as exc:
        # any failure, corrupt pixel data included
        metrics.inc_stats_failure()
        log.warning("pixel statistics failed, defaulting to lossy: %s", exc)
        return Classification(lossy_preferred=True, stats=PixelStatistics.failed(str(exc)))

    lossy = stats.is_opaque and stats.entropy > PHOTO_ENTROPY_THRESHOLD
    log.debug(
        "classified image as %s",
        "photo" if lossy else "graphic",
        extra={
            "entropy": round(stats.entropy, 3),
            "std_dev": round(stats.channel_std_dev, 3),
            "opaque": stats.is_opaque,
        },
    )
    return Classification(lossy_preferred=lossy, stats=stats)


__all__ = [
    "PHOTO_ENTROPY_THRESHOLD",
    "PHOTO_STD_DEV_THRESHOLD",
    "StatsProvider",
    "classify",
    "compute_statistics",
]
