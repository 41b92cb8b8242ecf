"""
Metadata probe.

Reads only as much of the body as the container header needs: after each
chunk it tries to open the buffered prefix, and stops at the first success.
Pixel data is never decoded here.
"""

from __future__ import annotations

import io
import logging
import struct
from typing import Optional

import anyio
from PIL import ExifTags, Image, PngImagePlugin

from resizer.telemetry.logging import LoggerLike

from .errors import DecodeError
from .models import ImageMetadata
from .source import DECODE_ERRORS, ImageSource

_log = logging.getLogger(__name__)

DEFAULT_PROBE_MAX_BYTES = 1024 * 1024

_ALPHA_MODES = frozenset({"RGBA", "LA", "PA", "RGBa", "La"})

# Pillow format names that are reported under another name.
_FORMAT_ALIASES = {"mpo": "jpeg"}


def _orientation(image: Image.Image) -> Optional[int]:
    # PNG only finds a trailing eXIf chunk by decoding the pixels; the probe
    # goes by what precedes the image data.
    if isinstance(image, PngImagePlugin.PngImageFile) and "exif" not in image.info:
        return None
    try:
        value = image.getexif().get(ExifTags.Base.Orientation)
    except (struct.error, *DECODE_ERRORS):
        # unreadable EXIF block; treat the tag as absent
        return None
    return int(value) if value is not None else None


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in _ALPHA_MODES or "transparency" in image.info


def webp_is_lossless(data: bytes) -> Optional[bool]:
    """
    Walk the RIFF chunks of a WebP file looking for the first bitstream.

    ``VP8L`` is lossless, ``VP8 `` is lossy. Animation frames (``ANMF``) are
    searched too. Returns None if no bitstream chunk is within ``data``.
    """
    if len(data) < 16 or data[:4] != b"RIFF" or data[8:12] != b"WEBP":
        return None
    return _scan_webp_chunks(data, 12, len(data))


def _scan_webp_chunks(data: bytes, offset: int, end: int) -> Optional[bool]:
    while offset + 8 <= end:
        fourcc = data[offset : offset + 4]
        (size,) = struct.unpack("<I", data[offset + 4 : offset + 8])
        body = offset + 8
        if fourcc == b"VP8L":
            return True
        if fourcc == b"VP8 ":
            return False
        if fourcc == b"ANMF":
            # 16-byte frame header precedes the frame's own chunks
            found = _scan_webp_chunks(data, body + 16, min(body + size, end))
            if found is not None:
                return found
        offset = body + size + (size & 1)
    return None


def metadata_from_header(data: bytes) -> Optional[ImageMetadata]:
    """Parse container metadata from a (possibly partial) buffer; None if not enough."""
    if not data:
        return None
    try:
        with Image.open(io.BytesIO(data)) as image:
            fmt = (image.format or "").lower()
            fmt = _FORMAT_ALIASES.get(fmt, fmt)
            width, height = image.size
            return ImageMetadata(
                width=width,
                height=height,
                format=fmt,
                orientation=_orientation(image),
                has_alpha=_has_alpha(image),
                webp_lossless=webp_is_lossless(data) if fmt == "webp" else None,
            )
    except DECODE_ERRORS:
        return None


async def probe(
    source: ImageSource,
    *,
    max_bytes: int = DEFAULT_PROBE_MAX_BYTES,
    log: Optional[LoggerLike] = None,
) -> ImageMetadata:
    """
    Return the metadata of the image arriving through ``source``.

    Raises DecodeError when the whole body has arrived and still is not a
    recognizable image (empty, truncated header, non-image payload).
    """
    log = log or _log
    while True:
        more = await source.read_chunk()
        if more and source.size > max_bytes:
            # Header is unusually large (or this is not an image); stop
            # retrying on every chunk and try once the body is complete.
            await source.drain()
            more = False
        if source.size == 0 and more:
            continue
        meta = await anyio.to_thread.run_sync(metadata_from_header, source.buffered)
        if meta is not None:
            log.debug(
                "Image info: width=%s, height=%s, format=%s",
                meta.width,
                meta.height,
                meta.format,
                extra={"probe_bytes": source.size},
            )
            return meta
        if not more:
            break
    if source.size == 0:
        raise DecodeError("Empty request body: expected image data")
    raise DecodeError("Input is not a recognizable image")


__all__ = ["DEFAULT_PROBE_MAX_BYTES", "metadata_from_header", "probe", "webp_is_lossless"]
