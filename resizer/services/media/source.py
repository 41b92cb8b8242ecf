"""Incremental adapter between an inbound byte stream and the codec."""

from __future__ import annotations

import io
import logging
from typing import AsyncIterable, AsyncIterator, Optional

import anyio
from PIL import Image

from .errors import DecodeError

log = logging.getLogger(__name__)

# Errors Pillow raises for unreadable or truncated payloads.
DECODE_ERRORS = (OSError, ValueError, EOFError, SyntaxError, Image.DecompressionBombError)


def open_image(data: bytes) -> Image.Image:
    """Open and fully decode ``data``. Runs in a worker thread."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except DECODE_ERRORS as exc:
        raise DecodeError(f"Image decode failed: {exc}") from exc
    return image


class ImageSource:
    """
    Wraps the request body so the probe can look at the first chunks while
    the rest is still arriving.

    The decoded image is produced at most once; later callers (and a failed
    decode) get the cached outcome.
    """

    def __init__(self, chunks: AsyncIterable[bytes]) -> None:
        self._chunks: AsyncIterator[bytes] = chunks.__aiter__()
        self._buffer = bytearray()
        self._exhausted = False
        self._image: Optional[Image.Image] = None
        self._error: Optional[DecodeError] = None
        self._lock = anyio.Lock()

    @property
    def buffered(self) -> bytes:
        return bytes(self._buffer)

    @property
    def size(self) -> int:
        return len(self._buffer)

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    async def read_chunk(self) -> bool:
        """Pull one chunk into the buffer. False once the body has ended."""
        if self._exhausted:
            return False
        try:
            chunk = await self._chunks.__anext__()
        except StopAsyncIteration:
            self._exhausted = True
            return False
        if chunk:
            self._buffer.extend(chunk)
        return True

    async def drain(self) -> None:
        while await self.read_chunk():
            pass

    async def load(self) -> Image.Image:
        async with self._lock:
            if self._image is not None:
                return self._image
            if self._error is not None:
                raise self._error
            await self.drain()
            log.debug("decoding %d buffered bytes", len(self._buffer))
            try:
                self._image = await anyio.to_thread.run_sync(open_image, bytes(self._buffer))
            except DecodeError as exc:
                self._error = exc
                raise
            return self._image


__all__ = ["DECODE_ERRORS", "ImageSource", "open_image"]
