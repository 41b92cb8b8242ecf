"""
Transcoding executor.

Runs the planned operations (orientation, fit-inside resize, encode) in a
worker thread and streams the encoded bytes back through a bounded memory
stream:

    encoder thread --(ChunkWriter)--> [bounded buffer] --> OutputStream --> response

Backpressure: the encoder blocks once ``buffer_chunks`` chunks are waiting.
Cancellation: closing the OutputStream breaks the buffer, so the encoder's
next write fails and the codec work stops.
Errors: encode failures travel on a separate channel and are raised from the
consumer side once the buffered bytes have been read.
"""

from __future__ import annotations

import asyncio
import io
import logging
import shutil
import struct
import tempfile
from typing import IO, Any, Dict, List, Optional, Tuple

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from PIL import Image, ImageOps, ImageSequence

from resizer.telemetry import metrics
from resizer.telemetry.logging import LoggerLike

from .errors import EncodeError
from .models import TransformPlan, TransformResult
from .source import DECODE_ERRORS

_log = logging.getLogger(__name__)

DEFAULT_CHUNK_BYTES = 64 * 1024
DEFAULT_BUFFER_CHUNKS = 4

# Encoders that seek while writing; their output is spooled before streaming.
_SEEKING_FORMATS = frozenset({"tiff"})
_SPOOL_MAX_BYTES = 8 * 1024 * 1024

# Output formats able to carry every frame of an animation.
_ANIMATED_FORMATS = frozenset({"webp", "gif", "png", "avif"})
_ICC_FORMATS = frozenset({"jpeg", "png", "webp", "avif", "tiff"})

_CODEC_ERRORS = (OSError, ValueError, KeyError, TypeError, MemoryError)


def fit_inside(size: Tuple[int, int], width: int, height: int) -> Tuple[int, int]:
    """
    Largest size with the same aspect ratio that fits within ``width`` x
    ``height``. Non-positive bounds are unconstrained; never enlarges.
    """
    src_w, src_h = size
    scale = 1.0
    if width > 0:
        scale = min(scale, width / src_w)
    if height > 0:
        scale = min(scale, height / src_h)
    if scale >= 1.0:
        return size
    return max(1, round(src_w * scale)), max(1, round(src_h * scale))


def encoder_options(plan: TransformPlan) -> Dict[str, Any]:
    fmt = plan.format
    if fmt == "webp":
        return {"lossless": True} if plan.lossless else {"quality": plan.quality}
    if fmt == "avif":
        # libavif has no lossless switch in Pillow; max quality without chroma subsampling
        if plan.lossless:
            return {"quality": 100, "subsampling": "4:4:4"}
        return {"quality": plan.quality}
    if fmt == "jpeg" and plan.quality is not None:
        return {"quality": plan.quality}
    return {}


def _oriented(frame: Image.Image) -> Image.Image:
    """Copy of ``frame`` with its EXIF orientation applied (JPEG, TIFF, PNG, WebP, ...)."""
    try:
        return ImageOps.exif_transpose(frame)
    except (struct.error, *DECODE_ERRORS):
        # unreadable EXIF block; the probe reports no orientation for it either
        return frame.copy()


def render_frame(frame: Image.Image, plan: TransformPlan) -> Image.Image:
    frame = _oriented(frame)
    if plan.scale and frame.mode in ("P", "1"):
        frame = frame.convert("RGBA" if "transparency" in frame.info else "RGB")
    if plan.scale:
        target = fit_inside(frame.size, plan.width, plan.height)
        if target != frame.size:
            frame = frame.resize(target, Image.Resampling.LANCZOS)
    return frame


def encode(image: Image.Image, plan: TransformPlan, fp: IO[bytes]) -> None:
    """Apply ``plan`` to ``image`` and write the encoded result to ``fp``."""
    options = encoder_options(plan)
    icc = image.info.get("icc_profile")
    if icc and plan.format in _ICC_FORMATS:
        options["icc_profile"] = icc

    n_frames = getattr(image, "n_frames", 1)
    if n_frames > 1 and plan.format in _ANIMATED_FORMATS:
        frames: List[Image.Image] = []
        durations: List[int] = []
        for frame in ImageSequence.Iterator(image):
            durations.append(int(frame.info.get("duration", 100)))
            frames.append(render_frame(frame, plan))
        frames[0].save(
            fp,
            format=plan.format.upper(),
            save_all=True,
            append_images=frames[1:],
            duration=durations,
            loop=image.info.get("loop", 0),
            **options,
        )
        return

    if n_frames > 1:
        image.seek(0)
    render_frame(image, plan).save(fp, format=plan.format.upper(), **options)


class ChunkWriter(io.RawIOBase):
    """
    Write-only file object handed to Pillow from the encoder thread. Bytes are
    regrouped into ``chunk_size`` pieces and sent to the event loop.
    """

    def __init__(self, send: MemoryObjectSendStream[bytes], chunk_size: int) -> None:
        super().__init__()
        self._send = send
        self._chunk_size = chunk_size
        self._pending = bytearray()
        self._position = 0

    def writable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._position

    def write(self, b: Any) -> int:
        data = bytes(b)
        self._pending.extend(data)
        self._position += len(data)
        while len(self._pending) >= self._chunk_size:
            chunk = bytes(self._pending[: self._chunk_size])
            del self._pending[: self._chunk_size]
            anyio.from_thread.run(self._send.send, chunk)
        return len(data)

    def finish(self) -> None:
        if self._pending:
            chunk = bytes(self._pending)
            self._pending.clear()
            anyio.from_thread.run(self._send.send, chunk)


class OutputStream:
    """Async iterator over encoded bytes; readable once."""

    def __init__(
        self,
        image: Image.Image,
        plan: TransformPlan,
        *,
        chunk_size: int = DEFAULT_CHUNK_BYTES,
        buffer_chunks: int = DEFAULT_BUFFER_CHUNKS,
        log: Optional[LoggerLike] = None,
    ) -> None:
        self._image = image
        self._plan = plan
        self._chunk_size = chunk_size
        self._log = log or _log
        send, receive = anyio.create_memory_object_stream[bytes](max_buffer_size=buffer_chunks)
        self._send = send
        self._receive: MemoryObjectReceiveStream[bytes] = receive
        self._error: Optional[EncodeError] = None
        self._first: Optional[bytes] = None
        self._finished = False
        self._closed = False
        self.aborted = False
        self._task: Optional[asyncio.Task[None]] = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._produce())

    async def _produce(self) -> None:
        try:
            await anyio.to_thread.run_sync(self._encode)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            self.aborted = True
            self._log.info("client went away, encoder stopped")
        except EncodeError as exc:
            self._error = exc
            self._log.error("encode failed: %s", exc)
        except Exception as exc:
            self._error = EncodeError(f"Image encode to {self._plan.format} failed: {exc}")
            self._log.exception("unexpected encoder failure")
        finally:
            self._send.close()

    def _encode(self) -> None:
        writer = ChunkWriter(self._send, self._chunk_size)
        try:
            if self._plan.format in _SEEKING_FORMATS:
                with tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_BYTES) as spool:
                    encode(self._image, self._plan, spool)
                    spool.seek(0)
                    shutil.copyfileobj(spool, writer, self._chunk_size)
            else:
                encode(self._image, self._plan, writer)
        except _CODEC_ERRORS as exc:
            raise EncodeError(f"Image encode to {self._plan.format} failed: {exc}") from exc
        writer.finish()

    async def _next_chunk(self) -> bytes:
        try:
            chunk = await self._receive.receive()
        except anyio.EndOfStream:
            self._finished = True
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        metrics.add_output_bytes(len(chunk))
        return chunk

    async def prime(self) -> None:
        """Wait for the first chunk so early encode failures surface before headers."""
        try:
            self._first = await self._next_chunk()
        except StopAsyncIteration:
            self._first = None

    def __aiter__(self) -> "OutputStream":
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        if self._first is not None:
            chunk, self._first = self._first, None
            return chunk
        return await self._next_chunk()

    async def wait_closed(self) -> None:
        """Wait until the encoder has stopped: finished, failed or aborted."""
        if self._task is not None:
            await self._task

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._receive.close()
        if not self._finished:
            metrics.inc_disconnect()
            self._log.info("output stream closed before completion")
        if self._task is not None:
            # the encoder stops at its next write once the receiver is gone
            with anyio.CancelScope(shield=True):
                await self._task


async def execute(
    image: Image.Image,
    plan: TransformPlan,
    *,
    chunk_size: int = DEFAULT_CHUNK_BYTES,
    buffer_chunks: int = DEFAULT_BUFFER_CHUNKS,
    log: Optional[LoggerLike] = None,
) -> TransformResult:
    """
    Start encoding ``image`` according to ``plan``.

    Raises EncodeError if the codec rejects the encode before producing any
    output. Later failures are raised while iterating ``result.stream``.
    """
    stream = OutputStream(image, plan, chunk_size=chunk_size, buffer_chunks=buffer_chunks, log=log)
    stream.start()
    try:
        await stream.prime()
    except BaseException:
        await stream.aclose()
        raise
    return TransformResult(
        content_type=plan.content_type,
        actions=plan.actions,
        lossless=plan.lossless,
        stream=stream,
    )


__all__ = [
    "ChunkWriter",
    "OutputStream",
    "encode",
    "encoder_options",
    "execute",
    "fit_inside",
    "render_frame",
]
