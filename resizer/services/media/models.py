"""Value types passed between the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Protocol, Tuple

# Formats the planner may convert to.
OUTPUT_FORMATS: Tuple[str, ...] = ("webp", "avif")

# Sentinel target meaning "keep the source format".
COPY = "copy"

# Orientation tag value meaning "no transform".
NORMAL_ORIENTATION = 1


@dataclass(frozen=True)
class ImageMetadata:
    width: int
    height: int
    format: str
    orientation: Optional[int] = None
    has_alpha: bool = False
    # Only known for WebP sources; None when the bitstream was not found.
    webp_lossless: Optional[bool] = None

    @property
    def is_lossy_source(self) -> bool:
        if self.format == "jpeg":
            return True
        return self.format == "webp" and self.webp_lossless is False

    @property
    def needs_orientation(self) -> bool:
        return (self.orientation or NORMAL_ORIENTATION) != NORMAL_ORIENTATION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "format": self.format,
            "orientation": self.orientation,
            "hasAlpha": self.has_alpha,
        }


@dataclass(frozen=True)
class PixelStatistics:
    is_opaque: bool
    entropy: float
    channel_std_dev: float
    error: Optional[str] = None

    @classmethod
    def failed(cls, message: str) -> "PixelStatistics":
        return cls(is_opaque=False, entropy=0.0, channel_std_dev=0.0, error=message)

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {
            "isOpaque": self.is_opaque,
            "entropy": self.entropy,
            "standardDeviation": self.channel_std_dev,
        }


@dataclass(frozen=True)
class Classification:
    lossy_preferred: bool
    # None when the source format alone decided the verdict.
    stats: Optional[PixelStatistics] = None


@dataclass(frozen=True)
class TransformRequest:
    """
    Caller-supplied options.

    ``width``/``height`` of 0 mean "unconstrained". Negative values are passed
    through untouched and compare as smaller than any source dimension.
    """

    width: int = 0
    height: int = 0
    target_format: str = COPY
    lossless: Optional[bool] = None


@dataclass(frozen=True)
class TransformPlan:
    actions: Tuple[str, ...]
    format: str
    lossless: bool
    # None when lossless; the encoder ignores quality then.
    quality: Optional[int]
    width: int = 0
    height: int = 0
    orientation: Optional[int] = None
    classification: Optional[Classification] = field(default=None, compare=False)

    @property
    def content_type(self) -> str:
        return f"image/{self.format}"

    @property
    def scale(self) -> bool:
        return "scale:down" in self.actions

    @property
    def convert(self) -> bool:
        return any(a.startswith("convert:") for a in self.actions)


class ByteStream(Protocol):
    """Encoded output; iterate once, then close."""

    def __aiter__(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


@dataclass
class TransformResult:
    content_type: str
    actions: Tuple[str, ...]
    lossless: bool
    stream: ByteStream

    @property
    def actions_header(self) -> str:
        return ", ".join(self.actions)


__all__ = [
    "COPY",
    "ByteStream",
    "NORMAL_ORIENTATION",
    "OUTPUT_FORMATS",
    "Classification",
    "ImageMetadata",
    "PixelStatistics",
    "TransformPlan",
    "TransformRequest",
    "TransformResult",
]
