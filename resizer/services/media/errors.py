"""Errors raised by the image pipeline.

All of them are terminal for the request; nothing here is retried.
"""

from __future__ import annotations


class MediaError(Exception):
    """Base class for failures surfaced to the HTTP layer."""


class DecodeError(MediaError):
    """Input is not a recognizable image, or is truncated."""


class UnsupportedFormatError(MediaError):
    def __init__(self, fmt: str) -> None:
        super().__init__(f"Unsupported target format: {fmt}")
        self.format = fmt


class EncodeError(MediaError):
    """The codec rejected the requested encode."""


class StatisticsError(MediaError):
    """Pixel statistics could not be computed. Recovered by the classifier."""


__all__ = [
    "MediaError",
    "DecodeError",
    "UnsupportedFormatError",
    "EncodeError",
    "StatisticsError",
]
