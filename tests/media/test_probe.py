from __future__ import annotations

import pytest

from resizer.services.media.errors import DecodeError
from resizer.services.media.probe import metadata_from_header, probe, webp_is_lossless
from resizer.services.media.source import ImageSource
from tests.testlib.images import chunked, encode, flat_image, noise_image


async def test_probe_reads_png_header(photo_png):
    source = ImageSource(chunked(photo_png, size=1024))
    meta = await probe(source)
    assert (meta.width, meta.height) == (400, 300)
    assert meta.format == "png"
    assert meta.orientation is None
    assert meta.has_alpha is False
    assert meta.is_lossy_source is False
    # header fits in the first chunk; the rest of the body is still unread
    assert source.size < len(photo_png)
    assert source.exhausted is False


async def test_probe_reads_jpeg_orientation():
    data = encode(noise_image((40, 30)), "JPEG", orientation=6)
    meta = await probe(ImageSource(chunked(data)))
    assert meta.format == "jpeg"
    assert meta.orientation == 6
    assert meta.needs_orientation is True
    assert meta.is_lossy_source is True


async def test_probe_reports_alpha():
    data = encode(flat_image((20, 20), mode="RGBA"), "PNG")
    meta = await probe(ImageSource(chunked(data)))
    assert meta.has_alpha is True


async def test_probe_waits_for_split_header():
    data = encode(noise_image((40, 30)), "PNG")
    meta = await probe(ImageSource(chunked(data, size=7)))
    assert (meta.width, meta.height) == (40, 30)


async def test_empty_body_is_decode_error():
    with pytest.raises(DecodeError, match="Empty request body"):
        await probe(ImageSource(chunked(b"")))


async def test_non_image_is_decode_error():
    with pytest.raises(DecodeError, match="not a recognizable image"):
        await probe(ImageSource(chunked(b"hello, this is plain text" * 10)))


async def test_truncated_header_is_decode_error(photo_png):
    with pytest.raises(DecodeError):
        await probe(ImageSource(chunked(photo_png[:12])))


async def test_truncated_pixels_fail_on_load(photo_png):
    source = ImageSource(chunked(photo_png[: len(photo_png) // 2], size=2048))
    await probe(source)
    with pytest.raises(DecodeError):
        await source.load()
    # the failure is cached
    with pytest.raises(DecodeError):
        await source.load()


def test_webp_lossless_detection():
    image = noise_image((16, 16))
    assert webp_is_lossless(encode(image, "WEBP", lossless=True)) is True
    assert webp_is_lossless(encode(image, "WEBP", quality=80)) is False
    assert webp_is_lossless(encode(image, "PNG")) is None


def test_webp_lossless_detection_with_alpha():
    # alpha forces the extended (VP8X) container
    image = noise_image((16, 16), mode="RGBA")
    assert webp_is_lossless(encode(image, "WEBP", quality=80)) is False
    assert webp_is_lossless(encode(image, "WEBP", lossless=True)) is True


def test_header_metadata_for_lossy_webp():
    meta = metadata_from_header(encode(noise_image((16, 16)), "WEBP", quality=70))
    assert meta is not None
    assert meta.format == "webp"
    assert meta.webp_lossless is False
    assert meta.is_lossy_source is True


def test_header_metadata_needs_bytes():
    assert metadata_from_header(b"") is None


async def test_probe_reads_tiff_orientation():
    data = encode(noise_image((40, 30)), "TIFF", orientation=6)
    meta = await probe(ImageSource(chunked(data)))
    assert meta.format == "tiff"
    assert meta.orientation == 6
