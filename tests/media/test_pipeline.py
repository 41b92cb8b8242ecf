from __future__ import annotations

import pytest

from resizer.services.media.errors import DecodeError, UnsupportedFormatError
from resizer.services.media.models import TransformRequest
from resizer.services.media.pipeline import PipelineOptions, inspect, transform
from tests.testlib.images import chunked, decode, encode, flat_image, noise_image


async def _run(data: bytes, request: TransformRequest, **kwargs):
    result = await transform(chunked(data), request, **kwargs)
    body = bytearray()
    async for chunk in result.stream:
        body.extend(chunk)
    await result.stream.aclose()
    return result, decode(bytes(body))


async def test_copy_resize_keeps_png(photo_png):
    result, out = await _run(photo_png, TransformRequest(width=100, target_format="copy"))
    assert result.actions == ("scale:down",)
    assert result.content_type == "image/png"
    assert out.format == "PNG"
    assert out.size == (100, 75)


async def test_convert_without_resize(photo_png):
    result, out = await _run(photo_png, TransformRequest(width=0, target_format="webp"))
    assert result.actions == ("convert:webp",)
    assert result.content_type == "image/webp"
    assert out.format == "WEBP"
    assert out.size == (400, 300)


async def test_no_upscale(photo_png):
    result, out = await _run(photo_png, TransformRequest(width=5000))
    assert result.actions == ()
    assert out.size == (400, 300)


async def test_photo_png_goes_lossy(photo_png):
    result, _ = await _run(photo_png, TransformRequest(target_format="webp"))
    assert result.lossless is False


async def test_graphic_png_stays_lossless(graphic_png):
    result, _ = await _run(graphic_png, TransformRequest(target_format="webp"))
    assert result.lossless is True


async def test_jpeg_goes_lossy(photo_jpeg):
    result, _ = await _run(photo_jpeg, TransformRequest(target_format="webp"))
    assert result.lossless is False


@pytest.mark.parametrize("override", [True, False])
async def test_override_is_reported(photo_png, override):
    result, _ = await _run(photo_png, TransformRequest(target_format="webp", lossless=override))
    assert result.lossless is override


async def test_orientation_is_baked_in_and_reported():
    data = encode(noise_image((400, 300)), "JPEG", orientation=6)
    result, out = await _run(data, TransformRequest(width=150, target_format="webp"))
    assert result.actions == ("orient", "scale:down", "convert:webp")
    assert out.size == (150, 200)


async def test_unsupported_target_rejected_for_valid_image(photo_png):
    with pytest.raises(UnsupportedFormatError, match="Unsupported target format: bmp"):
        await transform(chunked(photo_png), TransformRequest(target_format="bmp"))


async def test_garbage_body_is_decode_error():
    with pytest.raises(DecodeError):
        await transform(chunked(b"\x00" * 100), TransformRequest(target_format="webp"))


async def test_quality_option_reaches_encoder(photo_png):
    small = PipelineOptions(quality=10)
    large = PipelineOptions(quality=95)
    req = TransformRequest(target_format="webp", lossless=False)

    async def _size(opts):
        result = await transform(chunked(photo_png), req, options=opts)
        n = 0
        async for chunk in result.stream:
            n += len(chunk)
        await result.stream.aclose()
        return n

    assert await _size(small) < await _size(large)


async def test_inspect_without_stats(photo_png):
    info = await inspect(chunked(photo_png))
    assert info.metadata.width == 400
    assert info.stats is None
    assert info.lossy_preferred is None


async def test_inspect_with_stats_for_jpeg(photo_jpeg):
    info = await inspect(chunked(photo_jpeg), with_stats=True)
    assert info.stats is not None
    assert info.stats.entropy > 0
    assert info.lossy_preferred is True


async def test_inspect_with_stats_for_graphic():
    data = encode(flat_image((50, 50), mode="RGBA"), "PNG")
    info = await inspect(chunked(data), with_stats=True)
    assert info.metadata.has_alpha is True
    assert info.stats.is_opaque is True
    assert info.lossy_preferred is False


async def test_inspect_reports_truncated_pixels_as_stats_error(photo_png):
    info = await inspect(chunked(photo_png[: len(photo_png) // 2]), with_stats=True)
    assert info.metadata.width == 400
    assert info.stats.error is not None
    assert "truncated" in info.stats.error
    assert info.lossy_preferred is True


async def test_truncated_pixels_still_fail_resize(photo_png):
    request = TransformRequest(target_format="webp")
    with pytest.raises(DecodeError):
        await transform(chunked(photo_png[: len(photo_png) // 2]), request)


async def test_tiff_orientation_is_reported():
    data = encode(noise_image((40, 30)), "TIFF", orientation=6)
    result, out = await _run(data, TransformRequest(target_format="webp"))
    assert result.actions == ("orient", "convert:webp")
    assert out.size == (30, 40)
