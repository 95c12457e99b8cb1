"""Tests for the pixel transform pipeline."""

import io
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from pixelserve.errors.exceptions import FetchError, ImageProcessingError, ValidationError
from pixelserve.transform.processor import ImageProcessor
from pixelserve.types import ImageFormat, ImageParams

URL = "https://example.com/a.png"


def _open(data: bytes) -> Image.Image:
    return Image.open(io.BytesIO(data))


@pytest.fixture
def processor():
    return ImageProcessor(fetcher=AsyncMock())


class TestEncoding:
    def test_defaults_to_webp(self, processor, sample_image_bytes):
        result = processor.transform(ImageParams(url=URL), sample_image_bytes)
        assert result.format == ImageFormat.WEBP
        assert _open(result.data).format == "WEBP"

    @pytest.mark.parametrize(
        ("fmt", "pil_format"),
        [("png", "PNG"), ("jpg", "JPEG"), ("jpeg", "JPEG"), ("gif", "GIF")],
    )
    def test_output_formats(self, processor, sample_image_bytes, fmt, pil_format):
        result = processor.transform(ImageParams(url=URL, format=fmt), sample_image_bytes)
        assert _open(result.data).format == pil_format

    def test_jpeg_drops_alpha(self, processor, image_factory):
        source = image_factory(mode="RGBA", color=(10, 20, 30, 128))
        result = processor.transform(ImageParams(url=URL, format="jpg"), source)
        assert _open(result.data).mode == "RGB"

    def test_png_keeps_alpha(self, processor, image_factory):
        source = image_factory(mode="RGBA", color=(10, 20, 30, 128))
        result = processor.transform(ImageParams(url=URL, format="png"), source)
        assert _open(result.data).mode == "RGBA"

    def test_undecodable_source(self, processor):
        with pytest.raises(ImageProcessingError):
            processor.transform(ImageParams(url=URL), b"definitely not an image")


class TestResize:
    def _size(self, processor, source, **kwargs):
        params = ImageParams(url=URL, format="png", **kwargs)
        return _open(processor.transform(params, source).data).size

    def test_width_only_keeps_aspect(self, processor, image_factory):
        source = image_factory(size=(200, 100))
        assert self._size(processor, source, w=100) == (100, 50)

    def test_height_only_keeps_aspect(self, processor, image_factory):
        source = image_factory(size=(200, 100))
        assert self._size(processor, source, h=50) == (100, 50)

    def test_never_enlarges(self, processor, image_factory):
        source = image_factory(size=(50, 40))
        assert self._size(processor, source, w=400) == (50, 40)

    def test_cover_crops_to_box(self, processor, image_factory):
        source = image_factory(size=(200, 100))
        assert self._size(processor, source, w=50, h=50) == (50, 50)

    def test_inside_fits_within_box(self, processor, image_factory):
        source = image_factory(size=(200, 100))
        assert self._size(processor, source, w=50, h=50, fit="inside") == (50, 25)

    def test_outside_covers_box(self, processor, image_factory):
        source = image_factory(size=(200, 100))
        assert self._size(processor, source, w=50, h=40, fit="outside") == (80, 40)

    def test_fill_ignores_aspect(self, processor, image_factory):
        source = image_factory(size=(200, 100))
        assert self._size(processor, source, w=60, h=60, fit="fill") == (60, 60)

    def test_contain_letterboxes(self, processor, image_factory):
        source = image_factory(size=(200, 100))
        assert self._size(processor, source, w=50, h=50, fit="contain") == (50, 50)

    def test_size_percentage(self, processor, image_factory):
        source = image_factory(size=(200, 100))
        assert self._size(processor, source, size=50) == (100, 50)

    def test_size_100_is_noop(self, processor, image_factory):
        source = image_factory(size=(200, 100))
        assert self._size(processor, source, size=100, w=10) == (200, 100)


class TestAdjustments:
    def test_rotate_90_swaps_dimensions(self, processor, image_factory):
        source = image_factory(size=(60, 30))
        params = ImageParams(url=URL, format="png", rotate=90)
        assert _open(processor.transform(params, source).data).size == (30, 60)

    def test_rotate_360_is_noop(self, processor, image_factory):
        source = image_factory(size=(60, 30))
        params = ImageParams(url=URL, format="png", rotate=360)
        assert _open(processor.transform(params, source).data).size == (60, 30)

    def test_grayscale(self, processor, sample_image_bytes):
        params = ImageParams(url=URL, format="png", grayscale=True)
        r, g, b = _open(processor.transform(params, sample_image_bytes).data).convert("RGB").getpixel((5, 5))
        assert r == g == b

    def test_flop_mirrors_horizontally(self, processor):
        img = Image.new("RGB", (2, 1))
        img.putpixel((0, 0), (255, 0, 0))
        img.putpixel((1, 0), (0, 0, 255))
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        params = ImageParams(url=URL, format="png", flop=True)
        out = _open(processor.transform(params, buf.getvalue()).data).convert("RGB")
        assert out.getpixel((0, 0)) == (0, 0, 255)

    def test_brightness_zero_is_black(self, processor, sample_image_bytes):
        params = ImageParams(url=URL, format="png", brightness=0)
        out = _open(processor.transform(params, sample_image_bytes).data).convert("RGB")
        assert out.getpixel((0, 0)) == (0, 0, 0)

    def test_blur_and_sharpen_keep_size(self, processor, sample_image_bytes):
        params = ImageParams(url=URL, format="png", blur=2, sharpen=1)
        assert _open(processor.transform(params, sample_image_bytes).data).size == (64, 48)

    def test_tint(self, processor, image_factory):
        source = image_factory(color=(128, 128, 128))
        params = ImageParams(url=URL, format="png", tint="ff0000")
        r, g, b = _open(processor.transform(params, source).data).convert("RGB").getpixel((0, 0))
        assert r > g and r > b

    def test_trim_removes_uniform_border(self, processor):
        img = Image.new("RGB", (40, 40), (255, 255, 255))
        img.paste((0, 0, 0), (10, 10, 30, 30))
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        params = ImageParams(url=URL, format="png", trim=True)
        assert _open(processor.transform(params, buf.getvalue()).data).size == (20, 20)


class TestCrop:
    def test_crop_region(self, processor, image_factory):
        source = image_factory(size=(100, 80))
        params = ImageParams(url=URL, format="png", crop="10,10,30,20")
        assert _open(processor.transform(params, source).data).size == (30, 20)

    def test_crop_out_of_bounds(self, processor, image_factory):
        source = image_factory(size=(100, 80))
        params = ImageParams(url=URL, crop="90,10,30,20")
        with pytest.raises(ValidationError, match="bounds"):
            processor.transform(params, source)

    def test_zero_size_crop(self, processor, image_factory):
        params = ImageParams(url=URL, crop="0,0,0,10")
        with pytest.raises(ValidationError):
            processor.transform(params, image_factory())


class TestWatermark:
    def test_text_watermark_changes_pixels(self, processor, image_factory):
        source = image_factory(size=(200, 100), color=(0, 0, 0))
        params = ImageParams(
            url=URL, format="png", wm_text="hello", wm_opacity=1, wm_position="center"
        )
        out = _open(processor.transform(params, source).data).convert("RGB")
        assert out.size == (200, 100)
        assert out.getbbox() is not None

    def test_image_watermark_scaled_and_placed(self, processor, image_factory):
        source = image_factory(size=(200, 100), color=(0, 0, 0))
        mark = image_factory(size=(50, 50), color=(255, 255, 255))
        params = ImageParams(
            url=URL, format="png", wm_image="https://example.com/wm.png",
            wm_scale=10, wm_position="top left",
        )
        out = _open(processor.transform(params, source, mark).data).convert("RGB")
        assert out.getpixel((5, 5)) == (255, 255, 255)
        assert out.getpixel((150, 80)) == (0, 0, 0)

    def test_oversized_watermark_clipped(self, processor, image_factory):
        source = image_factory(size=(20, 20))
        mark = image_factory(size=(80, 80), color=(0, 255, 0))
        params = ImageParams(url=URL, format="png", wm_image="https://example.com/wm.png")
        out = _open(processor.transform(params, source, mark).data)
        assert out.size == (20, 20)


class TestProcess:
    async def test_fetches_source(self, sample_image_bytes):
        fetcher = AsyncMock()
        fetcher.fetch.return_value = sample_image_bytes
        processor = ImageProcessor(fetcher=fetcher)
        result = await processor.process(ImageParams(url=URL, format="png"))
        fetcher.fetch.assert_awaited_once_with(URL)
        assert _open(result.data).format == "PNG"

    async def test_fetches_watermark_image(self, sample_image_bytes):
        fetcher = AsyncMock()
        fetcher.fetch.return_value = sample_image_bytes
        processor = ImageProcessor(fetcher=fetcher)
        await processor.process(ImageParams(url=URL, wm_image="https://example.com/wm.png"))
        assert fetcher.fetch.await_count == 2

    async def test_fetch_errors_propagate_unchanged(self):
        fetcher = AsyncMock()
        fetcher.fetch.side_effect = FetchError("Failed to fetch image: 404 Not Found", http_status=404)
        processor = ImageProcessor(fetcher=fetcher)
        with pytest.raises(FetchError) as exc_info:
            await processor.process(ImageParams(url=URL))
        assert exc_info.value.status_code == 502

    async def test_unexpected_errors_wrapped(self):
        fetcher = AsyncMock()
        fetcher.fetch.side_effect = RuntimeError("kaboom")
        processor = ImageProcessor(fetcher=fetcher)
        with pytest.raises(ImageProcessingError, match="kaboom"):
            await processor.process(ImageParams(url=URL))

    async def test_supplied_source_skips_fetch(self, sample_image_bytes):
        fetcher = AsyncMock()
        processor = ImageProcessor(fetcher=fetcher)
        await processor.process(ImageParams(url=URL), source=sample_image_bytes)
        fetcher.fetch.assert_not_awaited()
