"""Pixel transform pipeline: decode, transform, encode with Pillow."""

from __future__ import annotations

import asyncio
import io
import logging
from collections.abc import Callable

from PIL import Image, ImageChops, ImageColor, ImageDraw, ImageEnhance, ImageFilter, ImageOps

from pixelserve.config.schema import ServiceConfig
from pixelserve.errors.exceptions import (
    ImageProcessingError,
    PixelServeError,
    ValidationError,
)
from pixelserve.transform.fetcher import ImageFetcher
from pixelserve.types import FitMode, ImageFormat, ImageParams, ProcessedImage
from pixelserve.utils.fonts import DEFAULT_FONT_FAMILY, load_font
from pixelserve.utils.url_validator import sanitize_hex_color

logger = logging.getLogger(__name__)

# (x, y) centering for resize positions and watermark gravity
_CENTERING: dict[str, tuple[float, float]] = {
    "center": (0.5, 0.5),
    "top": (0.5, 0.0),
    "bottom": (0.5, 1.0),
    "left": (0.0, 0.5),
    "right": (1.0, 0.5),
    "top left": (0.0, 0.0),
    "top right": (1.0, 0.0),
    "bottom left": (0.0, 1.0),
    "bottom right": (1.0, 1.0),
}

_TRIM_THRESHOLD = 10
_DEFAULT_WM_POSITION = "bottom right"
_DEFAULT_WM_FONTSIZE = 24
_DEFAULT_WM_TEXT_OPACITY = 0.7

_SAVE_FORMATS: dict[ImageFormat, str] = {
    ImageFormat.WEBP: "WEBP",
    ImageFormat.AVIF: "AVIF",
    ImageFormat.PNG: "PNG",
    ImageFormat.JPG: "JPEG",
    ImageFormat.JPEG: "JPEG",
    ImageFormat.GIF: "GIF",
}


class ImageProcessor:
    """Applies an ImageParams transform to source bytes.

    Remote inputs (source image, watermark image) are fetched first; the
    CPU-bound Pillow work then runs in a worker thread.
    """

    def __init__(
        self,
        config: ServiceConfig | None = None,
        fetcher: ImageFetcher | None = None,
    ) -> None:
        self._config = config or ServiceConfig()
        self._fetcher = fetcher or ImageFetcher(self._config)

    async def process(self, params: ImageParams, source: bytes | None = None) -> ProcessedImage:
        try:
            image_bytes = source if source is not None else await self._fetcher.fetch(params.url)
            watermark_bytes = None
            if params.wm_image and not params.wm_text:
                watermark_bytes = await self._fetcher.fetch(params.wm_image)
            return await asyncio.to_thread(self.transform, params, image_bytes, watermark_bytes)
        except PixelServeError:
            raise
        except Exception as e:
            raise ImageProcessingError(f"Image processing failed: {e}") from e

    def transform(
        self,
        params: ImageParams,
        image_bytes: bytes,
        watermark_bytes: bytes | None = None,
    ) -> ProcessedImage:
        """Run the whole pipeline synchronously on already-fetched bytes."""
        try:
            img = _decode(image_bytes)
            img = ImageOps.exif_transpose(img)

            if params.crop:
                img = _crop(img, params.crop)
            img = self._resize(img, params)

            if params.rotate is not None:
                angle = params.rotate % 360
                if angle:
                    img = img.rotate(-angle, expand=True, resample=Image.Resampling.BICUBIC)
            if params.flip:
                img = ImageOps.flip(img)
            if params.flop:
                img = ImageOps.mirror(img)

            if params.brightness is not None:
                img = _on_rgb(img, lambda rgb: ImageEnhance.Brightness(rgb).enhance(params.brightness))
            if params.saturation is not None:
                img = _on_rgb(img, lambda rgb: ImageEnhance.Color(rgb).enhance(params.saturation))
            if params.grayscale:
                img = _on_rgb(img, lambda rgb: ImageOps.grayscale(rgb).convert("RGB"))
            if params.tint:
                img = _tint(img, params.tint)
            if params.blur is not None:
                sigma = min(max(params.blur, 0.3), 1000)
                img = img.filter(ImageFilter.GaussianBlur(radius=sigma))
            if params.sharpen is not None:
                img = img.filter(ImageFilter.UnsharpMask(radius=max(params.sharpen, 0.5)))
            if params.trim:
                img = _trim(img)

            if params.wm_text:
                img = _composite(img, _text_watermark(params), params)
            elif watermark_bytes is not None:
                img = _composite(img, _image_watermark(watermark_bytes, img.width, params), params)

            fmt = params.format or ImageFormat(self._config.default_format)
            quality = params.q or self._config.default_quality
            return ProcessedImage(data=_encode(img, fmt, quality), format=fmt)
        except PixelServeError:
            raise
        except Exception as e:
            raise ImageProcessingError(f"Image processing failed: {e}") from e

    def _resize(self, img: Image.Image, params: ImageParams) -> Image.Image:
        if params.size is not None:
            if params.size >= 100:
                return img
            scale = max(1, params.size) / 100
            target = (max(1, round(img.width * scale)), max(1, round(img.height * scale)))
            return img.resize(target, Image.Resampling.LANCZOS)

        if params.w is None and params.h is None:
            return img

        width = min(max(1, params.w), self._config.max_width) if params.w else None
        height = min(max(1, params.h), self._config.max_height) if params.h else None
        centering = _CENTERING.get(params.position or "center", (0.5, 0.5))
        return _fit(img, width, height, params.fit or FitMode.COVER, centering)


def _decode(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, Image.DecompressionBombError) as e:
        raise ImageProcessingError(f"Could not decode image: {e}") from e
    has_alpha = img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info
    return img.convert("RGBA" if has_alpha else "RGB")


def _crop(img: Image.Image, crop: str) -> Image.Image:
    try:
        left, top, width, height = (int(p) for p in crop.split(","))
    except ValueError as e:
        raise ValidationError("Invalid crop format. Expected: x,y,width,height") from e
    if left < 0 or top < 0 or width <= 0 or height <= 0:
        raise ValidationError("Invalid crop dimensions")
    if left + width > img.width or top + height > img.height:
        raise ValidationError("Crop area exceeds image bounds")
    return img.crop((left, top, left + width, top + height))


def _fit(
    img: Image.Image,
    width: int | None,
    height: int | None,
    fit: FitMode,
    centering: tuple[float, float],
) -> Image.Image:
    """Resize to a bounding box without ever enlarging the source."""
    src_w, src_h = img.size

    if width is None or height is None:
        if width is not None:
            scale = width / src_w
        else:
            scale = height / src_h
        if scale >= 1:
            return img
        target = (max(1, round(src_w * scale)), max(1, round(src_h * scale)))
        return img.resize(target, Image.Resampling.LANCZOS)

    if width >= src_w and height >= src_h and fit != FitMode.CONTAIN:
        return img

    if fit == FitMode.FILL:
        return img.resize((min(width, src_w), min(height, src_h)), Image.Resampling.LANCZOS)

    if fit == FitMode.COVER:
        return ImageOps.fit(
            img,
            (min(width, src_w), min(height, src_h)),
            method=Image.Resampling.LANCZOS,
            centering=centering,
        )

    if fit == FitMode.OUTSIDE:
        scale = min(max(width / src_w, height / src_h), 1.0)
    else:  # INSIDE, CONTAIN
        scale = min(width / src_w, height / src_h, 1.0)
    target = (max(1, round(src_w * scale)), max(1, round(src_h * scale)))
    resized = img.resize(target, Image.Resampling.LANCZOS) if target != img.size else img

    if fit != FitMode.CONTAIN:
        return resized

    # Letterbox onto a transparent canvas of exactly width x height
    canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    offset = (
        round((width - resized.width) * centering[0]),
        round((height - resized.height) * centering[1]),
    )
    canvas.paste(resized.convert("RGBA"), offset)
    return canvas


def _on_rgb(img: Image.Image, fn: Callable[[Image.Image], Image.Image]) -> Image.Image:
    """Apply ``fn`` to the colour channels, leaving alpha untouched."""
    if img.mode != "RGBA":
        return fn(img.convert("RGB"))
    alpha = img.getchannel("A")
    result = fn(img.convert("RGB")).convert("RGBA")
    result.putalpha(alpha)
    return result


def _tint(img: Image.Image, tint: str) -> Image.Image:
    color = ImageColor.getrgb(f"#{sanitize_hex_color(tint)}")
    return _on_rgb(
        img,
        lambda rgb: ImageOps.colorize(ImageOps.grayscale(rgb), black="black", white="white", mid=color),
    )


def _trim(img: Image.Image) -> Image.Image:
    rgb = img.convert("RGB")
    background = Image.new("RGB", rgb.size, rgb.getpixel((0, 0)))
    diff = ImageChops.difference(rgb, background).convert("L")
    bbox = diff.point(lambda p: 255 if p > _TRIM_THRESHOLD else 0).getbbox()
    if bbox is None:
        return img
    return img.crop(bbox)


def _parse_rgba(hex_color: str) -> tuple[int, int, int, int]:
    try:
        rgba = ImageColor.getrgb(f"#{hex_color}")
    except ValueError as e:
        raise ValidationError(f"Invalid hex color: {hex_color}") from e
    if len(rgba) == 3:
        return (*rgba, 255)
    return rgba  # type: ignore[return-value]


def _text_watermark(params: ImageParams) -> Image.Image:
    font = load_font(params.wm_font or DEFAULT_FONT_FAMILY, params.wm_fontsize or _DEFAULT_WM_FONTSIZE)
    r, g, b, a = _parse_rgba(params.wm_color or "ffffff")
    opacity = params.wm_opacity if params.wm_opacity is not None else _DEFAULT_WM_TEXT_OPACITY

    left, top, right, bottom = font.getbbox(params.wm_text)
    layer = Image.new("RGBA", (max(1, right - left), max(1, bottom - top)), (0, 0, 0, 0))
    ImageDraw.Draw(layer).text((-left, -top), params.wm_text, font=font, fill=(r, g, b, round(a * opacity)))
    return layer


def _image_watermark(data: bytes, main_width: int, params: ImageParams) -> Image.Image:
    mark = _decode(data).convert("RGBA")
    if params.wm_scale:
        target_w = max(1, round(main_width * params.wm_scale / 100))
        target_h = max(1, round(mark.height * target_w / mark.width))
        mark = mark.resize((target_w, target_h), Image.Resampling.LANCZOS)
    if params.wm_opacity is not None and params.wm_opacity < 1:
        opacity = max(0.0, min(1.0, params.wm_opacity))
        alpha = mark.getchannel("A").point(lambda p: round(p * opacity))
        mark.putalpha(alpha)
    return mark


def _composite(img: Image.Image, mark: Image.Image, params: ImageParams) -> Image.Image:
    position = str(params.wm_position or _DEFAULT_WM_POSITION)
    padding = params.wm_padding or 0

    if "top" in position:
        top = padding
    elif "bottom" in position:
        top = img.height - mark.height - padding
    else:
        top = round((img.height - mark.height) / 2)
    if "left" in position:
        left = padding
    elif "right" in position:
        left = img.width - mark.width - padding
    else:
        left = round((img.width - mark.width) / 2)
    left = min(max(0, left), img.width - 1)
    top = min(max(0, top), img.height - 1)

    mark = mark.crop((0, 0, min(mark.width, img.width - left), min(mark.height, img.height - top)))
    base = img.convert("RGBA")
    base.alpha_composite(mark, (left, top))
    return base if img.mode == "RGBA" else base.convert("RGB")


def _encode(img: Image.Image, fmt: ImageFormat, quality: int) -> bytes:
    save_format = _SAVE_FORMATS[fmt]
    buf = io.BytesIO()
    if save_format == "JPEG":
        img.convert("RGB").save(buf, format="JPEG", quality=quality, optimize=True)
    elif save_format == "PNG":
        img.save(buf, format="PNG", optimize=True)
    elif save_format == "GIF":
        img.save(buf, format="GIF")
    else:
        try:
            img.save(buf, format=save_format, quality=quality)
        except (KeyError, OSError) as e:
            raise ImageProcessingError(f"{fmt.value} encoding is not supported: {e}") from e
    return buf.getvalue()
