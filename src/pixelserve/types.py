"""Shared Pydantic models for pixelserve."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ── Enums ──


class CacheMode(StrEnum):
    DISK = "disk"
    MEMORY = "memory"
    NONE = "none"


class ImageFormat(StrEnum):
    WEBP = "webp"
    AVIF = "avif"
    PNG = "png"
    JPG = "jpg"
    JPEG = "jpeg"
    GIF = "gif"


class FitMode(StrEnum):
    COVER = "cover"
    CONTAIN = "contain"
    FILL = "fill"
    INSIDE = "inside"
    OUTSIDE = "outside"


class Position(StrEnum):
    CENTER = "center"
    TOP = "top"
    RIGHT = "right"
    BOTTOM = "bottom"
    LEFT = "left"
    TOP_LEFT = "top left"
    TOP_RIGHT = "top right"
    BOTTOM_LEFT = "bottom left"
    BOTTOM_RIGHT = "bottom right"
    ENTROPY = "entropy"
    ATTENTION = "attention"


class WatermarkPosition(StrEnum):
    CENTER = "center"
    TOP = "top"
    TOP_LEFT = "top left"
    TOP_RIGHT = "top right"
    BOTTOM = "bottom"
    BOTTOM_LEFT = "bottom left"
    BOTTOM_RIGHT = "bottom right"
    LEFT = "left"
    RIGHT = "right"


ParamValue = str | int | float | bool | None

_HEX_COLOR = r"^[0-9A-Fa-f]{3,6}$"

# ── Request models ──


class ImageParams(BaseModel):
    """Validated parameters of a pixel transform request."""

    url: str = Field(min_length=1)
    w: int | None = Field(default=None, ge=1, le=4096)
    h: int | None = Field(default=None, ge=1, le=4096)
    size: int | None = Field(default=None, ge=1, le=100)
    fit: FitMode | None = None
    position: Position | None = None
    q: int | None = Field(default=None, ge=1, le=100)
    format: ImageFormat | None = None
    blur: float | None = Field(default=None, ge=0.3, le=1000)
    grayscale: bool | None = None
    rotate: float | None = None
    flip: bool | None = None
    flop: bool | None = None
    brightness: float | None = Field(default=None, ge=0)
    saturation: float | None = Field(default=None, ge=0)
    sharpen: float | None = Field(default=None, ge=0)
    tint: str | None = Field(default=None, pattern=_HEX_COLOR)
    trim: bool | None = None
    crop: str | None = Field(default=None, pattern=r"^\d+,\d+,\d+,\d+$")
    wm_image: str | None = None
    wm_text: str | None = None
    wm_position: WatermarkPosition | None = None
    wm_opacity: float | None = Field(default=None, ge=0, le=1)
    wm_scale: float | None = Field(default=None, ge=1, le=100)
    wm_padding: int | None = Field(default=None, ge=0, le=500)
    wm_font: str | None = None
    wm_fontsize: int | None = Field(default=None, ge=8, le=200)
    wm_color: str | None = Field(default=None, pattern=r"^[0-9A-Fa-f]{3,8}$")

    def to_cache_params(self) -> dict[str, ParamValue]:
        """Flatten into the parameter set used for fingerprinting."""
        return _plain(self.model_dump())


class OGParams(BaseModel):
    """Validated parameters of an OG image generation request."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=500)
    template: str | None = None
    bg: str | None = Field(default=None, pattern=_HEX_COLOR)
    fg: str | None = Field(default=None, pattern=_HEX_COLOR)
    title_color: str | None = Field(default=None, alias="titleColor", pattern=_HEX_COLOR)
    desc_color: str | None = Field(default=None, alias="descColor", pattern=_HEX_COLOR)
    accent_color: str | None = Field(default=None, alias="accentColor", pattern=_HEX_COLOR)
    image: str | None = None
    logo: str | None = None
    w: int | None = Field(default=None, ge=100, le=2400)
    h: int | None = Field(default=None, ge=100, le=1260)
    config: str | None = Field(default=None, max_length=10000)
    font: str | None = Field(default=None, max_length=50)

    def to_cache_params(self) -> dict[str, ParamValue]:
        """Flatten into the parameter set used for fingerprinting.

        Keys use the public (camelCase) names. The ``type`` discriminator is
        added by the caller, not here.
        """
        return _plain(self.model_dump(by_alias=True))


# ── Results ──


class ProcessedImage(BaseModel):
    """Encoded output of a generation pipeline."""

    data: bytes
    format: ImageFormat


class ImageResponse(BaseModel):
    """What a request handler sends back: bytes plus response headers."""

    data: bytes
    format: ImageFormat
    headers: dict[str, str] = Field(default_factory=dict)
    cached: bool = False


def _plain(dumped: dict[str, Any]) -> dict[str, ParamValue]:
    # Enum members become their plain string values
    return {
        k: (v.value if isinstance(v, StrEnum) else v)
        for k, v in dumped.items()
    }
