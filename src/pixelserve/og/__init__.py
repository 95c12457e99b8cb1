"""OG image generation: JSON templates rendered to PNG."""

from pixelserve.og.generator import SUGGESTED_FONTS, OGGenerator
from pixelserve.og.rasterizer import LayoutRasterizer
from pixelserve.og.templates import TemplateConfig, TemplateRegistry

__all__ = [
    "LayoutRasterizer",
    "OGGenerator",
    "SUGGESTED_FONTS",
    "TemplateConfig",
    "TemplateRegistry",
]
