"""Font resolution for text drawn with Pillow."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from PIL import ImageFont

logger = logging.getLogger(__name__)

DEFAULT_FONT_FAMILY = "Inter"

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont

_font_dirs: list[Path] = []


def add_font_dir(directory: str | Path) -> None:
    """Register a directory searched for ``<Family>-<weight>.ttf`` files."""
    path = Path(directory)
    if path not in _font_dirs:
        _font_dirs.append(path)
        load_font.cache_clear()


@lru_cache(maxsize=128)
def load_font(family: str = DEFAULT_FONT_FAMILY, size: int = 32, weight: int = 400) -> FontType:
    """Load a TrueType font by family name, falling back to Pillow's default.

    Looks in registered font directories first (``Open-Sans-700.ttf``,
    ``Open-Sans.ttf``), then asks FreeType for ``<family>.ttf`` on the
    system font path.
    """
    safe_name = family.strip().replace(" ", "-")
    candidates = []
    for directory in _font_dirs:
        candidates.append(directory / f"{safe_name}-{weight}.ttf")
        candidates.append(directory / f"{safe_name}.ttf")
    candidates.append(Path(f"{safe_name}.ttf"))

    for candidate in candidates:
        try:
            return ImageFont.truetype(str(candidate), size=size)
        except OSError:
            continue

    logger.debug("Font %s (%d) not found, using default", family, weight)
    return ImageFont.load_default(size=size)
