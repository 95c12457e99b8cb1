"""Layout tree → PNG rasterizer built on Pillow.

Implements the subset of flexbox the OG templates use: a single main axis
per container (column or row), cross-axis alignment, main-axis
justification, padding/margin, solid and linear-gradient backgrounds,
wrapped text, and images. It is not a general CSS engine.
"""

from __future__ import annotations

import io
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

from PIL import Image, ImageColor, ImageDraw, ImageOps

from pixelserve.og.templates import ElementNode
from pixelserve.utils.fonts import DEFAULT_FONT_FAMILY, FontType, load_font

logger = logging.getLogger(__name__)

_GRADIENT_ANGLE_RE = re.compile(r"(-?\d+(?:\.\d+)?)deg")
_COLOR_RE = re.compile(r"#(?:[0-9A-Fa-f]{8}|[0-9A-Fa-f]{6}|[0-9A-Fa-f]{3,4})\b|rgba?\([^)]*\)")
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


@dataclass
class _Box:
    """Measured size of a node including its padding (margin excluded)."""

    node: ElementNode
    width: int
    height: int
    margin: tuple[int, int, int, int]
    lines: list[str] = field(default_factory=list)
    font: FontType | None = None
    children: list[_Box] = field(default_factory=list)

    @property
    def outer_width(self) -> int:
        return self.width + self.margin[1] + self.margin[3]

    @property
    def outer_height(self) -> int:
        return self.height + self.margin[0] + self.margin[2]


class LayoutRasterizer:
    """Renders an ElementNode tree to PNG bytes."""

    def __init__(self) -> None:
        self._images: dict[str, bytes] = {}
        self._family = DEFAULT_FONT_FAMILY

    def render(
        self,
        root: ElementNode,
        width: int,
        height: int,
        images: dict[str, bytes] | None = None,
    ) -> bytes:
        """Rasterize ``root`` onto a ``width`` x ``height`` canvas.

        ``images`` maps image ``src`` values to already-fetched bytes;
        images without an entry are skipped.
        """
        self._images = images or {}
        self._family = str(root.style.get("fontFamily") or DEFAULT_FONT_FAMILY)
        canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))

        box = self._measure(root, width)
        box.width, box.height = width, height
        self._draw(canvas, box, 0, 0)

        buf = io.BytesIO()
        canvas.save(buf, format="PNG")
        return buf.getvalue()

    # ── Measuring ──

    def _measure(self, node: ElementNode, available: int) -> _Box:
        style = node.style
        margin = _edges(style.get("margin"))
        padding = _edges(style.get("padding"))
        inner = max(1, available - padding[1] - padding[3] - margin[1] - margin[3])

        if node.type == "img":
            return _Box(
                node,
                int(node.attrs.get("width", 64)),
                int(node.attrs.get("height", 64)),
                margin,
            )

        if node.children and all(isinstance(c, str) for c in node.children):
            text = "".join(node.children)  # type: ignore[arg-type]
            size = int(style.get("fontSize", 32))
            font = load_font(self._family, size, int(style.get("fontWeight", 400)))
            max_width = min(inner, int(style.get("maxWidth", inner)))
            lines = _wrap(text, font, max_width)
            line_height = _line_height(style, size)
            text_w = max((_text_width(font, line) for line in lines), default=0)
            return _Box(
                node,
                text_w + padding[1] + padding[3],
                round(line_height * len(lines)) + padding[0] + padding[2],
                margin,
                lines=lines,
                font=font,
            )

        children = [self._measure(c, inner) for c in node.children if isinstance(c, ElementNode)]
        row = style.get("flexDirection") == "row"
        if row:
            content_w = sum(c.outer_width for c in children)
            content_h = max((c.outer_height for c in children), default=0)
        else:
            content_w = max((c.outer_width for c in children), default=0)
            content_h = sum(c.outer_height for c in children)

        width = _dimension(style.get("width"), content_w + padding[1] + padding[3])
        height = _dimension(style.get("height"), content_h + padding[0] + padding[2])
        return _Box(node, width, height, margin, children=children)

    # ── Drawing ──

    def _draw(self, canvas: Image.Image, box: _Box, x: int, y: int) -> None:
        style = box.node.style
        self._paint_background(canvas, style, (x, y, x + box.width, y + box.height))

        if box.node.type == "img":
            self._paint_image(canvas, box, x, y)
            return

        padding = _edges(style.get("padding"))
        if box.lines:
            self._paint_text(canvas, box, x + padding[3], y + padding[0])
            return

        inner_x, inner_y = x + padding[3], y + padding[0]
        inner_w = box.width - padding[1] - padding[3]
        inner_h = box.height - padding[0] - padding[2]
        row = style.get("flexDirection") == "row"
        children = box.children

        main_size = inner_w if row else inner_h
        used = sum(c.outer_width if row else c.outer_height for c in children)
        free = max(0, main_size - used)
        justify = style.get("justifyContent", "flex-start")
        gap = 0.0
        offset = 0.0
        if justify == "center":
            offset = free / 2
        elif justify == "flex-end":
            offset = free
        elif justify == "space-between" and len(children) > 1:
            gap = free / (len(children) - 1)

        align = style.get("alignItems", "stretch")
        cursor = offset
        for child in children:
            cross_size = inner_h if row else inner_w
            child_cross = child.outer_height if row else child.outer_width
            if align == "center":
                cross = (cross_size - child_cross) / 2
            elif align == "flex-end":
                cross = cross_size - child_cross
            else:
                cross = 0
            if row:
                cx, cy = inner_x + cursor, inner_y + cross
                cursor += child.outer_width + gap
            else:
                cx, cy = inner_x + cross, inner_y + cursor
                cursor += child.outer_height + gap
            self._draw(canvas, child, round(cx) + child.margin[3], round(cy) + child.margin[0])

    def _paint_background(
        self, canvas: Image.Image, style: dict[str, Any], rect: tuple[int, int, int, int]
    ) -> None:
        x0, y0, x1, y1 = rect
        width, height = x1 - x0, y1 - y0
        if width <= 0 or height <= 0:
            return

        if style.get("background"):
            fill = _gradient(str(style["background"]), (width, height))
            if fill is not None:
                _paste(canvas, fill, x0, y0)
        elif style.get("backgroundColor"):
            color = _color(style["backgroundColor"])
            if color is not None:
                _paste(canvas, Image.new("RGBA", (width, height), color), x0, y0)

        src = style.get("backgroundImage")
        if src and src in self._images:
            try:
                img = Image.open(io.BytesIO(self._images[src])).convert("RGBA")
            except OSError as e:
                logger.warning("Skipping undecodable background image %s: %s", src, e)
                return
            _paste(canvas, ImageOps.fit(img, (width, height)), x0, y0)

    def _paint_image(self, canvas: Image.Image, box: _Box, x: int, y: int) -> None:
        src = box.node.attrs.get("src")
        data = self._images.get(src) if src else None
        if data is None:
            return
        try:
            img = Image.open(io.BytesIO(data)).convert("RGBA")
        except OSError as e:
            logger.warning("Skipping undecodable image %s: %s", src, e)
            return
        img = ImageOps.fit(img, (max(1, box.width), max(1, box.height)))
        radius = box.node.style.get("borderRadius")
        if radius:
            mask = Image.new("L", img.size, 0)
            ImageDraw.Draw(mask).rounded_rectangle((0, 0, *img.size), radius=int(radius), fill=255)
            alpha = Image.composite(img.getchannel("A"), mask, mask)
            img.putalpha(alpha)
        _paste(canvas, img, x, y)

    def _paint_text(self, canvas: Image.Image, box: _Box, x: int, y: int) -> None:
        style = box.node.style
        color = _color(style.get("color", "#ffffff")) or (255, 255, 255, 255)
        opacity = float(style.get("opacity", 1.0))
        fill = (*color[:3], round(color[3] * opacity))
        size = int(style.get("fontSize", 32))
        line_height = _line_height(style, size)

        layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        for i, line in enumerate(box.lines):
            draw.text((x, y + round(i * line_height)), line, font=box.font, fill=fill)
        canvas.alpha_composite(layer)


def _paste(canvas: Image.Image, img: Image.Image, x: int, y: int) -> None:
    if x >= canvas.width or y >= canvas.height:
        return
    left, top = max(0, -x), max(0, -y)
    right = min(img.width, canvas.width - x)
    bottom = min(img.height, canvas.height - y)
    if right <= left or bottom <= top:
        return
    canvas.alpha_composite(img.crop((left, top, right, bottom)), (x + left, y + top))


def _edges(value: Any) -> tuple[int, int, int, int]:
    """CSS shorthand → (top, right, bottom, left)."""
    if value is None:
        return (0, 0, 0, 0)
    if isinstance(value, (int, float)):
        v = int(value)
        return (v, v, v, v)
    nums = [int(float(n)) for n in _NUMBER_RE.findall(str(value))]
    if len(nums) == 1:
        return (nums[0],) * 4  # type: ignore[return-value]
    if len(nums) == 2:
        return (nums[0], nums[1], nums[0], nums[1])
    if len(nums) == 3:
        return (nums[0], nums[1], nums[2], nums[1])
    if len(nums) >= 4:
        return (nums[0], nums[1], nums[2], nums[3])
    return (0, 0, 0, 0)


def _dimension(value: Any, fallback: int) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    return fallback


def _line_height(style: dict[str, Any], font_size: int) -> float:
    return float(style.get("lineHeight", 1.4)) * font_size


def _color(value: Any) -> tuple[int, int, int, int] | None:
    try:
        rgba = ImageColor.getcolor(str(value).strip(), "RGBA")
    except ValueError:
        logger.debug("Ignoring unparseable color %r", value)
        return None
    return rgba  # type: ignore[return-value]


def _gradient(value: str, size: tuple[int, int]) -> Image.Image | None:
    """Render a two-stop ``linear-gradient(...)``; plain colours fill solid."""
    stops = [c for c in (_color(m) for m in _COLOR_RE.findall(value)) if c is not None]
    if not stops:
        color = _color(value)
        return Image.new("RGBA", size, color) if color else None
    if len(stops) == 1:
        return Image.new("RGBA", size, stops[0])

    match = _GRADIENT_ANGLE_RE.search(value)
    angle = math.radians(float(match.group(1)) if match else 180.0)
    # CSS angles: 0deg points up, 90deg right, 180deg down
    dx, dy = math.sin(angle), -math.cos(angle)
    vertical = Image.linear_gradient("L")
    horizontal = vertical.transpose(Image.Transpose.ROTATE_90)
    if dx < 0:
        horizontal = ImageOps.invert(horizontal)
    if dy < 0:
        vertical = ImageOps.invert(vertical)
    weight = abs(dy) / ((abs(dx) + abs(dy)) or 1.0)
    mask = Image.blend(horizontal, vertical, weight).resize(size)
    start = Image.new("RGBA", size, stops[0])
    end = Image.new("RGBA", size, stops[-1])
    return Image.composite(end, start, mask)


def _text_width(font: FontType, text: str) -> int:
    left, _top, right, _bottom = font.getbbox(text)
    return int(right - left)


def _wrap(text: str, font: FontType, max_width: int) -> list[str]:
    """Greedy word wrap; a single over-long word gets its own line."""
    lines: list[str] = []
    for paragraph in text.splitlines() or [""]:
        current = ""
        for word in paragraph.split():
            candidate = f"{current} {word}" if current else word
            if current and _text_width(font, candidate) > max_width:
                lines.append(current)
                current = word
            else:
                current = candidate
        lines.append(current)
    return lines
