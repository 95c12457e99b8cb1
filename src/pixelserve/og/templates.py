"""JSON layout templates for OG images: models, registry, tree building."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from pathlib import Path
from typing import Any, Literal, NamedTuple
from urllib.parse import unquote

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from pixelserve.config.defaults import OG_DEFAULT_BG, OG_DEFAULT_FG
from pixelserve.types import OGParams

logger = logging.getLogger(__name__)

_BUILTIN_TEMPLATES_DIR = Path(__file__).parent.parent / "builtin" / "templates"

ELEMENT_TYPES = ("text", "image", "box", "spacer")
DEFAULT_TEMPLATE = "default"
DEFAULT_ACCENT = "3b82f6"
DEFAULT_ROOT_PADDING = 60

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/\-_]+=*$")

Direction = Literal["column", "row"]
Align = Literal["start", "center", "end", "between"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TemplateElement(_CamelModel):
    type: Literal["text", "image", "box", "spacer"]

    # text
    content: str | None = None
    font_size: float | None = None
    font_weight: int | None = None
    color: str | None = None
    max_width: float | None = None
    line_height: float | None = None
    opacity: float | None = None

    # image
    src: str | None = None
    width: int | None = None
    height: int | None = None
    border_radius: float | None = None

    # box
    background_color: str | None = None
    background_gradient: str | None = None
    padding: float | str | None = None
    margin: float | str | None = None
    direction: Direction | None = None
    align: Align | None = None
    justify: Align | None = None
    children: list[TemplateElement] = Field(default_factory=list)

    # spacer
    size: float | None = None

    show_if: str | None = None


class TemplateLayout(_CamelModel):
    background_color: str | None = None
    background_gradient: str | None = None
    background_image: str | None = None
    padding: float | None = None
    font_family: str | None = None
    direction: Direction | None = None
    align: Align | None = None
    justify: Align | None = None
    elements: list[TemplateElement]


class TemplateConfig(_CamelModel):
    name: str
    description: str = ""
    layout: TemplateLayout


class ElementNode(BaseModel):
    """A node of the resolved layout tree handed to the rasterizer."""

    type: Literal["div", "img"]
    style: dict[str, Any] = Field(default_factory=dict)
    attrs: dict[str, Any] = Field(default_factory=dict)
    children: list[ElementNode | str] = Field(default_factory=list)


class TemplateValidation(NamedTuple):
    valid: bool
    error: str | None = None


# ── Variable substitution ──


def replace_variables(value: str | None, params: OGParams) -> str:
    """Substitute ``{{title}}``-style placeholders from request params."""
    if not value:
        return ""
    fg = params.fg or OG_DEFAULT_FG
    title_color = params.title_color or fg
    replacements = {
        "title": params.title or "Untitled",
        "description": params.description or "",
        "logo": params.logo or "",
        "image": params.image or "",
        "bg": params.bg or OG_DEFAULT_BG,
        "fg": fg,
        "titleColor": title_color,
        "descColor": params.desc_color or title_color,
        "accentColor": params.accent_color or DEFAULT_ACCENT,
    }
    result = str(value)
    for name, replacement in replacements.items():
        result = result.replace("{{" + name + "}}", replacement)
    return result


def _condition_met(condition: str, params: OGParams) -> bool:
    if condition in ("title", "description", "logo", "image"):
        return bool(getattr(params, condition))
    return True


def _flex(value: str | None) -> str:
    return {
        "start": "flex-start",
        "end": "flex-end",
        "between": "space-between",
    }.get(value or "", value or "center")


# ── Tree building ──


def build_element(element: TemplateElement, params: OGParams) -> ElementNode | None:
    """Resolve one template element, or None when it renders nothing."""
    if element.show_if and not _condition_met(element.show_if, params):
        return None

    if element.type == "text":
        content = replace_variables(element.content, params)
        if not content:
            return None
        style: dict[str, Any] = {
            "display": "flex",
            "fontSize": element.font_size or 32,
            "fontWeight": element.font_weight or 400,
            "color": replace_variables(element.color, params) if element.color else "#ffffff",
            "lineHeight": element.line_height or 1.4,
        }
        if element.max_width is not None:
            style["maxWidth"] = element.max_width
        if element.opacity is not None:
            style["opacity"] = element.opacity
        return ElementNode(type="div", style=style, children=[content])

    if element.type == "image":
        src = replace_variables(element.src, params)
        if not src:
            return None
        style = {}
        if element.border_radius is not None:
            style["borderRadius"] = element.border_radius
        return ElementNode(
            type="img",
            style=style,
            attrs={"src": src, "width": element.width or 64, "height": element.height or 64},
        )

    if element.type == "box":
        children = [
            node for node in (build_element(child, params) for child in element.children)
            if node is not None
        ]
        if not children:
            return None
        style = {
            "display": "flex",
            "flexDirection": element.direction or "column",
            "alignItems": _flex(element.align),
            "justifyContent": _flex(element.justify),
        }
        if element.background_color:
            style["backgroundColor"] = replace_variables(element.background_color, params)
        if element.background_gradient:
            style["background"] = element.background_gradient
        if element.padding is not None:
            style["padding"] = element.padding
        if element.margin is not None:
            style["margin"] = element.margin
        return ElementNode(type="div", style=style, children=children)

    # spacer
    size = element.size or 20
    return ElementNode(type="div", style={"display": "flex", "width": size, "height": size})


def build_template(
    config: TemplateConfig,
    params: OGParams,
    font_family: str | None = None,
) -> ElementNode:
    """Build the full layout tree for ``config`` filled with ``params``.

    Font priority: explicit ``font_family`` > layout font > Inter.
    """
    layout = config.layout
    style: dict[str, Any] = {
        "width": "100%",
        "height": "100%",
        "display": "flex",
        "flexDirection": layout.direction or "column",
        "alignItems": _flex(layout.align),
        "justifyContent": _flex(layout.justify),
        "padding": layout.padding if layout.padding is not None else DEFAULT_ROOT_PADDING,
        "fontFamily": font_family or layout.font_family or "Inter",
    }

    if layout.background_gradient:
        style["background"] = layout.background_gradient
    elif layout.background_color:
        style["backgroundColor"] = replace_variables(layout.background_color, params)
    else:
        style["backgroundColor"] = f"#{params.bg or OG_DEFAULT_BG}"

    if layout.background_image:
        bg_image = replace_variables(layout.background_image, params)
        if bg_image:
            style["backgroundImage"] = bg_image

    children = [
        node for node in (build_element(el, params) for el in layout.elements)
        if node is not None
    ]
    return ElementNode(type="div", style=style, children=children)


# ── Inline configs ──


def parse_inline_config(raw: str) -> dict[str, Any] | None:
    """Decode a base64 (standard or URL-safe) or URL-encoded JSON template.

    Returns None when the value cannot be decoded or lacks
    ``layout.elements``. A missing name defaults to ``inline``.
    """
    try:
        if _BASE64_RE.match(raw) and not raw.startswith("{"):
            standard = raw.replace("-", "+").replace("_", "/")
            standard += "=" * (-len(standard) % 4)
            text = base64.b64decode(standard).decode("utf-8")
        else:
            text = unquote(raw)
        config = json.loads(text)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None

    if not isinstance(config, dict):
        return None
    layout = config.get("layout")
    if not isinstance(layout, dict) or "elements" not in layout:
        return None
    config.setdefault("name", "inline")
    return config


def validate_template_config(config: dict[str, Any]) -> TemplateValidation:
    layout = config.get("layout")
    if not isinstance(layout, dict):
        return TemplateValidation(False, "Missing layout property")
    elements = layout.get("elements")
    if not isinstance(elements, list):
        return TemplateValidation(False, "layout.elements must be an array")
    for element in elements:
        element_type = element.get("type") if isinstance(element, dict) else None
        if element_type not in ELEMENT_TYPES:
            return TemplateValidation(False, f"Invalid element type: {element_type}")
    return TemplateValidation(True)


# ── Registry ──


class TemplateRegistry:
    """Discovers templates from builtin + user directories (user wins)."""

    def __init__(self, user_dirs: list[Path] | None = None) -> None:
        self._templates: dict[str, TemplateConfig] = {}
        self._sources: dict[str, bool] = {}  # name → is_builtin
        self._scan(_BUILTIN_TEMPLATES_DIR, builtin=True)
        for d in user_dirs or []:
            self._scan(Path(d), builtin=False)

    def get(self, name: str) -> TemplateConfig:
        if name not in self._templates:
            raise KeyError(f"Template '{name}' not found in registry")
        return self._templates[name]

    def has(self, name: str) -> bool:
        return name in self._templates

    def names(self) -> list[str]:
        return list(self._templates)

    def is_builtin(self, name: str) -> bool:
        return self._sources.get(name, False)

    def register(self, config: TemplateConfig, builtin: bool = False) -> None:
        self._templates[config.name] = config
        self._sources[config.name] = builtin

    def _scan(self, directory: Path, builtin: bool) -> None:
        if not directory.is_dir():
            if not builtin:
                logger.info("Custom templates directory not found: %s", directory)
            return
        for path in sorted(directory.glob("*.json")):
            try:
                with open(path) as f:
                    raw = json.load(f)
                if not isinstance(raw, dict) or "name" not in raw:
                    continue
                config = TemplateConfig.model_validate(raw)
            except (OSError, ValueError, PydanticValidationError) as e:
                logger.warning("Failed to load template %s: %s", path, e)
                continue
            if config.name not in self._templates or not builtin:
                self.register(config, builtin=builtin)
                if not builtin:
                    logger.info("Loaded custom template: %s", config.name)
