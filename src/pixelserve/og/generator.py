"""OG image generation: template resolution plus rasterization."""

from __future__ import annotations

import asyncio
import logging

from pixelserve.config.schema import ServiceConfig
from pixelserve.errors.exceptions import ImageProcessingError, PixelServeError
from pixelserve.og.rasterizer import LayoutRasterizer
from pixelserve.og.templates import (
    DEFAULT_TEMPLATE,
    ElementNode,
    TemplateConfig,
    TemplateRegistry,
    build_template,
    parse_inline_config,
    validate_template_config,
)
from pixelserve.transform.fetcher import ImageFetcher
from pixelserve.types import ImageFormat, OGParams, ProcessedImage
from pixelserve.utils.fonts import DEFAULT_FONT_FAMILY

logger = logging.getLogger(__name__)

SUGGESTED_FONTS = [
    "Inter",
    "Roboto",
    "Open Sans",
    "Lato",
    "Montserrat",
    "Poppins",
    "Source Sans Pro",
    "Playfair Display",
    "Merriweather",
    "Nunito",
    "Raleway",
    "Ubuntu",
    "Oswald",
    "PT Sans",
    "Quicksand",
]


class OGGenerator:
    """Builds a layout tree for an OGParams request and rasterizes it to PNG."""

    def __init__(
        self,
        config: ServiceConfig | None = None,
        registry: TemplateRegistry | None = None,
        rasterizer: LayoutRasterizer | None = None,
        fetcher: ImageFetcher | None = None,
    ) -> None:
        self._config = config or ServiceConfig()
        self._registry = registry or TemplateRegistry(user_dirs=[self._config.templates_dir])
        self._rasterizer = rasterizer or LayoutRasterizer()
        self._fetcher = fetcher or ImageFetcher(self._config)

    @property
    def registry(self) -> TemplateRegistry:
        return self._registry

    async def generate(self, params: OGParams) -> ProcessedImage:
        try:
            width = params.w or self._config.og_default_width
            height = params.h or self._config.og_default_height
            font_family = params.font or DEFAULT_FONT_FAMILY

            tree = build_template(self.resolve_template(params), params, font_family)
            images = await self._fetch_images(tree)
            data = await asyncio.to_thread(self._rasterizer.render, tree, width, height, images)
            return ProcessedImage(data=data, format=ImageFormat.PNG)
        except PixelServeError:
            raise
        except Exception as e:
            raise ImageProcessingError(f"OG image generation failed: {e}") from e

    def resolve_template(self, params: OGParams) -> TemplateConfig:
        """Inline config first, then the named template, then ``default``."""
        if params.config:
            raw = parse_inline_config(params.config)
            if raw is None:
                raise ImageProcessingError("Invalid inline template config: could not parse")
            validation = validate_template_config(raw)
            if not validation.valid:
                raise ImageProcessingError(f"Invalid inline template config: {validation.error}")
            return TemplateConfig.model_validate(raw)

        name = params.template or DEFAULT_TEMPLATE
        if self._registry.has(name):
            return self._registry.get(name)
        if self._registry.has(DEFAULT_TEMPLATE):
            logger.debug("Template %s not found, using %s", name, DEFAULT_TEMPLATE)
            return self._registry.get(DEFAULT_TEMPLATE)
        raise ImageProcessingError(
            f'Template "{name}" not found and no default template available'
        )

    async def _fetch_images(self, tree: ElementNode) -> dict[str, bytes]:
        sources = sorted(_image_sources(tree))
        if not sources:
            return {}
        results = await asyncio.gather(
            *(self._fetcher.fetch(src) for src in sources), return_exceptions=True
        )
        images: dict[str, bytes] = {}
        for src, result in zip(sources, results, strict=True):
            if isinstance(result, Exception):
                logger.warning("Skipping image %s: %s", src, result)
                continue
            if isinstance(result, BaseException):
                raise result
            images[src] = result
        return images


def _image_sources(node: ElementNode) -> set[str]:
    found: set[str] = set()
    if node.type == "img" and node.attrs.get("src"):
        found.add(str(node.attrs["src"]))
    if node.style.get("backgroundImage"):
        found.add(str(node.style["backgroundImage"]))
    for child in node.children:
        if isinstance(child, ElementNode):
            found |= _image_sources(child)
    return found
