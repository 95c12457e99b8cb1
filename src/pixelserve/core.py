"""Top-level service: fingerprint → cache → pipeline → cache write."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pixelserve.cache.facade import CacheFacade
from pixelserve.cache.keys import image_params_key, og_params_key
from pixelserve.config.defaults import SERVICE_VERSION
from pixelserve.config.schema import ServiceConfig
from pixelserve.og.generator import SUGGESTED_FONTS, OGGenerator
from pixelserve.transform.fetcher import ImageFetcher
from pixelserve.transform.processor import ImageProcessor
from pixelserve.types import (
    CacheMode,
    ImageFormat,
    ImageParams,
    ImageResponse,
    OGParams,
    ProcessedImage,
)
from pixelserve.utils.fonts import DEFAULT_FONT_FAMILY

logger = logging.getLogger(__name__)


class PixelServe:
    """Serves transform and OG requests through one process-wide cache.

    Concurrent misses for the same fingerprint share a single generation.
    Successful results are written to the cache in background tasks that the
    response path never awaits.
    """

    def __init__(
        self,
        config: ServiceConfig | None = None,
        cache: CacheFacade | None = None,
        fetcher: ImageFetcher | None = None,
        processor: ImageProcessor | None = None,
        generator: OGGenerator | None = None,
    ) -> None:
        self._config = config or ServiceConfig()
        self._cache = cache or CacheFacade(self._config.cache)
        self._fetcher = fetcher or ImageFetcher(self._config)
        self._processor = processor or ImageProcessor(self._config, self._fetcher)
        self._generator = generator or OGGenerator(self._config, fetcher=self._fetcher)
        self._inflight: dict[str, asyncio.Task[ProcessedImage]] = {}
        self._writes: set[asyncio.Task[None]] = set()
        self._started_at = time.monotonic()

    @property
    def config(self) -> ServiceConfig:
        return self._config

    @property
    def cache(self) -> CacheFacade:
        return self._cache

    @property
    def generator(self) -> OGGenerator:
        return self._generator

    async def start(self) -> None:
        """Prepare the cache root and start the periodic sweep."""
        if self._cache.mode == CacheMode.DISK:
            await asyncio.to_thread(
                self._config.cache.directory.mkdir, parents=True, exist_ok=True
            )
        self._cache.start_cleanup()

    async def close(self) -> None:
        """Let pending cache writes finish, then release resources."""
        await self.wait_for_writes()
        await self._cache.close()
        await self._fetcher.close()

    async def __aenter__(self) -> PixelServe:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def serve_image(self, params: ImageParams) -> ImageResponse:
        key = image_params_key(params)
        cached = await self._cache.get(key)
        if cached is not None:
            fmt = params.format or ImageFormat(self._config.default_format)
            return self._respond(cached, fmt, cached=True)

        result = await self._generate_once(key, lambda: self._processor.process(params))
        return self._respond(result.data, result.format)

    async def serve_og(self, params: OGParams) -> ImageResponse:
        key = og_params_key(params)
        cached = await self._cache.get(key)
        if cached is not None:
            return self._respond(cached, ImageFormat.PNG, cached=True)

        result = await self._generate_once(key, lambda: self._generator.generate(params))
        return self._respond(result.data, result.format)

    async def wait_for_writes(self) -> None:
        """Wait for every scheduled background cache write to settle."""
        while self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)

    def health(self) -> dict[str, Any]:
        status = "ok"
        if self._cache.mode == CacheMode.DISK and not self._config.cache.directory.exists():
            status = "degraded"
        return {
            "status": status,
            "uptime": int(time.monotonic() - self._started_at),
            "cache": self._cache.get_stats().as_dict(),
            "version": SERVICE_VERSION,
        }

    def templates_info(self) -> dict[str, Any]:
        return {
            "templates": self._generator.registry.names(),
            "templatesDir": str(self._config.templates_dir),
            "fonts": {"suggested": list(SUGGESTED_FONTS), "default": DEFAULT_FONT_FAMILY},
        }

    def _respond(self, data: bytes, fmt: ImageFormat, cached: bool = False) -> ImageResponse:
        return ImageResponse(
            data=data,
            format=fmt,
            headers=self._cache.get_cache_headers(fmt),
            cached=cached,
        )

    async def _generate_once(
        self,
        key: str,
        factory: Callable[[], Awaitable[ProcessedImage]],
    ) -> ProcessedImage:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._generate_and_store(key, factory))
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        else:
            logger.debug("Joining in-flight generation for %s", key)
        # A cancelled waiter must not cancel the generation other waiters share
        return await asyncio.shield(task)

    async def _generate_and_store(
        self,
        key: str,
        factory: Callable[[], Awaitable[ProcessedImage]],
    ) -> ProcessedImage:
        result = await factory()
        if result.data:
            self._schedule_write(key, result)
        return result

    def _forget(self, key: str, task: asyncio.Task[ProcessedImage]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Waiters may all be gone; mark the failure as retrieved
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Generation failed for %s: %s", key, task.exception())

    def _schedule_write(self, key: str, result: ProcessedImage) -> None:
        task = asyncio.create_task(self._write(key, result))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _write(self, key: str, result: ProcessedImage) -> None:
        try:
            await self._cache.set(key, result.data, result.format)
        except Exception as e:
            logger.error("Cache write error for %s: %s", key, e)
