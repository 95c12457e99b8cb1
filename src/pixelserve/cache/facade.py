"""Cache facade: dispatches to the single backend selected by config."""

from __future__ import annotations

import logging

from pixelserve.cache.cleanup import CleanupScheduler
from pixelserve.cache.disk import DiskCache
from pixelserve.cache.headers import get_cache_headers
from pixelserve.cache.memory import MemoryCache
from pixelserve.cache.stats import CacheStats
from pixelserve.config.schema import CacheConfig
from pixelserve.types import CacheMode

logger = logging.getLogger(__name__)


class CacheFacade:
    """One cache per process: memory, disk, or disabled.

    Construct once at startup and hand the instance to whatever serves
    requests. Errors inside a backend never escape ``get``/``set``; the
    worst case is a miss.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        memory: MemoryCache | None = None,
        disk: DiskCache | None = None,
    ) -> None:
        self._config = config or CacheConfig()
        self._memory: MemoryCache | None = None
        self._disk: DiskCache | None = None
        if self._config.mode == CacheMode.MEMORY:
            self._memory = memory or MemoryCache(
                max_items=self._config.max_memory_items,
                ttl_seconds=self._config.ttl_seconds,
            )
        elif self._config.mode == CacheMode.DISK:
            self._disk = disk or DiskCache(
                directory=self._config.directory,
                ttl_seconds=self._config.ttl_seconds,
            )
        self._scheduler = CleanupScheduler(self.cleanup)

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def mode(self) -> CacheMode:
        return self._config.mode

    @property
    def cleanup_running(self) -> bool:
        return self._scheduler.running

    async def get(self, key: str) -> bytes | None:
        """Look up a cache key in the active backend."""
        try:
            if self._memory is not None:
                return self._memory.get(key)
            if self._disk is not None:
                return await self._disk.get(key)
        except Exception as e:
            logger.warning("Cache read failed for %s: %s", key, e)
        return None

    async def set(self, key: str, data: bytes, format_hint: str | None = None) -> None:
        """Store an artifact. Best effort: failures are logged, never raised.

        ``format_hint`` is accepted for callers that know the encoded format;
        neither backend records it.
        """
        try:
            if self._memory is not None:
                self._memory.set(key, data)
            elif self._disk is not None:
                await self._disk.set(key, data)
        except Exception as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    async def cleanup(self) -> int:
        """Run one expiry sweep of the active backend."""
        if self._memory is not None:
            return self._memory.cleanup()
        if self._disk is not None:
            return await self._disk.cleanup()
        return 0

    async def clear(self) -> int:
        if self._memory is not None:
            count = self._memory.size()
            self._memory.clear()
            return count
        if self._disk is not None:
            return await self._disk.clear()
        return 0

    def get_stats(self) -> CacheStats:
        if self._memory is not None:
            return CacheStats(mode=CacheMode.MEMORY, items=self._memory.size())
        if self._disk is not None:
            return CacheStats(mode=CacheMode.DISK, directory=str(self._disk.directory))
        return CacheStats(mode=CacheMode.NONE)

    def get_cache_headers(self, format: str) -> dict[str, str]:
        return get_cache_headers(format, self._config.browser_ttl_seconds)

    def start_cleanup(self, interval_seconds: float | None = None) -> None:
        """Start the periodic sweep. No-op when running or when disabled.

        Must be called from inside a running event loop.
        """
        if self._config.mode == CacheMode.NONE:
            return
        self._scheduler.start(interval_seconds or self._config.cleanup_interval_seconds)

    def stop_cleanup(self) -> None:
        self._scheduler.stop()

    async def close(self) -> None:
        self.stop_cleanup()
        if self._disk is not None:
            await self._disk.wait_pending()
