"""Tests for the cache facade."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError as PydanticValidationError

from pixelserve.cache.disk import DiskCache
from pixelserve.cache.facade import CacheFacade
from pixelserve.cache.keys import generate_cache_key
from pixelserve.cache.memory import MemoryCache
from pixelserve.config.schema import CacheConfig
from pixelserve.types import CacheMode

KEY = "ab" + "0" * 62


@pytest.fixture
def memory_facade():
    return CacheFacade(CacheConfig(mode=CacheMode.MEMORY, max_memory_items=5))


@pytest.fixture
def disk_facade(tmp_path):
    return CacheFacade(CacheConfig(mode=CacheMode.DISK, directory=tmp_path))


class TestModeSelection:
    def test_unknown_mode_falls_back_to_disk(self):
        config = CacheConfig(mode="redis")
        assert config.mode == CacheMode.DISK

    def test_missing_mode_defaults_to_disk(self):
        assert CacheConfig(mode=None).mode == CacheMode.DISK

    def test_mode_is_case_insensitive(self):
        assert CacheConfig(mode="MEMORY").mode == CacheMode.MEMORY

    def test_config_is_immutable(self):
        config = CacheConfig()
        with pytest.raises(PydanticValidationError):
            config.mode = CacheMode.NONE


class TestGetSet:
    async def test_memory_roundtrip(self, memory_facade):
        await memory_facade.set(KEY, b"data", "png")
        assert await memory_facade.get(KEY) == b"data"

    async def test_disk_roundtrip(self, disk_facade, tmp_path):
        await disk_facade.set(KEY, b"data")
        assert await disk_facade.get(KEY) == b"data"
        assert (tmp_path / "ab" / KEY).exists()

    async def test_none_mode_never_stores(self):
        facade = CacheFacade(CacheConfig(mode=CacheMode.NONE))
        await facade.set(KEY, b"data")
        assert await facade.get(KEY) is None

    async def test_none_mode_touches_no_filesystem(self, tmp_path):
        root = tmp_path / "cache"
        facade = CacheFacade(CacheConfig(mode=CacheMode.NONE, directory=root))
        await facade.set(KEY, b"data")
        assert await facade.cleanup() == 0
        assert not root.exists()

    async def test_backend_read_error_is_a_miss(self):
        disk = MagicMock(spec=DiskCache)
        disk.get = AsyncMock(side_effect=PermissionError("denied"))
        facade = CacheFacade(CacheConfig(mode=CacheMode.DISK), disk=disk)
        assert await facade.get(KEY) is None

    async def test_backend_write_error_is_swallowed(self):
        disk = MagicMock(spec=DiskCache)
        disk.set = AsyncMock(side_effect=OSError("disk full"))
        facade = CacheFacade(CacheConfig(mode=CacheMode.DISK), disk=disk)
        await facade.set(KEY, b"data")
        disk.set.assert_awaited_once()

    async def test_clear_memory(self, memory_facade):
        await memory_facade.set(KEY, b"data")
        assert await memory_facade.clear() == 1
        assert await memory_facade.get(KEY) is None


class TestStats:
    def test_memory_stats(self, memory_facade):
        memory_facade._memory.set("a", b"1")
        memory_facade._memory.set("b", b"2")
        assert memory_facade.get_stats().as_dict() == {"mode": "memory", "items": 2}

    def test_disk_stats(self, disk_facade, tmp_path):
        assert disk_facade.get_stats().as_dict() == {"mode": "disk", "directory": str(tmp_path)}

    def test_none_stats(self):
        facade = CacheFacade(CacheConfig(mode=CacheMode.NONE))
        assert facade.get_stats().as_dict() == {"mode": "none"}

    def test_injected_memory_backend_used(self):
        memory = MemoryCache(max_items=2)
        facade = CacheFacade(CacheConfig(mode=CacheMode.MEMORY), memory=memory)
        memory.set("a", b"1")
        assert facade.get_stats().items == 1


class TestHeaders:
    def test_uses_browser_ttl(self):
        facade = CacheFacade(CacheConfig(mode=CacheMode.NONE, browser_ttl_seconds=600))
        headers = facade.get_cache_headers("png")
        assert headers["Cache-Control"] == "public, max-age=600, immutable"
        assert headers["Content-Type"] == "image/png"
        assert headers["Vary"] == "Accept"


class TestCleanupScheduling:
    async def test_start_is_idempotent(self, memory_facade):
        memory_facade.start_cleanup(3600)
        task = memory_facade._scheduler._task
        memory_facade.start_cleanup(3600)
        assert memory_facade._scheduler._task is task
        assert memory_facade.cleanup_running
        memory_facade.stop_cleanup()

    async def test_none_mode_does_not_start(self):
        facade = CacheFacade(CacheConfig(mode=CacheMode.NONE))
        facade.start_cleanup(1)
        assert not facade.cleanup_running

    async def test_stop_halts_sweeps(self, memory_facade):
        memory_facade.start_cleanup(3600)
        memory_facade.stop_cleanup()
        await asyncio.sleep(0)
        assert not memory_facade.cleanup_running

    async def test_periodic_sweep_runs(self):
        memory = MemoryCache(ttl_seconds=0, clock=lambda: 0.0)
        facade = CacheFacade(CacheConfig(mode=CacheMode.MEMORY), memory=memory)
        memory.set("a", b"1")
        memory._clock = lambda: 10.0
        facade.start_cleanup(0.01)
        try:
            for _ in range(100):
                if memory.size() == 0:
                    break
                await asyncio.sleep(0.01)
        finally:
            await facade.close()
        assert memory.size() == 0

    async def test_sweep_failure_keeps_scheduler_alive(self):
        facade = CacheFacade(CacheConfig(mode=CacheMode.MEMORY))
        calls = 0

        async def failing_sweep():
            nonlocal calls
            calls += 1
            raise RuntimeError("boom")

        facade._scheduler._sweep = failing_sweep
        facade.start_cleanup(0.01)
        try:
            for _ in range(100):
                if calls >= 2:
                    break
                await asyncio.sleep(0.01)
            assert facade.cleanup_running
        finally:
            facade.stop_cleanup()
        assert calls >= 2


class TestEndToEnd:
    async def test_format_param_separates_entries(self, memory_facade):
        k1 = generate_cache_key({"url": "https://example.com/a.png", "w": 800, "h": 600})
        k2 = generate_cache_key(
            {"url": "https://example.com/a.png", "w": 800, "h": 600, "format": "png"}
        )
        assert k1 != k2

        await memory_facade.set(k1, b"\x89PNG...")
        assert await memory_facade.get(k1) == b"\x89PNG..."
        assert await memory_facade.get(k2) is None
