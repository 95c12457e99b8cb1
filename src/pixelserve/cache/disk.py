"""Sharded on-disk cache with mtime-based expiry."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path

from pixelserve.config import defaults

logger = logging.getLogger(__name__)

_SHARD_CHARS = 2


class DiskCache:
    """File-per-key cache under ``{root}/{key[:2]}/{key}``.

    A file's modification time is its only expiry signal. Writes go through
    a temp file and ``os.replace`` so readers in other worker processes never
    observe a partial artifact. All blocking I/O runs in worker threads.
    """

    def __init__(
        self,
        directory: str | Path = defaults.DEFAULT_CACHE_DIR,
        ttl_seconds: float = defaults.DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._root = Path(directory)
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def directory(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        return self._root / key[:_SHARD_CHARS] / key

    async def get(self, key: str) -> bytes | None:
        path = self.path_for(key)
        data, stale = await asyncio.to_thread(self._read, path)
        if stale:
            self._schedule_unlink(path)
        return data

    async def set(self, key: str, data: bytes) -> None:
        await asyncio.to_thread(self._write, self.path_for(key), data)

    async def cleanup(self) -> int:
        """Delete every file older than the TTL. Returns count removed."""
        return await asyncio.to_thread(self._sweep, self._clock() - self._ttl_seconds)

    async def clear(self) -> int:
        """Delete every cached file regardless of age."""
        return await asyncio.to_thread(self._sweep, None)

    async def wait_pending(self) -> None:
        """Wait for scheduled stale-file deletions to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _read(self, path: Path) -> tuple[bytes | None, bool]:
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return None, False
        if mtime < self._clock() - self._ttl_seconds:
            return None, True
        try:
            return path.read_bytes(), False
        except FileNotFoundError:
            # Deleted between stat and read
            return None, False

    def _write(self, path: Path, data: bytes) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_path, path)
            except OSError:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.warning("Cache write failed for %s: %s", path.name, e)

    def _schedule_unlink(self, path: Path) -> None:
        task = asyncio.create_task(asyncio.to_thread(_unlink_quietly, path))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _sweep(self, cutoff: float | None) -> int:
        if not self._root.is_dir():
            return 0
        removed = 0
        for dirpath, _dirnames, filenames in os.walk(self._root):
            for name in filenames:
                path = Path(dirpath) / name
                try:
                    if not path.is_file():
                        continue
                    if cutoff is not None and path.stat().st_mtime >= cutoff:
                        continue
                    path.unlink()
                    removed += 1
                except OSError:
                    continue
        return removed


def _unlink_quietly(path: Path) -> None:
    with contextlib.suppress(OSError):
        path.unlink()
