import io

import pytest
from PIL import Image

from pixelserve.config.schema import CacheConfig, ServiceConfig
from pixelserve.types import CacheMode

_ENV_VARS = (
    "CACHE_MODE",
    "CACHE_DIR",
    "CACHE_TTL",
    "MAX_CACHE_SIZE",
    "MAX_MEMORY_CACHE_ITEMS",
    "BROWSER_CACHE_TTL",
    "CACHE_CLEANUP_INTERVAL",
    "ALLOWED_DOMAINS",
    "MAX_IMAGE_SIZE",
    "REQUEST_TIMEOUT",
    "TEMPLATES_DIR",
    "PIXELSERVE_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the developer's environment out of config resolution."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def make_image(size=(64, 48), color=(200, 30, 30), mode="RGB", fmt="PNG") -> bytes:
    img = Image.new(mode, size, color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def sample_image_bytes():
    """64x48 solid red PNG."""
    return make_image()


@pytest.fixture
def memory_config():
    return ServiceConfig(cache=CacheConfig(mode=CacheMode.MEMORY, max_memory_items=10))


@pytest.fixture
def disk_config(tmp_path):
    return ServiceConfig(cache=CacheConfig(mode=CacheMode.DISK, directory=tmp_path / "cache"))


@pytest.fixture
def image_factory():
    return make_image
