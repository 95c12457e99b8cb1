"""Cache subsystem: fingerprinted keys, memory/disk backends, facade."""

from pixelserve.cache.disk import DiskCache
from pixelserve.cache.facade import CacheFacade
from pixelserve.cache.headers import MIME_TYPES, get_cache_headers
from pixelserve.cache.keys import generate_cache_key, image_params_key, og_params_key
from pixelserve.cache.memory import MemoryCache
from pixelserve.cache.stats import CacheStats

__all__ = [
    "CacheFacade",
    "CacheStats",
    "DiskCache",
    "MemoryCache",
    "MIME_TYPES",
    "generate_cache_key",
    "get_cache_headers",
    "image_params_key",
    "og_params_key",
]
