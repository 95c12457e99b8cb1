"""Package-level default configuration values."""

from __future__ import annotations

from typing import Any

SERVICE_VERSION = "1.0.0"

# Default cache settings
DEFAULT_CACHE_MODE = "disk"
DEFAULT_CACHE_DIR = "./cache"
DEFAULT_CACHE_TTL = 86400  # 24 hours
DEFAULT_MAX_CACHE_SIZE = 1024 * 1024 * 1024  # 1 GB, advisory
DEFAULT_MAX_MEMORY_CACHE_ITEMS = 1000
DEFAULT_BROWSER_CACHE_TTL = 31536000  # 1 year
DEFAULT_CACHE_CLEANUP_INTERVAL = 3600

# Upstream fetch settings
DEFAULT_MAX_IMAGE_SIZE = 10 * 1024 * 1024  # 10 MB
DEFAULT_REQUEST_TIMEOUT_MS = 30000
BLOCKED_DOMAINS = ("localhost", "127.0.0.1", "0.0.0.0", "::1")

# Image defaults
DEFAULT_QUALITY = 80
DEFAULT_FORMAT = "webp"
MAX_WIDTH = 4096
MAX_HEIGHT = 4096

# OG image defaults
OG_DEFAULT_WIDTH = 1200
OG_DEFAULT_HEIGHT = 630
OG_DEFAULT_BG = "1a1a2e"
OG_DEFAULT_FG = "ffffff"
DEFAULT_TEMPLATES_DIR = "./templates"

# Log level
DEFAULT_LOG_LEVEL = "WARNING"


def get_defaults() -> dict[str, Any]:
    """Return all defaults as a flat dictionary for merging."""
    return {
        "cache_mode": DEFAULT_CACHE_MODE,
        "cache_dir": DEFAULT_CACHE_DIR,
        "cache_ttl": DEFAULT_CACHE_TTL,
        "max_cache_size": DEFAULT_MAX_CACHE_SIZE,
        "max_memory_cache_items": DEFAULT_MAX_MEMORY_CACHE_ITEMS,
        "browser_cache_ttl": DEFAULT_BROWSER_CACHE_TTL,
        "cache_cleanup_interval": DEFAULT_CACHE_CLEANUP_INTERVAL,
        "allowed_domains": [],
        "max_image_size": DEFAULT_MAX_IMAGE_SIZE,
        "request_timeout": DEFAULT_REQUEST_TIMEOUT_MS,
        "templates_dir": DEFAULT_TEMPLATES_DIR,
        "log_level": DEFAULT_LOG_LEVEL,
    }
