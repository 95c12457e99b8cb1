"""Pydantic models for service configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pixelserve.config import defaults
from pixelserve.types import CacheMode


class CacheConfig(BaseModel):
    """Process-wide cache settings. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    mode: CacheMode = CacheMode.DISK
    directory: Path = Path(defaults.DEFAULT_CACHE_DIR)
    ttl_seconds: int = Field(default=defaults.DEFAULT_CACHE_TTL, ge=0)
    max_memory_items: int = Field(default=defaults.DEFAULT_MAX_MEMORY_CACHE_ITEMS, ge=1)
    max_disk_bytes: int = defaults.DEFAULT_MAX_CACHE_SIZE
    browser_ttl_seconds: int = Field(default=defaults.DEFAULT_BROWSER_CACHE_TTL, ge=0)
    cleanup_interval_seconds: float = Field(
        default=defaults.DEFAULT_CACHE_CLEANUP_INTERVAL, gt=0
    )

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: Any) -> Any:
        # Unrecognized modes fall back to disk rather than failing startup
        mode = str(value or defaults.DEFAULT_CACHE_MODE).lower()
        if mode not in {m.value for m in CacheMode}:
            return CacheMode.DISK
        return mode


class ServiceConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    cache: CacheConfig = Field(default_factory=CacheConfig)
    allowed_domains: tuple[str, ...] = ()
    blocked_domains: tuple[str, ...] = defaults.BLOCKED_DOMAINS
    max_image_size: int = defaults.DEFAULT_MAX_IMAGE_SIZE
    request_timeout_seconds: float = defaults.DEFAULT_REQUEST_TIMEOUT_MS / 1000
    default_quality: int = defaults.DEFAULT_QUALITY
    default_format: str = defaults.DEFAULT_FORMAT
    max_width: int = defaults.MAX_WIDTH
    max_height: int = defaults.MAX_HEIGHT
    og_default_width: int = defaults.OG_DEFAULT_WIDTH
    og_default_height: int = defaults.OG_DEFAULT_HEIGHT
    og_default_bg: str = defaults.OG_DEFAULT_BG
    og_default_fg: str = defaults.OG_DEFAULT_FG
    templates_dir: Path = Path(defaults.DEFAULT_TEMPLATES_DIR)
    log_level: str = defaults.DEFAULT_LOG_LEVEL

    @classmethod
    def from_flat(cls, flat: dict[str, Any]) -> ServiceConfig:
        """Build from the flat dict produced by the config hierarchy."""
        domains = flat.get("allowed_domains") or []
        if isinstance(domains, str):
            domains = domains.split(",")
        return cls(
            cache=CacheConfig(
                mode=flat.get("cache_mode"),
                directory=flat.get("cache_dir", defaults.DEFAULT_CACHE_DIR),
                ttl_seconds=flat.get("cache_ttl", defaults.DEFAULT_CACHE_TTL),
                max_memory_items=flat.get(
                    "max_memory_cache_items", defaults.DEFAULT_MAX_MEMORY_CACHE_ITEMS
                ),
                max_disk_bytes=flat.get("max_cache_size", defaults.DEFAULT_MAX_CACHE_SIZE),
                browser_ttl_seconds=flat.get(
                    "browser_cache_ttl", defaults.DEFAULT_BROWSER_CACHE_TTL
                ),
                cleanup_interval_seconds=flat.get(
                    "cache_cleanup_interval", defaults.DEFAULT_CACHE_CLEANUP_INTERVAL
                ),
            ),
            allowed_domains=tuple(d.strip().lower() for d in domains if d and d.strip()),
            max_image_size=flat.get("max_image_size", defaults.DEFAULT_MAX_IMAGE_SIZE),
            request_timeout_seconds=(
                flat.get("request_timeout", defaults.DEFAULT_REQUEST_TIMEOUT_MS) / 1000
            ),
            templates_dir=flat.get("templates_dir", defaults.DEFAULT_TEMPLATES_DIR),
            log_level=flat.get("log_level", defaults.DEFAULT_LOG_LEVEL),
        )
