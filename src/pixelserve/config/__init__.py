"""Configuration: defaults, layered loading, validated models."""

from pixelserve.config.hierarchy import load_config_hierarchy, load_service_config
from pixelserve.config.schema import CacheConfig, ServiceConfig

__all__ = [
    "CacheConfig",
    "ServiceConfig",
    "load_config_hierarchy",
    "load_service_config",
]
