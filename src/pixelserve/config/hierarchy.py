"""Configuration hierarchy — merges sources in priority order.

Precedence (later overrides earlier):
  1. Package defaults
  2. Global config   (~/.pixelserve/config.yaml)
  3. Project config   (./pixelserve.yaml)
  4. Environment variables (CACHE_*, REQUEST_TIMEOUT, PIXELSERVE_*)
  5. Runtime arguments
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from pixelserve.config.defaults import get_defaults
from pixelserve.config.schema import ServiceConfig

logger = logging.getLogger(__name__)

_GLOBAL_CONFIG_PATH = Path.home() / ".pixelserve" / "config.yaml"
_PROJECT_CONFIG_NAME = "pixelserve.yaml"

# Map of environment variables to config keys
_ENV_MAP: dict[str, str] = {
    "CACHE_MODE": "cache_mode",
    "CACHE_DIR": "cache_dir",
    "CACHE_TTL": "cache_ttl",
    "MAX_CACHE_SIZE": "max_cache_size",
    "MAX_MEMORY_CACHE_ITEMS": "max_memory_cache_items",
    "BROWSER_CACHE_TTL": "browser_cache_ttl",
    "CACHE_CLEANUP_INTERVAL": "cache_cleanup_interval",
    "ALLOWED_DOMAINS": "allowed_domains",
    "MAX_IMAGE_SIZE": "max_image_size",
    "REQUEST_TIMEOUT": "request_timeout",
    "TEMPLATES_DIR": "templates_dir",
    "PIXELSERVE_LOG_LEVEL": "log_level",
}

# Keys that should be parsed as specific types
_TYPE_MAP: dict[str, type] = {
    "cache_ttl": int,
    "max_cache_size": int,
    "max_memory_cache_items": int,
    "browser_cache_ttl": int,
    "cache_cleanup_interval": float,
    "max_image_size": int,
    "request_timeout": int,
}

_LIST_KEYS = {"allowed_domains"}


def load_config_hierarchy(**runtime_overrides: Any) -> dict[str, Any]:
    """Load and merge configuration from all sources.

    Returns a merged dict with the final resolved values.
    """
    config = get_defaults()

    # Layer 2: Global config
    global_cfg = _load_yaml_config(_GLOBAL_CONFIG_PATH)
    if global_cfg:
        config.update(global_cfg)

    # Layer 3: Project config (search from cwd upward)
    project_path = _find_project_config()
    if project_path:
        project_cfg = _load_yaml_config(project_path)
        if project_cfg:
            config.update(project_cfg)

    # Layer 4: Environment variables
    config.update(_load_env_vars())

    # Layer 5: Runtime arguments, only when explicitly set
    for key, value in runtime_overrides.items():
        if value is not None:
            config[key] = value

    return config


def load_service_config(**runtime_overrides: Any) -> ServiceConfig:
    """Resolve the hierarchy and validate it into a ServiceConfig."""
    return ServiceConfig.from_flat(load_config_hierarchy(**runtime_overrides))


def _load_yaml_config(path: Path) -> dict[str, Any] | None:
    """Load a YAML config file if it exists."""
    if not path.exists() or not path.is_file():
        return None
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if isinstance(data, dict):
            return data
        logger.warning("Config file %s is not a mapping, ignoring", path)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load config %s: %s", path, e)
    return None


def _find_project_config() -> Path | None:
    """Search for pixelserve.yaml from cwd upward."""
    cwd = Path.cwd()
    for parent in [cwd, *cwd.parents]:
        candidate = parent / _PROJECT_CONFIG_NAME
        if candidate.exists():
            return candidate
    return None


def _load_env_vars() -> dict[str, Any]:
    result: dict[str, Any] = {}
    for env_key, config_key in _ENV_MAP.items():
        value = os.environ.get(env_key)
        if value is None:
            continue
        result[config_key] = _coerce_env_value(config_key, value)
    return result


def _coerce_env_value(key: str, value: str) -> Any:
    """Coerce an environment variable string to the appropriate type."""
    if key in _LIST_KEYS:
        return [item.strip() for item in value.split(",") if item.strip()]

    target_type = _TYPE_MAP.get(key)
    if target_type:
        try:
            return target_type(value)
        except (ValueError, TypeError):
            logger.warning(
                "Cannot convert env var for '%s' to %s: %s", key, target_type.__name__, value
            )
            return value

    return value
