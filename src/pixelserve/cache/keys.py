"""Cache key generation: order-independent request fingerprints."""

from __future__ import annotations

import hashlib
from collections.abc import Mapping

from pixelserve.types import ImageParams, OGParams, ParamValue

OG_DISCRIMINATOR = "og"


def generate_cache_key(params: Mapping[str, ParamValue]) -> str:
    """Generate a SHA256 cache key from a request's parameter set.

    ``None`` values are dropped and the remaining names sorted, so two
    mappings with the same defined entries hash identically regardless of
    insertion order. The empty set hashes the empty string.
    """
    serialized = "&".join(
        f"{name}={_canonical(value)}"
        for name, value in sorted(params.items())
        if value is not None
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def image_params_key(params: ImageParams) -> str:
    return generate_cache_key(params.to_cache_params())


def og_params_key(params: OGParams) -> str:
    """Key for an OG request, namespaced away from transform keys."""
    return generate_cache_key({"type": OG_DISCRIMINATOR, **params.to_cache_params()})


def _canonical(value: ParamValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
