"""Response headers for served image artifacts."""

from __future__ import annotations

MIME_TYPES: dict[str, str] = {
    "webp": "image/webp",
    "avif": "image/avif",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
}

_FALLBACK_MIME = "image/jpeg"


def mime_type(format: str) -> str:
    return MIME_TYPES.get(str(format).lower(), _FALLBACK_MIME)


def get_cache_headers(format: str, browser_ttl_seconds: int) -> dict[str, str]:
    """Headers for a hit or freshly generated artifact of ``format``."""
    return {
        "Content-Type": mime_type(format),
        "Cache-Control": f"public, max-age={browser_ttl_seconds}, immutable",
        "Vary": "Accept",
    }
