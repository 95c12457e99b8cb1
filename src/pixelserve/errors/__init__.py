"""Error handling: exception hierarchy mapped to HTTP status codes."""

from pixelserve.errors.exceptions import (
    FetchError,
    ForbiddenError,
    ImageProcessingError,
    NotFoundError,
    PixelServeError,
    UpstreamTimeoutError,
    ValidationError,
)

__all__ = [
    "PixelServeError",
    "ValidationError",
    "ForbiddenError",
    "NotFoundError",
    "FetchError",
    "UpstreamTimeoutError",
    "ImageProcessingError",
]
