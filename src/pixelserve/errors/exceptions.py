"""Custom exception hierarchy for pixelserve."""

from __future__ import annotations

from typing import Any


class PixelServeError(Exception):
    """Base exception for all pixelserve errors.

    Carries the HTTP status and machine-readable code a request handler
    should answer with.
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "",
        status_code: int | None = None,
        code: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


class ValidationError(PixelServeError):
    """Request parameters or upstream content failed validation."""

    status_code = 400
    code = "VALIDATION_ERROR"


class ForbiddenError(PixelServeError):
    """URL rejected by the SSRF guard (scheme, blocked host, private IP)."""

    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(PixelServeError):
    status_code = 404
    code = "NOT_FOUND"


class FetchError(PixelServeError):
    """Upstream fetch failed: non-2xx response or connection error."""

    status_code = 502
    code = "FETCH_ERROR"

    def __init__(
        self,
        message: str = "",
        http_status: int | None = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.http_status = http_status
        self.original = original


class UpstreamTimeoutError(PixelServeError):
    """Upstream fetch exceeded the configured timeout."""

    status_code = 504
    code = "TIMEOUT"

    def __init__(self, message: str = "Request timed out") -> None:
        super().__init__(message)


class ImageProcessingError(PixelServeError):
    """Decoding, transforming, rendering or encoding failed."""

    status_code = 422
    code = "IMAGE_PROCESSING_ERROR"
