"""Async fetcher for remote source images."""

from __future__ import annotations

import asyncio
import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pixelserve.config.schema import ServiceConfig
from pixelserve.errors.exceptions import FetchError, UpstreamTimeoutError, ValidationError
from pixelserve.utils.url_validator import validate_url

logger = logging.getLogger(__name__)

_USER_AGENT = "PixelServe/1.0"


class ImageFetcher:
    """Downloads validated image URLs with a hard timeout and size cap."""

    def __init__(
        self,
        config: ServiceConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or ServiceConfig()
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.request_timeout_seconds),
            follow_redirects=True,
            headers={"User-Agent": _USER_AGENT, "Accept": "image/*"},
        )

    async def fetch(self, url: str) -> bytes:
        """Fetch image bytes from ``url``.

        Raises ForbiddenError/ValidationError for rejected URLs or content,
        FetchError for upstream failures, UpstreamTimeoutError on timeout.
        """
        url = await validate_url(
            url,
            allowed_domains=self._config.allowed_domains,
            blocked_domains=self._config.blocked_domains,
        )
        try:
            # Deadline covers the whole exchange, body included
            async with asyncio.timeout(self._config.request_timeout_seconds):
                return await self._download(url)
        except (httpx.TimeoutException, TimeoutError) as e:
            raise UpstreamTimeoutError("Image fetch timed out") from e
        except httpx.TransportError as e:
            raise FetchError(f"Failed to fetch image: {e}", original=e) from e

    async def close(self) -> None:
        await self._client.aclose()

    @retry(
        retry=retry_if_exception_type(httpx.ConnectError),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        stop=stop_after_attempt(2),
        reraise=True,
    )
    async def _download(self, url: str) -> bytes:
        limit = self._config.max_image_size
        async with self._client.stream("GET", url) as response:
            if not response.is_success:
                raise FetchError(
                    f"Failed to fetch image: {response.status_code} {response.reason_phrase}",
                    http_status=response.status_code,
                )

            content_type = response.headers.get("content-type", "")
            if not content_type.startswith("image/"):
                raise ValidationError(f"URL does not return an image (got {content_type})")

            declared = _content_length(response)
            if declared > limit:
                raise ValidationError(_too_large_message(limit))

            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > limit:
                    raise ValidationError(_too_large_message(limit))
                chunks.append(chunk)

        logger.debug("Fetched %d bytes from %s", received, url)
        return b"".join(chunks)


def _content_length(response: httpx.Response) -> int:
    try:
        return int(response.headers.get("content-length", "0"))
    except ValueError:
        return 0


def _too_large_message(limit: int) -> str:
    return f"Image exceeds maximum size limit ({round(limit / 1024 / 1024)}MB)"
