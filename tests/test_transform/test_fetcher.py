"""Tests for the remote image fetcher."""

import asyncio
import time

import httpx
import pytest

from pixelserve.config.schema import ServiceConfig
from pixelserve.errors.exceptions import (
    FetchError,
    ForbiddenError,
    UpstreamTimeoutError,
    ValidationError,
)
from pixelserve.transform.fetcher import ImageFetcher
from pixelserve.utils import url_validator

URL = "https://images.example.com/photo.png"


@pytest.fixture(autouse=True)
def _public_dns(monkeypatch):
    async def fake_resolve(hostname):
        return ["93.184.216.34"]

    monkeypatch.setattr(url_validator, "_resolve", fake_resolve)


def _fetcher(handler, **config) -> ImageFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ImageFetcher(ServiceConfig(**config), client=client)


class TestImageFetcher:
    async def test_returns_body(self, sample_image_bytes):
        def handler(request):
            return httpx.Response(200, content=sample_image_bytes, headers={"content-type": "image/png"})

        fetcher = _fetcher(handler)
        try:
            assert await fetcher.fetch(URL) == sample_image_bytes
        finally:
            await fetcher.close()

    async def test_non_success_status(self):
        fetcher = _fetcher(lambda request: httpx.Response(404))
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch(URL)
        assert exc_info.value.http_status == 404
        assert "404" in exc_info.value.message

    async def test_non_image_content_type(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>", headers={"content-type": "text/html"})

        with pytest.raises(ValidationError, match="does not return an image"):
            await _fetcher(handler).fetch(URL)

    async def test_declared_size_over_limit(self):
        def handler(request):
            return httpx.Response(
                200,
                content=b"x" * 10,
                headers={"content-type": "image/png", "content-length": str(5 * 1024 * 1024)},
            )

        with pytest.raises(ValidationError, match="maximum size"):
            await _fetcher(handler, max_image_size=1024).fetch(URL)

    async def test_streamed_size_over_limit(self):
        def handler(request):
            return httpx.Response(200, content=b"x" * 4096, headers={"content-type": "image/png"})

        with pytest.raises(ValidationError, match="maximum size"):
            await _fetcher(handler, max_image_size=1024).fetch(URL)

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UpstreamTimeoutError):
            await _fetcher(handler).fetch(URL)

    async def test_slow_body_hits_total_deadline(self):
        async def trickle():
            for _ in range(20):
                await asyncio.sleep(0.1)
                yield b"x"

        def handler(request):
            return httpx.Response(200, content=trickle(), headers={"content-type": "image/png"})

        started = time.monotonic()
        with pytest.raises(UpstreamTimeoutError, match="timed out"):
            await _fetcher(handler, request_timeout_seconds=0.3).fetch(URL)
        assert time.monotonic() - started < 1.5

    async def test_connect_error_retried_then_raised(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(FetchError):
            await _fetcher(handler).fetch(URL)
        assert calls == 2

    async def test_forbidden_url_never_requested(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(200)

        with pytest.raises(ForbiddenError):
            await _fetcher(handler).fetch("http://127.0.0.1/secret")
        assert calls == 0

    async def test_allowlist_enforced(self):
        fetcher = _fetcher(lambda request: httpx.Response(200), allowed_domains=("other.com",))
        with pytest.raises(ForbiddenError):
            await fetcher.fetch(URL)
