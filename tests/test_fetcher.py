"""Tests for bounded HTTP fetching."""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import pytest

from epubviewer.errors import FetchError
from epubviewer.web.fetcher import DEFAULT_HEADERS, download_image, fetch_page


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestFetchPage:
    @pytest.mark.asyncio
    async def test_success_sends_browser_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, text="<html>ok</html>")

        async with _client(handler) as client:
            html = await fetch_page(client, "https://example.com/a")
        assert html == "<html>ok</html>"
        assert seen["user-agent"] == DEFAULT_HEADERS["User-Agent"]
        assert "accept-language" in seen

    @pytest.mark.asyncio
    async def test_non_success_status(self):
        async with _client(lambda request: httpx.Response(404)) as client:
            with pytest.raises(FetchError, match="Failed to fetch URL: 404 Not Found") as exc:
                await fetch_page(client, "https://example.com/missing")
        assert exc.value.status == 404
        assert exc.value.status_code == 502

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(FetchError):
                await fetch_page(client, "https://example.com/")

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, text="late")

        async with _client(handler) as client:
            with pytest.raises(FetchError, match="Timed out"):
                await fetch_page(client, "https://example.com/slow", timeout=0.05)


class TestDownloadImage:
    @pytest.mark.asyncio
    async def test_saves_bytes(self, tmp_path: Path):
        dest = tmp_path / "0.png"
        async with _client(lambda request: httpx.Response(200, content=b"PNGDATA")) as client:
            assert await download_image(client, "https://example.com/a.png", dest) is True
        assert dest.read_bytes() == b"PNGDATA"

    @pytest.mark.asyncio
    async def test_failure_is_skipped(self, tmp_path: Path):
        dest = tmp_path / "0.png"
        async with _client(lambda request: httpx.Response(500)) as client:
            assert await download_image(client, "https://example.com/a.png", dest) is False
        assert not dest.exists()
