"""Bounded-time HTTP fetches for article pages and their images."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import httpx

from epubviewer.errors import FetchError

log = logging.getLogger(__name__)

PAGE_TIMEOUT = 30.0
IMAGE_TIMEOUT = 15.0

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "ja,en-US;q=0.9,en;q=0.8",
}


async def fetch_with_timeout(
    client: httpx.AsyncClient, url: str, timeout: float = PAGE_TIMEOUT
) -> httpx.Response:
    """GET ``url``; the whole request is cancelled once ``timeout`` seconds pass."""
    try:
        return await asyncio.wait_for(
            client.get(url, headers=DEFAULT_HEADERS, follow_redirects=True),
            timeout,
        )
    except asyncio.TimeoutError as e:
        log.error("Fetch timed out after %ss: %s", timeout, url)
        raise FetchError(f"Timed out after {timeout:g}s fetching {url}") from e
    except httpx.RequestError as e:
        log.error("Fetch request error: %s %s -> %s", type(e).__name__, url, e)
        raise FetchError(f"Failed to fetch URL: {type(e).__name__} ({url})") from e


async def fetch_page(
    client: httpx.AsyncClient, url: str, timeout: float = PAGE_TIMEOUT
) -> str:
    response = await fetch_with_timeout(client, url, timeout)
    if not response.is_success:
        raise FetchError(
            f"Failed to fetch URL: {response.status_code} {response.reason_phrase}",
            status=response.status_code,
        )
    return response.text


async def download_image(
    client: httpx.AsyncClient, url: str, dest: Path, timeout: float = IMAGE_TIMEOUT
) -> bool:
    """Save ``url`` to ``dest``. Failures are logged and reported as False."""
    try:
        response = await fetch_with_timeout(client, url, timeout)
    except FetchError as e:
        log.warning("Failed to download image: %s (%s)", url, e)
        return False
    if not response.is_success:
        log.warning("Failed to download image: %s (HTTP %d)", url, response.status_code)
        return False
    try:
        dest.write_bytes(response.content)
    except OSError as e:
        log.warning("Failed to save image %s to %s: %s", url, dest, e)
        return False
    return True
