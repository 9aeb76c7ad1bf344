"""URL helpers for saving articles and following multi-page "next" links."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from epubviewer.errors import InvalidInputError


def should_ignore_path(url_path: str, ignore_paths: list[str]) -> bool:
    """``*suffix`` matches the end, ``prefix*`` the start, anything else a substring."""
    for pattern in ignore_paths:
        if pattern.startswith("*"):
            if url_path.endswith(pattern[1:]):
                return True
        elif pattern.endswith("*"):
            if url_path.startswith(pattern[:-1]):
                return True
        elif pattern in url_path:
            return True
    return False


def normalize_class_selector(link_class: str) -> str:
    if link_class.startswith(".") or link_class.startswith("a."):
        return link_class
    return f".{link_class}"


def normalize_url(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url
    return urlunsplit(
        (
            parts.scheme.lower(),
            parts.netloc.lower(),
            parts.path or "/",
            parts.query,
            parts.fragment,
        )
    )


def resolve_url(href: str, base_url: str) -> Optional[str]:
    try:
        resolved = urljoin(base_url, href)
    except ValueError:
        return None
    return normalize_url(resolved) if is_valid_http_url(resolved) else None


def is_valid_http_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def require_http_url(url: Optional[str]) -> str:
    if not url or not isinstance(url, str):
        raise InvalidInputError("URL is required")
    if not is_valid_http_url(url):
        raise InvalidInputError("Invalid URL format")
    return url


def find_next_link(html: str, base_url: str, link_class: str) -> Optional[str]:
    """First ``a<link_class>`` href, falling back to ``a[rel=next]``."""
    soup = BeautifulSoup(html, "lxml")
    selector = normalize_class_selector(link_class)
    if not selector.startswith("a"):
        selector = f"a{selector}"

    for candidate in (soup.select_one(selector), soup.select_one('a[rel~="next"]')):
        if candidate is None:
            continue
        href = candidate.get("href")
        if href:
            next_url = resolve_url(href, base_url)
            if next_url:
                return next_url
    return None
