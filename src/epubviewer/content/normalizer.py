"""Rewrite converted content so it renders when served from the app's own origin."""

from __future__ import annotations

import re

# pandoc writes --extract-media paths as given on the command line: an absolute
# path to the book's media dir, a bare media/ path, or ./media/.
_RELATIVE_MEDIA_RE = re.compile(r'src="media/')
_DOT_MEDIA_RE = re.compile(r'src="\./media/')

_FIXED_WIDTH_RE = re.compile(r"max-width:\s*800px")


def media_url(book_id: str, api_prefix: str = "/api") -> str:
    return f"{_books_url(api_prefix)}{book_id}/media/"


def _books_url(api_prefix: str) -> str:
    return f"{api_prefix.rstrip('/')}/books/"


def _absolute_media_re(api_prefix: str) -> re.Pattern[str]:
    # media endpoint URLs of any book are left alone
    return re.compile(r'src="(?!' + re.escape(_books_url(api_prefix)) + r')/[^"]*/media/')


def normalize_image_paths(html: str, book_id: str, api_prefix: str = "/api") -> str:
    """Point every media image at the book's media endpoint. Idempotent."""
    replacement = f'src="{media_url(book_id, api_prefix)}'
    html = _absolute_media_re(api_prefix).sub(replacement, html)
    html = _RELATIVE_MEDIA_RE.sub(replacement, html)
    return _DOT_MEDIA_RE.sub(replacement, html)


def normalize_layout_width(html: str) -> str:
    """Let the reader control width: the page template's 800px becomes 100%."""
    return _FIXED_WIDTH_RE.sub("max-width: 100%", html)


def normalize_content(html: str, book_id: str, api_prefix: str = "/api") -> str:
    return normalize_layout_width(normalize_image_paths(html, book_id, api_prefix))
