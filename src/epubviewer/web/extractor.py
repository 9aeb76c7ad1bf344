"""Readable-article extraction from arbitrary web pages.

Metadata comes from Open Graph / Twitter card tags, falling back to the
document ``<title>``. The article body is the first content container with
enough text once page chrome (navigation, ads, comments, share widgets) has
been removed. Images are rewritten to ``media/{i}.img`` placeholders whose
indices line up with ``ArticleContent.images``; the caller downloads them and
swaps in the real extension with :func:`replace_image_placeholders`.
"""

from __future__ import annotations

import html as html_lib
import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from epubviewer.library.models import WebsiteMetadata

log = logging.getLogger(__name__)

MIN_CANDIDATE_CHARS = 100
MIN_SECTION_CHARS = 20
MIN_IMAGE_DIMENSION = 10

REMOVE_SELECTORS = [
    "script",
    "style",
    "nav",
    "header",
    "footer",
    "aside",
    "iframe",
    "noscript",
    ".ads",
    ".advertisement",
    ".sidebar",
    ".menu",
    ".navigation",
    ".comment",
    ".comments",
    "#comments",
    ".social-share",
    ".share-buttons",
    ".related-posts",
    ".hatena-module",
    ".entry-footer",
    ".hatena-star-container",
    ".entry-footer-section",
    ".sharing",
]

CONTENT_SELECTORS = [
    "article",
    "main",
    '[role="main"]',
    ".entry-content",
    ".hatenablog-entry",
    ".post-content",
    ".article-content",
    ".article-body",
    ".post-body",
    ".content",
    "#content",
]

LAZY_SOURCE_ATTRS = ("data-src", "data-lazy-src", "data-original")
STRIPPED_IMAGE_ATTRS = LAZY_SOURCE_ATTRS + ("srcset", "loading", "sizes")

ALLOWED_ATTRS = frozenset(
    ["src", "href", "alt", "title", "lang", "dir", "cite", "datetime"]
)
CODE_ATTRS = frozenset(["class", "data-lang"])

_H2_OPEN_RE = re.compile(r"(<h2[^>]*>)", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
_LEADING_INT_RE = re.compile(r"\s*(\d+)")

HEADING_PREFIXES = (("h1", "# "), ("h2", "## "), ("h3", "### "))

ARTICLE_STYLES = """
    <link rel="stylesheet" href="https://cdnjs.cloudflare.com/ajax/libs/highlight.js/11.9.0/styles/github.min.css">
    <style>
      body {
        font-family: 'Noto Sans JP', 'Hiragino Sans', sans-serif;
        line-height: 1.8;
        max-width: 800px;
        margin: 0 auto;
        padding: 20px;
        background: #fafafa;
        color: #333;
      }
      img { max-width: 100%; height: auto; display: block; margin: 1em auto; }
      pre { padding: 0; overflow-x: auto; border-radius: 5px; margin: 1em 0; }
      pre code {
        display: block;
        padding: 15px;
        font-family: 'Consolas', 'Monaco', monospace;
        font-size: 0.9em;
      }
      code {
        background: #f4f4f4;
        padding: 2px 6px;
        border-radius: 3px;
        font-family: 'Consolas', 'Monaco', monospace;
      }
      h1, h2, h3 { color: #2c3e50; }
      a { color: #3498db; }
      blockquote { border-left: 4px solid #3498db; margin: 1em 0; padding-left: 1em; color: #666; }
    </style>
"""

HIGHLIGHT_SCRIPT = """
    <script src="https://cdnjs.cloudflare.com/ajax/libs/highlight.js/11.9.0/highlight.min.js"></script>
    <script>
      document.addEventListener('DOMContentLoaded', function() {
        hljs.highlightAll();
      });
    </script>
"""

ARTICLE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
  {styles}
</head>
<body>
  {header}
  {body}
  {footer}
  {script}
</body>
</html>"""

_MUTED = 'style="color: #666; font-size: 0.9em;"'


@dataclass
class ArticleContent:
    """Cleaned article HTML plus the absolute image URLs, by placeholder index."""

    content: str
    images: list[str] = field(default_factory=list)


def _absolute_url(value: Optional[str], base_url: str) -> Optional[str]:
    if not value:
        return None
    try:
        resolved = urljoin(base_url, value.strip())
        parts = urlsplit(resolved)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return resolved


def _meta_content(soup: BeautifulSoup, attr: str, value: str) -> Optional[str]:
    tag = soup.find("meta", attrs={attr: value})
    if tag is None:
        return None
    content = (tag.get("content") or "").strip()
    return content or None


# ── Metadata ──────────────────────────────────────────────────────


def extract_metadata(html: str, base_url: str) -> WebsiteMetadata:
    soup = BeautifulSoup(html, "lxml")

    title = _meta_content(soup, "property", "og:title") or _meta_content(
        soup, "name", "twitter:title"
    )
    if not title and soup.title is not None:
        title = soup.title.get_text().strip()

    description = _meta_content(soup, "property", "og:description") or _meta_content(
        soup, "name", "description"
    )
    image = _meta_content(soup, "property", "og:image") or _meta_content(
        soup, "name", "twitter:image"
    )

    # rel is multi-valued, so this also matches "shortcut icon"
    icon = soup.find("link", rel="icon", href=True)
    favicon = icon["href"] if icon is not None else "/favicon.ico"

    return WebsiteMetadata(
        title=title or "Untitled",
        description=description,
        og_image=_absolute_url(image, base_url) if image else None,
        favicon=_absolute_url(favicon, base_url),
        site_name=_meta_content(soup, "property", "og:site_name"),
    )


# ── Article body ──────────────────────────────────────────────────


def _dimension(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    match = _LEADING_INT_RE.match(value)
    return int(match.group(1)) if match else None


def _is_tracking_pixel(img: Tag) -> bool:
    width = _dimension(img.get("width"))
    height = _dimension(img.get("height"))
    return (width is not None and width < MIN_IMAGE_DIMENSION) or (
        height is not None and height < MIN_IMAGE_DIMENSION
    )


def _image_source(img: Tag) -> Optional[str]:
    for attr in ("src",) + LAZY_SOURCE_ATTRS:
        value = img.get(attr)
        if value and value.strip():
            return value.strip()
    return None


def _select_content(soup: BeautifulSoup, min_chars: int) -> Tag:
    for selector in CONTENT_SELECTORS:
        candidate = soup.select_one(selector)
        if candidate is not None and len(candidate.get_text().strip()) > min_chars:
            return candidate
    return soup.body or soup


def _rewrite_images(content: Tag, base_url: str) -> list[str]:
    images: list[str] = []
    for img in content.find_all("img"):
        src = _image_source(img)
        if _is_tracking_pixel(img) or not src or src.startswith("data:") or src == "#":
            img.decompose()
            continue
        absolute = _absolute_url(src, base_url)
        if absolute is None:
            img.decompose()
            continue
        img["src"] = f"media/{len(images)}.img"
        images.append(absolute)
        for attr in STRIPPED_IMAGE_ATTRS:
            img.attrs.pop(attr, None)
    return images


def _sanitize_attributes(content: Tag) -> None:
    for el in content.find_all(True):
        is_code = el.name in ("code", "pre") or el.find_parent("pre") is not None
        allowed = ALLOWED_ATTRS | CODE_ATTRS if is_code else ALLOWED_ATTRS
        el.attrs = {k: v for k, v in el.attrs.items() if k in allowed}


def _prune_empty(content: Tag) -> None:
    for el in content.find_all(["div", "span", "p"]):
        if el.decomposed:
            continue
        # highlighted code keeps whitespace-only spans
        if el.find_parent(["pre", "code"]) is not None:
            continue
        if el.find(["img", "pre", "code"]) is not None:
            continue
        if not el.get_text().strip():
            el.decompose()


def extract_article_content(
    html: str, base_url: str, min_candidate_chars: int = MIN_CANDIDATE_CHARS
) -> ArticleContent:
    soup = BeautifulSoup(html, "lxml")

    for el in soup.select(", ".join(REMOVE_SELECTORS)):
        if not el.decomposed:
            el.decompose()

    content = _select_content(soup, min_candidate_chars)
    images = _rewrite_images(content, base_url)
    _sanitize_attributes(content)
    _prune_empty(content)

    log.debug("Extracted article from %s with %d images", base_url, len(images))
    return ArticleContent(content=content.decode_contents(), images=images)


def image_extension(url: str) -> str:
    """File extension from the URL path, ``.jpg`` when there is none."""
    try:
        suffix = PurePosixPath(urlsplit(url).path).suffix
    except ValueError:
        suffix = ""
    return suffix or ".jpg"


def replace_image_placeholders(content: str, local_names: dict[int, str]) -> str:
    """Swap ``media/{i}.img`` placeholders for the downloaded file names."""
    for index, name in local_names.items():
        content = re.sub(
            rf'src="media/{index}\.img"', f'src="media/{name}"', content
        )
    return content


# ── Pagination ────────────────────────────────────────────────────


def _fragment_soup(content: str) -> BeautifulSoup:
    return BeautifulSoup(f"<body>{content}</body>", "lxml")


def add_heading_prefixes(content: str) -> str:
    """Prefix h1/h2/h3 text with ``#``/``##``/``###`` unless already present."""
    soup = _fragment_soup(content)
    for tag_name, prefix in HEADING_PREFIXES:
        for heading in soup.find_all(tag_name):
            if not heading.get_text().startswith(prefix):
                heading.insert(0, prefix)
    return soup.body.decode_contents() if soup.body is not None else content


def _text_length(fragment: str) -> int:
    return len(_TAG_RE.sub("", fragment).strip())


def split_content_by_headings(
    content: str, min_chars: int = MIN_SECTION_CHARS
) -> list[str]:
    """Split an article at every ``<h2>``.

    Sections whose text is ``min_chars`` or shorter are dropped; when fewer
    than two sections survive, the whole article is a single page.
    """
    prefixed = add_heading_prefixes(content)
    parts = _H2_OPEN_RE.split(prefixed)
    if len(parts) <= 1:
        return [prefixed]

    sections: list[str] = []
    current = ""
    for part in parts:
        if _H2_OPEN_RE.fullmatch(part):
            if _text_length(current) > min_chars:
                sections.append(current)
            current = part
        else:
            current += part
    if _text_length(current) > min_chars:
        sections.append(current)

    if len(sections) <= 1:
        return [prefixed]
    return sections


def render_article_pages(
    sections: list[str], metadata: WebsiteMetadata, url: str
) -> list[str]:
    """Wrap sections as standalone pages: title on the first, source link on the last."""
    title = html_lib.escape(metadata.title)
    source = html_lib.escape(url, quote=True)
    total = len(sections)
    pages = []
    for i, section in enumerate(sections, start=1):
        header = ""
        if i == 1:
            header = f"<h1>{title}</h1>"
            if metadata.site_name:
                header += f"\n  <p {_MUTED}>Source: {html_lib.escape(metadata.site_name)}</p>"
            header += "\n  <hr>"
        footer = ""
        if i == total:
            footer = (
                f'<hr><p {_MUTED}>Original: <a href="{source}" target="_blank">{source}</a></p>'
            )
        pages.append(
            ARTICLE_TEMPLATE.format(
                title=title,
                styles=ARTICLE_STYLES,
                header=header,
                body=section,
                footer=footer,
                script=HIGHLIGHT_SCRIPT,
            )
        )
    return pages


def render_crawled_page(
    content: str, title: str, url: str, page_num: int, total: int
) -> str:
    """One fetched page of a multi-page article, with its own position footer."""
    safe_title = html_lib.escape(title)
    source = html_lib.escape(url, quote=True)
    return ARTICLE_TEMPLATE.format(
        title=f"{safe_title} - Page {page_num}",
        styles=ARTICLE_STYLES,
        header=f"<h1>{safe_title}</h1>",
        body=content,
        footer=(
            f"<hr><p {_MUTED}>Page {page_num} of {total} | Source: "
            f'<a href="{source}" target="_blank">{source}</a></p>'
        ),
        script=HIGHLIGHT_SCRIPT,
    )
