"""Split one converted HTML document into standalone page documents.

pandoc's standalone output wraps every top-level chapter in
``<section class="level1">`` (or emits bare ``<h1>`` runs for older inputs),
so section detection works on the raw markup before any path rewriting.
Detection is tried in priority order and stops at the first rule that matches:

1. ``level1``-classed ``section``/``div`` containers, or ``<h1>`` runs
2. ``<h2>`` runs
3. the whole body as a single page
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from epubviewer.library.models import TocItem

_HEAD_RE = re.compile(r"<head>([\s\S]*?)</head>", re.IGNORECASE)
_BODY_RE = re.compile(r"<body[^>]*>([\s\S]*?)</body>", re.IGNORECASE)
_TOC_RE = re.compile(r'<nav[^>]*id="TOC"[^>]*>[\s\S]*?</nav>', re.IGNORECASE)

_LEVEL1_OR_H1_RE = re.compile(
    r'(<(?:section|div)[^>]*class="[^"]*level1[^"]*"[^>]*>[\s\S]*?</(?:section|div)>)'
    r"|(<h1[^>]*>[\s\S]*?)(?=<h1|\Z)",
    re.IGNORECASE,
)
_H2_RE = re.compile(r"<h2[^>]*>[\s\S]*?(?=<h2|\Z)", re.IGNORECASE)

_HEADING_RE = re.compile(r"<h([123])[^>]*>([\s\S]*?)</h\1>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")

DEFAULT_STYLES = """
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
      img { max-width: 100%; height: auto; }
      pre {
        background: #f4f4f4;
        padding: 15px;
        overflow-x: auto;
        border-radius: 5px;
      }
      code {
        background: #f4f4f4;
        padding: 2px 6px;
        border-radius: 3px;
      }
      h1, h2, h3 { color: #2c3e50; }
      a { color: #3498db; }
    </style>
"""

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  {head}
  {styles}
</head>
<body>
  {body}
</body>
</html>"""


@dataclass
class SplitDocument:
    """Result of splitting: shared head, the TOC fragment, and ordered page bodies."""

    head: str
    toc: str
    sections: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.sections)


def page_name(page_num: int) -> str:
    return f"page-{page_num}.html"


def extract_head(html: str) -> str:
    match = _HEAD_RE.search(html)
    return match.group(1) if match else ""


def extract_body(html: str) -> str:
    match = _BODY_RE.search(html)
    return match.group(1) if match else html


def detect_sections(content: str) -> list[str]:
    sections = [m.group(0) for m in _LEVEL1_OR_H1_RE.finditer(content)]
    if not sections:
        sections = [m.group(0) for m in _H2_RE.finditer(content)]
    if not sections:
        sections = [content]
    return sections


def split_document(html: str) -> SplitDocument:
    head = extract_head(html)
    body = extract_body(html)

    toc_match = _TOC_RE.search(body)
    toc = toc_match.group(0) if toc_match else ""
    content = _TOC_RE.sub("", body, count=1)

    return SplitDocument(head=head, toc=toc, sections=detect_sections(content))


def render_page(body: str, head: str = "", styles: str = DEFAULT_STYLES) -> str:
    return PAGE_TEMPLATE.format(head=head, styles=styles, body=body)


def split_into_pages(html: str) -> tuple[list[str], str]:
    """Split ``html`` into rendered page documents. Returns ``(pages, toc)``."""
    doc = split_document(html)
    pages = [render_page(section, doc.head) for section in doc.sections]
    return pages, doc.toc


def extract_headings(page_html: str, page_num: int) -> list[TocItem]:
    """h1-h3 headings of one page, for books without a converter TOC."""
    items: list[TocItem] = []
    for match in _HEADING_RE.finditer(page_html):
        title = _TAG_RE.sub("", match.group(2)).strip()
        if title and len(title) < 200:
            items.append(TocItem(page=page_num, level=int(match.group(1)), title=title))
    return items
