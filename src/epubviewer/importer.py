"""Import pipeline: uploaded files and web articles become catalogued books.

Every import owns a fresh book directory. If any step fails after the
directory is created, the directory is removed and no catalog row is left
behind; the original error propagates to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import httpx

from epubviewer.assistant.engine import AssistantEngine
from epubviewer.config import AppConfig
from epubviewer.content.splitter import split_into_pages
from epubviewer.content.store import ContentStore
from epubviewer.converters.base import get_converter
from epubviewer.errors import FetchError, InvalidInputError
from epubviewer.library.database import Database
from epubviewer.library.models import Book, ImportResult, new_id, title_from_filename
from epubviewer.web.crawler import (
    find_next_link,
    normalize_url,
    require_http_url,
    should_ignore_path,
)
from epubviewer.web.extractor import (
    extract_article_content,
    extract_metadata,
    image_extension,
    render_article_pages,
    render_crawled_page,
    replace_image_placeholders,
    split_content_by_headings,
)
from epubviewer.web.fetcher import download_image, fetch_page

log = logging.getLogger(__name__)

WEB_TAG_NAME = "web"
_TAG_RE = re.compile(r"<[^>]*>")


@dataclass
class CrawledPage:
    url: str
    title: str
    content: str
    images: list[str] = field(default_factory=list)


def _plain_text(html: str) -> str:
    return " ".join(_TAG_RE.sub(" ", html).split())


def _saved_at() -> str:
    return datetime.now(timezone.utc).isoformat()


class BookImporter:
    def __init__(
        self,
        config: AppConfig,
        db: Database,
        store: ContentStore,
        assistant: Optional[AssistantEngine] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._db = db
        self._store = store
        self._assistant = assistant
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ── Files ──────────────────────────────────────────────

    def import_file(
        self, source: Path, original_filename: str, category: Optional[str] = None
    ) -> ImportResult:
        """Convert an EPUB or PDF into a new book. Blocking: runs the converter."""
        converter = get_converter(Path(original_filename), self._config)
        title = title_from_filename(original_filename)
        book_id = new_id()
        book_dir = self._store.create_book_dir(book_id)

        try:
            doc = converter.convert(Path(source), book_dir, title)
            if doc.html is None:
                total = 1
            else:
                pages, toc = split_into_pages(doc.html)
                total = self._store.write_pages(book_id, pages, toc).total

            self._db.add_book(
                Book(
                    id=book_id,
                    title=title,
                    original_filename=original_filename,
                    total_pages=total,
                    book_type=doc.book_type,
                    language=doc.language or "en",
                    category=category,
                )
            )
        except Exception:
            log.error("Import of %s failed, removing %s", original_filename, book_dir)
            self._store.remove_book(book_id)
            raise

        log.info("Imported %s as %s (%d pages)", original_filename, book_id, total)
        return ImportResult(
            book_id=book_id, title=title, book_type=doc.book_type, total_pages=total
        )

    # ── Web articles ───────────────────────────────────────

    async def save_url(self, url: Optional[str]) -> ImportResult:
        url = require_http_url(url)
        cfg = self._config
        log.info("Fetching URL: %s", url)
        html = await fetch_page(self.client, url, cfg.page_timeout)

        metadata = extract_metadata(html, url)
        article = extract_article_content(html, url, cfg.min_candidate_chars)
        log.info("Extracted article %r with %d images", metadata.title, len(article.images))

        book_id = new_id()
        book_dir = self._store.create_book_dir(book_id)
        try:
            media_dir = self._store.media_dir(book_id)
            local_names: dict[int, str] = {}
            for i, image_url in enumerate(article.images):
                name = f"{i}{image_extension(image_url)}"
                await download_image(self.client, image_url, media_dir / name, cfg.image_timeout)
                local_names[i] = name

            if metadata.og_image:
                cover = book_dir / f"custom-cover{image_extension(metadata.og_image)}"
                await download_image(self.client, metadata.og_image, cover, cfg.image_timeout)

            content = replace_image_placeholders(article.content, local_names)
            sections = split_content_by_headings(content, cfg.min_section_chars)
            pages = render_article_pages(sections, metadata, url)
            index = self._store.write_pages(book_id, pages)

            self._store.write_metadata(
                book_id, {**metadata.to_dict(), "source_url": url, "saved_at": _saved_at()}
            )
            self._db.add_website_book(book_id, metadata.title, url, index.total)
        except Exception:
            log.error("Saving %s failed, removing %s", url, book_dir)
            self._store.remove_book(book_id)
            raise

        self._attach_web_tag(book_id)
        log.info("Saved %s as %s (%d pages)", url, book_id, index.total)
        return ImportResult(
            book_id=book_id,
            title=metadata.title,
            book_type="website",
            total_pages=index.total,
            metadata=metadata,
        )

    async def crawl(
        self,
        url: str,
        link_class: str,
        ignore_paths: Optional[list[str]] = None,
        max_pages: Optional[int] = None,
    ) -> list[CrawledPage]:
        """Follow "next" links from ``url`` until a link repeats or is ignored."""
        cfg = self._config
        ignore_paths = ignore_paths or []
        max_pages = max_pages or cfg.crawl_max_pages

        pages: list[CrawledPage] = []
        visited: set[str] = set()
        current: Optional[str] = url

        while current and len(pages) < max_pages:
            normalized = normalize_url(current)
            if normalized in visited:
                log.info("Already visited %s, stopping", normalized)
                break
            if should_ignore_path(urlsplit(normalized).path, ignore_paths):
                log.info("Ignoring %s", normalized)
                break
            visited.add(normalized)

            log.info("Fetching page %d: %s", len(pages) + 1, normalized)
            try:
                html = await fetch_page(self.client, normalized, cfg.page_timeout)
            except FetchError as e:
                if not pages:
                    raise
                log.warning("Stopping crawl at %s: %s", normalized, e)
                break

            metadata = extract_metadata(html, normalized)
            article = extract_article_content(html, normalized, cfg.min_candidate_chars)
            pages.append(
                CrawledPage(
                    url=normalized,
                    title=metadata.title,
                    content=article.content,
                    images=article.images,
                )
            )

            current = find_next_link(html, normalized, link_class)
            if current and len(pages) < max_pages:
                await asyncio.sleep(cfg.crawl_delay)

        return pages

    async def save_multipage_url(
        self,
        url: Optional[str],
        link_class: Optional[str],
        ignore_paths: Optional[list[str]] = None,
        max_pages: Optional[int] = None,
    ) -> ImportResult:
        url = require_http_url(url)
        if not link_class:
            raise InvalidInputError('linkClass is required (e.g., "next-page")')

        crawled = await self.crawl(url, link_class, ignore_paths, max_pages)
        if not crawled:
            raise FetchError("No pages could be fetched")

        title = crawled[0].title
        book_id = new_id()
        book_dir = self._store.create_book_dir(book_id)
        try:
            media_dir = self._store.media_dir(book_id)
            downloaded: dict[str, str] = {}
            for page in crawled:
                for image_url in page.images:
                    if image_url in downloaded:
                        continue
                    name = f"{len(downloaded)}{image_extension(image_url)}"
                    await download_image(
                        self.client, image_url, media_dir / name, self._config.image_timeout
                    )
                    downloaded[image_url] = name

            total = len(crawled)
            rendered = []
            for num, page in enumerate(crawled, start=1):
                local_names = {i: downloaded[u] for i, u in enumerate(page.images)}
                content = replace_image_placeholders(page.content, local_names)
                rendered.append(render_crawled_page(content, page.title, page.url, num, total))
            self._store.write_pages(book_id, rendered)

            self._store.write_metadata(
                book_id,
                {
                    "title": title,
                    "source_url": url,
                    "crawled_urls": [p.url for p in crawled],
                    "saved_at": _saved_at(),
                },
            )
            self._db.add_website_book(book_id, title, url, total)
        except Exception:
            log.error("Saving multi-page %s failed, removing %s", url, book_dir)
            self._store.remove_book(book_id)
            raise

        self._attach_web_tag(book_id)
        log.info("Saved %d pages from %s as %s", total, url, book_id)
        return ImportResult(
            book_id=book_id,
            title=title,
            book_type="website",
            total_pages=total,
            crawled_urls=[p.url for p in crawled],
        )

    # ── Tags ───────────────────────────────────────────────

    def _attach_web_tag(self, book_id: str) -> None:
        tag = self._db.find_tag_by_name(WEB_TAG_NAME)
        if tag is not None:
            self._db.add_tag_to_book(book_id, tag.id)

    def book_excerpt(self, book_id: str) -> str:
        """Plain text of the first page, for tag suggestion."""
        index = self._store.read_index(book_id)
        if index is None or index.total < 1:
            return ""
        return _plain_text(self._store.read_page(book_id, 1))

    async def auto_tag(self, book_id: str) -> list[str]:
        """Attach assistant-suggested tags. Failures are logged, never raised."""
        if self._assistant is None or not self._assistant.is_configured:
            return []
        book = self._db.get_book(book_id)
        if book is None:
            return []
        try:
            excerpt = self.book_excerpt(book_id)
            suggested = await self._assistant.suggest_tags(
                book.title, excerpt, self._db.list_tags()
            )
        except Exception as e:
            log.warning("Tag suggestion failed for %s: %s", book_id, e)
            return []
        for tag_id in suggested:
            self._db.add_tag_to_book(book_id, tag_id)
        return suggested

    async def auto_tag_all(self, force: bool = False) -> list[dict]:
        """Suggest tags for every book; untagged books only unless ``force``."""
        if self._assistant is None or not self._assistant.is_configured:
            raise InvalidInputError("AI assistant is not configured")

        names = {t.id: t.name for t in self._db.list_tags()}
        results = []
        for book in self._db.list_books():
            if book.tags and not force:
                tag_names = [t.name for t in book.tags]
            else:
                tag_names = [names.get(i, i) for i in await self.auto_tag(book.id)]
            results.append({"bookId": book.id, "title": book.title, "tags": tag_names})
        log.info("Auto-tag pass finished over %d books", len(results))
        return results
