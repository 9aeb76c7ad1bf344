"""Directory-per-book content store.

Layout under ``<root>/<book_id>/``::

    pages/page-N.html   normalized standalone page documents
    pages.json          {"total": N, "pages": ["page-1.html", ...]}
    toc.html            converter table of contents fragment
    media/              images referenced by the pages
    metadata.json       source metadata (web articles)
    document.pdf        original file (PDF books)
    custom-cover.<ext>  user or og:image cover
"""

from __future__ import annotations

import json
import logging
import re
import shutil
from pathlib import Path
from typing import Optional

from epubviewer.converters.pdf_converter import render_thumbnail
from epubviewer.errors import (
    ConversionError,
    InvalidInputError,
    NotFoundError,
    StorageError,
)
from epubviewer.library.models import PagesIndex, TocItem

from .normalizer import normalize_content
from .splitter import extract_body, extract_headings, page_name

log = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp")
_BOOK_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_ORIGINAL_BACKUP_RE = re.compile(r"^page-(\d+)\.original\.html$")


class ContentStore:
    def __init__(self, root: Path, api_prefix: str = "/api") -> None:
        self._root = Path(root)
        self._api_prefix = api_prefix
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    # ── Book directories ───────────────────────────────────

    def book_dir(self, book_id: str) -> Path:
        if not _BOOK_ID_RE.match(book_id):
            raise InvalidInputError(f"Invalid book id: {book_id!r}")
        return self._root / book_id

    def media_dir(self, book_id: str) -> Path:
        return self.book_dir(book_id) / "media"

    def pages_dir(self, book_id: str) -> Path:
        return self.book_dir(book_id) / "pages"

    def exists(self, book_id: str) -> bool:
        return self.book_dir(book_id).is_dir()

    def create_book_dir(self, book_id: str) -> Path:
        book_dir = self.book_dir(book_id)
        try:
            (book_dir / "media").mkdir(parents=True, exist_ok=True)
            (book_dir / "pages").mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create book directory: {e}") from e
        return book_dir

    def remove_book(self, book_id: str) -> None:
        book_dir = self.book_dir(book_id)
        if book_dir.exists():
            shutil.rmtree(book_dir, ignore_errors=True)
            log.info("Removed content for book %s", book_id)

    # ── Pages ──────────────────────────────────────────────

    def write_pages(
        self, book_id: str, pages: list[str], toc: Optional[str] = None
    ) -> PagesIndex:
        """Normalize and write every page, then the index and TOC artifacts."""
        pages_dir = self.pages_dir(book_id)
        names: list[str] = []
        try:
            pages_dir.mkdir(parents=True, exist_ok=True)
            for num, page_html in enumerate(pages, start=1):
                name = page_name(num)
                (pages_dir / name).write_text(
                    normalize_content(page_html, book_id, self._api_prefix),
                    encoding="utf-8",
                )
                names.append(name)

            if toc is not None:
                (self.book_dir(book_id) / "toc.html").write_text(toc, encoding="utf-8")

            index = PagesIndex(total=len(names), pages=names)
            (self.book_dir(book_id) / "pages.json").write_text(
                json.dumps(index.to_dict()), encoding="utf-8"
            )
        except OSError as e:
            raise StorageError(f"Failed to write pages for {book_id}: {e}") from e
        return index

    def read_index(self, book_id: str) -> Optional[PagesIndex]:
        path = self.book_dir(book_id) / "pages.json"
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        return PagesIndex(total=data["total"], pages=list(data.get("pages", [])))

    def page_path(self, book_id: str, page_num: int) -> Path:
        return self.pages_dir(book_id) / page_name(page_num)

    def read_page(self, book_id: str, page_num: int) -> str:
        path = self.page_path(book_id, page_num)
        if not path.exists():
            raise NotFoundError("Page not found")
        return path.read_text(encoding="utf-8")

    def read_all_pages(self, book_id: str) -> list[dict]:
        index = self.read_index(book_id)
        if index is None:
            raise NotFoundError("Book not found")
        pages = []
        for num in range(1, index.total + 1):
            path = self.page_path(book_id, num)
            if path.exists():
                body = extract_body(path.read_text(encoding="utf-8"))
                pages.append({"pageNum": num, "content": body})
        return pages

    def read_toc(self, book_id: str) -> str:
        path = self.book_dir(book_id) / "toc.html"
        return path.read_text(encoding="utf-8") if path.exists() else ""

    def heading_toc(self, book_id: str) -> list[TocItem]:
        index = self.read_index(book_id)
        if index is None:
            return []
        toc: list[TocItem] = []
        for num in range(1, index.total + 1):
            path = self.page_path(book_id, num)
            if path.exists():
                toc.extend(extract_headings(path.read_text(encoding="utf-8"), num))
        return toc

    def write_metadata(self, book_id: str, metadata: dict) -> None:
        (self.book_dir(book_id) / "metadata.json").write_text(
            json.dumps(metadata, ensure_ascii=False), encoding="utf-8"
        )

    # ── Page edits and translations ────────────────────────

    def save_page_edit(self, book_id: str, page_num: int, body: str) -> None:
        """Replace a page body, keeping its head. The first edit backs up the page."""
        original = self.read_page(book_id, page_num)
        head_match = re.search(r"<head[^>]*>[\s\S]*?</head>", original, re.IGNORECASE)
        head = head_match.group(0) if head_match else '<head><meta charset="UTF-8"></head>'

        backup = self.pages_dir(book_id) / f"page-{page_num}.edit-backup.html"
        if not backup.exists():
            backup.write_text(original, encoding="utf-8")

        new_html = f"<!DOCTYPE html>\n<html>\n{head}\n<body>\n  {body}\n</body>\n</html>"
        self.page_path(book_id, page_num).write_text(new_html, encoding="utf-8")
        log.info("Saved edited page: %s/page-%d", book_id, page_num)

    def save_translation(self, book_id: str, page_num: int, content: str) -> None:
        original = self.read_page(book_id, page_num)
        backup = self.pages_dir(book_id) / f"page-{page_num}.original.html"
        if not backup.exists():
            backup.write_text(original, encoding="utf-8")
        self.page_path(book_id, page_num).write_text(content, encoding="utf-8")
        log.info("Saved translated page: %s/page-%d", book_id, page_num)

    def restore_original(self, book_id: str, page_num: int) -> None:
        backup = self.pages_dir(book_id) / f"page-{page_num}.original.html"
        if not backup.exists():
            raise NotFoundError("Original backup not found")
        self.page_path(book_id, page_num).write_text(
            backup.read_text(encoding="utf-8"), encoding="utf-8"
        )
        log.info("Restored original page: %s/page-%d", book_id, page_num)

    def translated_pages(self, book_id: str) -> list[int]:
        pages_dir = self.pages_dir(book_id)
        if not pages_dir.is_dir():
            raise NotFoundError("Book pages not found")
        nums = []
        for path in pages_dir.iterdir():
            match = _ORIGINAL_BACKUP_RE.match(path.name)
            if match:
                nums.append(int(match.group(1)))
        return sorted(nums)

    def restore_all_translations(self, book_id: str) -> int:
        restored = 0
        for num in self.translated_pages(book_id):
            self.restore_original(book_id, num)
            (self.pages_dir(book_id) / f"page-{num}.original.html").unlink()
            restored += 1
        return restored

    # ── Media, PDF and covers ──────────────────────────────

    def media_path(self, book_id: str, relative: str) -> Path:
        media_dir = self.media_dir(book_id).resolve()
        path = (media_dir / relative).resolve()
        if media_dir not in path.parents:
            raise InvalidInputError("Invalid media path")
        if not path.is_file():
            raise NotFoundError("Media not found")
        return path

    def pdf_path(self, book_id: str) -> Path:
        return self.book_dir(book_id) / "document.pdf"

    def custom_cover(self, book_id: str) -> Optional[Path]:
        book_dir = self.book_dir(book_id)
        for ext in IMAGE_EXTENSIONS:
            path = book_dir / f"custom-cover{ext}"
            if path.exists():
                return path
        return None

    def save_custom_cover(self, book_id: str, filename: str, data: bytes) -> Path:
        ext = Path(filename).suffix.lower()
        if ext not in IMAGE_EXTENSIONS:
            raise InvalidInputError("Only image files are allowed")
        if not self.exists(book_id):
            raise NotFoundError("Book not found")
        self.delete_custom_cover(book_id)
        dest = self.book_dir(book_id) / f"custom-cover{ext}"
        dest.write_bytes(data)
        return dest

    def delete_custom_cover(self, book_id: str) -> bool:
        deleted = False
        for ext in IMAGE_EXTENSIONS:
            path = self.book_dir(book_id) / f"custom-cover{ext}"
            if path.exists():
                path.unlink()
                deleted = True
        return deleted

    def find_media_cover(self, book_id: str) -> Optional[Path]:
        """An image whose name mentions "cover", else the first image in media/."""
        media_dir = self.media_dir(book_id)
        if not media_dir.is_dir():
            return None
        images = sorted(
            p for p in media_dir.rglob("*")
            if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
        )
        for p in images:
            if "cover" in p.name.lower():
                return p
        return images[0] if images else None

    def resolve_cover(self, book_id: str) -> Optional[Path]:
        """Custom cover first; PDFs fall back to a rendered first-page thumbnail."""
        if not self.exists(book_id):
            raise NotFoundError("Book directory not found")
        custom = self.custom_cover(book_id)
        if custom is not None:
            return custom

        pdf = self.pdf_path(book_id)
        if pdf.exists() and self.read_index(book_id) is None:
            thumbnail = self.book_dir(book_id) / "pdf-thumbnail.png"
            if thumbnail.exists():
                return thumbnail
            try:
                return render_thumbnail(pdf, thumbnail)
            except ConversionError as e:
                log.warning("No thumbnail for %s: %s", book_id, e)
                return None

        return self.find_media_cover(book_id)
