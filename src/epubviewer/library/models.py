"""Data models for the book catalog."""

from __future__ import annotations

import re
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

BOOK_TYPES = ("epub", "pdf", "website")


def new_id() -> str:
    return str(uuid.uuid4())


def title_from_filename(filename: str) -> str:
    """Derive a display title: drop the extension, split on -/_ and camelCase."""
    title = re.sub(r"[-_]", " ", Path(filename).stem)
    return re.sub(r"([a-z])([A-Z])", r"\1 \2", title)


@dataclass
class Tag:
    id: str
    name: str
    color: str = "#667eea"
    created_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Book:
    id: str
    title: str
    original_filename: Optional[str] = None
    total_pages: int = 1
    book_type: str = "epub"  # epub, pdf, website
    language: str = "en"
    category: Optional[str] = None
    source_url: Optional[str] = None
    pdf_total_pages: Optional[int] = None
    ai_context: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    current_page: Optional[int] = None  # joined from reading_progress
    tags: list[Tag] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Bookmark:
    id: str
    book_id: str
    page_num: int
    note: str = ""
    created_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ReadingProgress:
    book_id: str
    current_page: int = 1
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ClipPosition:
    """Capture rectangle as ratios of the rendered page, each in [0, 1]."""

    x_ratio: float
    y_ratio: float
    width_ratio: float
    height_ratio: float

    def __post_init__(self) -> None:
        for name in ("x_ratio", "y_ratio", "width_ratio", "height_ratio"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")


@dataclass
class Clip:
    id: str
    book_id: str
    page_num: int
    image_data: str  # data URI
    note: str = ""
    x_ratio: Optional[float] = None
    y_ratio: Optional[float] = None
    width_ratio: Optional[float] = None
    height_ratio: Optional[float] = None
    created_at: Optional[str] = None

    @property
    def position(self) -> Optional[ClipPosition]:
        if self.x_ratio is None:
            return None
        return ClipPosition(
            self.x_ratio, self.y_ratio, self.width_ratio, self.height_ratio
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Note:
    """A rich-text note inserted into a page by the reader's editor."""

    id: str
    book_id: str
    page_num: int
    content: str = ""
    position: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PagesIndex:
    """The pages.json artifact written next to a book's pages."""

    total: int
    pages: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"total": self.total, "pages": list(self.pages)}


@dataclass
class TocItem:
    page: int
    level: int
    title: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class WebsiteMetadata:
    title: str = "Untitled"
    description: Optional[str] = None
    og_image: Optional[str] = None
    favicon: Optional[str] = None
    site_name: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ImportResult:
    book_id: str
    title: str
    book_type: str
    total_pages: int
    metadata: Optional[WebsiteMetadata] = None
    crawled_urls: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {
            "success": True,
            "bookId": self.book_id,
            "title": self.title,
            "bookType": self.book_type,
            "totalPages": self.total_pages,
        }
        if self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        if self.crawled_urls:
            data["crawledUrls"] = list(self.crawled_urls)
        return data
