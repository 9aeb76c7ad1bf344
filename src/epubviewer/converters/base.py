"""Base converter interface for uploaded ebook formats."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from epubviewer.config import AppConfig
from epubviewer.errors import InvalidInputError


@dataclass
class ConvertedDocument:
    """Converter output. ``html`` is None for formats the reader renders natively."""

    book_type: str
    html: Optional[str] = None
    language: Optional[str] = None


class BaseConverter(ABC):
    """Abstract base for format-specific converters."""

    SUPPORTED_EXTENSIONS: tuple[str, ...] = ()
    BOOK_TYPE = ""

    @abstractmethod
    def convert(self, source: Path, book_dir: Path, title: str) -> ConvertedDocument:
        """Convert ``source`` into ``book_dir`` and return the result."""

    @classmethod
    def can_handle(cls, file_path: Path) -> bool:
        return file_path.suffix.lower() in cls.SUPPORTED_EXTENSIONS


def get_converter(file_path: Path, config: Optional[AppConfig] = None) -> BaseConverter:
    """Return the appropriate converter for a file."""
    from epubviewer.converters.epub_converter import EpubConverter
    from epubviewer.converters.pdf_converter import PdfConverter

    if EpubConverter.can_handle(file_path):
        if config is None:
            return EpubConverter()
        return EpubConverter(config.pandoc_path, config.pandoc_timeout)
    if PdfConverter.can_handle(file_path):
        return PdfConverter()

    raise InvalidInputError("Only EPUB and PDF files are allowed")
