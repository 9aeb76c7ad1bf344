"""PDF handling using PyMuPDF. PDFs are stored as-is and rendered by the reader."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

import pymupdf

from epubviewer.errors import ConversionError

from .base import BaseConverter, ConvertedDocument

log = logging.getLogger(__name__)

THUMBNAIL_WIDTH = 400


class PdfConverter(BaseConverter):
    SUPPORTED_EXTENSIONS = (".pdf",)
    BOOK_TYPE = "pdf"

    def convert(self, source: Path, book_dir: Path, title: str) -> ConvertedDocument:
        try:
            doc = pymupdf.open(str(source), filetype="pdf")
        except RuntimeError as e:
            raise ConversionError(f"Not a readable PDF: {e}") from e
        doc.close()

        dest = book_dir / "document.pdf"
        try:
            # copy rather than rename: uploads may live on another device
            shutil.copyfile(source, dest)
        except OSError as e:
            raise ConversionError(f"Failed to store PDF: {e}") from e
        return ConvertedDocument(book_type=self.BOOK_TYPE)


def render_thumbnail(pdf_path: Path, dest: Path, width: int = THUMBNAIL_WIDTH) -> Path:
    """Render the first page of ``pdf_path`` as a PNG ``width`` pixels wide."""
    try:
        doc = pymupdf.open(str(pdf_path))
    except RuntimeError as e:
        raise ConversionError(f"Cannot open PDF: {e}") from e

    try:
        if len(doc) == 0:
            raise ConversionError("PDF has no pages")
        page = doc[0]
        zoom = width / page.rect.width if page.rect.width else 1.0
        pix = page.get_pixmap(matrix=pymupdf.Matrix(zoom, zoom))
        pix.save(str(dest))
    finally:
        doc.close()

    log.info("PDF thumbnail generated: %s", dest)
    return dest
