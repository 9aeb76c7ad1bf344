"""EPUB converter: pandoc renders one standalone HTML document plus a media dir."""

from __future__ import annotations

import logging
import shutil
import subprocess
import warnings
from pathlib import Path
from typing import Optional

from ebooklib import epub

from epubviewer.errors import ConversionError

from .base import BaseConverter, ConvertedDocument

log = logging.getLogger(__name__)


class EpubConverter(BaseConverter):
    SUPPORTED_EXTENSIONS = (".epub",)
    BOOK_TYPE = "epub"

    def __init__(self, pandoc_path: str = "pandoc", timeout: float = 300.0) -> None:
        self._pandoc_path = pandoc_path
        self._timeout = timeout

    def convert(self, source: Path, book_dir: Path, title: str) -> ConvertedDocument:
        pandoc = shutil.which(self._pandoc_path)
        if not pandoc:
            raise ConversionError(
                "Failed to convert EPUB. Make sure pandoc is installed: "
                "https://pandoc.org/installing.html"
            )

        media_dir = (book_dir / "media").resolve()
        output = book_dir / "index.html"
        media_dir.mkdir(parents=True, exist_ok=True)

        cmd = [
            pandoc,
            str(source),
            "--standalone",
            f"--extract-media={media_dir}",
            "--toc",
            "--metadata",
            f"title={title}",
            "-o",
            str(output),
        ]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as e:
            log.error("pandoc timed out after %ss on %s", self._timeout, source)
            raise ConversionError(f"pandoc timed out after {self._timeout:g}s") from e
        except OSError as e:
            log.error("pandoc could not be started: %s", e)
            raise ConversionError(f"pandoc could not be started: {e}") from e

        if result.returncode != 0:
            log.error("pandoc error on %s: %s", source, result.stderr[:500])
            raise ConversionError(f"pandoc failed: {result.stderr[:500]}")

        html = output.read_text(encoding="utf-8", errors="replace")
        return ConvertedDocument(
            book_type=self.BOOK_TYPE, html=html, language=self.read_language(source)
        )

    @staticmethod
    def read_language(source: Path) -> Optional[str]:
        """Primary language subtag from the EPUB's Dublin Core metadata."""
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                book = epub.read_epub(str(source), options={"ignore_ncx": True})
        except Exception as e:  # ebooklib raises bare Exception/KeyError on bad archives
            log.warning("Could not read EPUB metadata from %s: %s", source, e)
            return None

        values = book.get_metadata("DC", "language")
        if not values:
            return None
        val = values[0]
        if isinstance(val, tuple):
            val = val[0]
        if not val:
            return None
        return str(val).split("-")[0].strip().lower() or None
