"""Bulk EPUB import: ``epubviewer-import <directory>``.

Subdirectory names become book categories. Files whose name is already in
the catalog are skipped, so the command can be re-run over the same tree.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from epubviewer.config import load_config
from epubviewer.content.store import ContentStore
from epubviewer.errors import EpubViewerError
from epubviewer.importer import BookImporter
from epubviewer.library.database import Database

log = logging.getLogger(__name__)

UNCATEGORIZED = "uncategorized"


@dataclass
class EpubFile:
    path: Path
    category: str


@dataclass
class ImportSummary:
    imported: int = 0
    skipped: int = 0
    failed: int = 0


def find_epub_files(root: Path, category: str = "") -> list[EpubFile]:
    """Recursively collect ``*.epub`` files; each file's category is its parent dir name."""
    found: list[EpubFile] = []
    for entry in sorted(root.iterdir()):
        if entry.is_dir():
            found.extend(find_epub_files(entry, entry.name))
        elif entry.is_file() and entry.suffix.lower() == ".epub":
            found.append(EpubFile(path=entry, category=category or UNCATEGORIZED))
    return found


def import_directory(
    importer: BookImporter, db: Database, root: Path, out=sys.stdout
) -> ImportSummary:
    files = find_epub_files(root)
    summary = ImportSummary()
    print(f"Found {len(files)} EPUB files", file=out)

    for i, item in enumerate(files, start=1):
        prefix = f"[{i}/{len(files)}]"
        if db.find_book_by_filename(item.path.name) is not None:
            print(f"{prefix} Skipped (already imported): {item.path.name}", file=out)
            summary.skipped += 1
            continue
        try:
            result = importer.import_file(item.path, item.path.name, category=item.category)
        except EpubViewerError as e:
            log.error("Failed to import %s: %s", item.path, e)
            print(f"{prefix} Failed: {item.path.name} ({e.message})", file=out)
            summary.failed += 1
            continue
        print(
            f"{prefix} Imported: {result.title} [{item.category}] "
            f"({result.total_pages} pages)",
            file=out,
        )
        summary.imported += 1

    print(
        f"Done: {summary.imported} imported, {summary.skipped} skipped, "
        f"{summary.failed} failed",
        file=out,
    )
    return summary


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="epubviewer-import",
        description="Import every EPUB under a directory into the library.",
    )
    parser.add_argument("directory", type=Path, help="directory to scan recursively")
    parser.add_argument("--env", type=Path, default=None, help="path to a .env file")
    args = parser.parse_args(argv)

    if not args.directory.is_dir():
        parser.error(f"not a directory: {args.directory}")

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    config = load_config(args.env)
    db = Database(config.db_path)
    try:
        importer = BookImporter(config, db, ContentStore(config.converted_dir, config.api_prefix))
        summary = import_directory(importer, db, args.directory)
    finally:
        db.close()
    return 1 if summary.failed and not summary.imported else 0


if __name__ == "__main__":
    sys.exit(main())
