"""Tests for the bulk import command."""

from __future__ import annotations

import io
import shutil
from pathlib import Path

import pytest

from epubviewer.cli import find_epub_files, import_directory, main
from epubviewer.importer import BookImporter


@pytest.fixture
def library_tree(tmp_path: Path, sample_epub: Path) -> Path:
    root = tmp_path / "library"
    (root / "novels" / "sf").mkdir(parents=True)
    (root / "essays").mkdir()
    shutil.copy(sample_epub, root / "loose.epub")
    shutil.copy(sample_epub, root / "novels" / "First.EPUB")
    shutil.copy(sample_epub, root / "novels" / "sf" / "Dune.epub")
    shutil.copy(sample_epub, root / "essays" / "essay.epub")
    (root / "essays" / "readme.txt").write_text("skip me")
    return root


class TestFindEpubFiles:
    def test_categories_from_parent_dir(self, library_tree: Path):
        found = {f.path.name: f.category for f in find_epub_files(library_tree)}
        assert found == {
            "essay.epub": "essays",
            "First.EPUB": "novels",
            "Dune.epub": "sf",
            "loose.epub": "uncategorized",
        }

    def test_empty_directory(self, tmp_path: Path):
        assert find_epub_files(tmp_path) == []


class TestImportDirectory:
    def test_imports_and_skips_existing(self, config, db, store, library_tree, fake_pandoc):
        importer = BookImporter(config, db, store)
        out = io.StringIO()

        summary = import_directory(importer, db, library_tree, out=out)
        assert (summary.imported, summary.skipped, summary.failed) == (4, 0, 0)
        assert "Found 4 EPUB files" in out.getvalue()
        categories = {b.original_filename: b.category for b in db.list_books()}
        assert categories["Dune.epub"] == "sf"

        again = import_directory(importer, db, library_tree, out=io.StringIO())
        assert (again.imported, again.skipped) == (0, 4)
        assert len(db.list_books()) == 4

    def test_failures_are_counted(self, config, db, store, library_tree):
        importer = BookImporter(config, db, store)
        config.pandoc_path = "definitely-not-pandoc"
        out = io.StringIO()
        summary = import_directory(importer, db, library_tree, out=out)
        assert summary.failed == 4
        assert "Failed: loose.epub" in out.getvalue()
        assert db.list_books() == []


class TestMain:
    def test_rejects_missing_directory(self, tmp_path: Path):
        with pytest.raises(SystemExit):
            main([str(tmp_path / "nope")])
