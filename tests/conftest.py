"""Shared fixtures for tests."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from epubviewer.config import AppConfig
from epubviewer.content.store import ContentStore
from epubviewer.library.database import Database


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture
def db(tmp_path: Path) -> Database:
    db_path = tmp_path / "test.db"
    database = Database(db_path)
    yield database
    database.close()


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
        crawl_delay=0.0,
    )


@pytest.fixture
def store(config: AppConfig) -> ContentStore:
    return ContentStore(config.converted_dir)


# ── Sample documents ───────────────────────────────────────

PANDOC_HTML = """<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" lang="en">
<head>
  <meta charset="utf-8" />
  <title>{title}</title>
</head>
<body>
<nav id="TOC" role="doc-toc">
<ul>
<li><a href="#ch1">Chapter 1</a></li>
<li><a href="#ch2">Chapter 2</a></li>
</ul>
</nav>
<section id="ch1" class="level1">
<h1>Chapter 1</h1>
<p>First paragraph.</p>
<p><img src="{media_dir}/figure.png" alt="figure" /></p>
</section>
<section id="ch2" class="level1">
<h1>Chapter 2</h1>
<p>Chapter two content.</p>
</section>
</body>
</html>
"""


@pytest.fixture
def sample_epub(tmp_path: Path) -> Path:
    from ebooklib import epub

    book = epub.EpubBook()
    book.set_identifier("test123")
    book.set_title("Test Book")
    book.set_language("ja-JP")
    book.add_author("Test Author")

    c1 = epub.EpubHtml(title="Chapter 1", file_name="ch1.xhtml", lang="ja")
    c1.content = "<html><body><h1>Chapter 1</h1><p>First paragraph.</p></body></html>"
    book.add_item(c1)

    book.toc = [epub.Link("ch1.xhtml", "Chapter 1", "ch1")]
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = ["nav", c1]

    f = tmp_path / "SampleBook.epub"
    epub.write_epub(str(f), book)
    return f


@pytest.fixture
def sample_pdf(tmp_path: Path) -> Path:
    import pymupdf

    doc = pymupdf.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Hello World", fontsize=12)
    doc.new_page()
    f = tmp_path / "sample-doc.pdf"
    doc.save(str(f))
    doc.close()
    return f


@pytest.fixture
def fake_pandoc():
    """Stand in for the pandoc binary: writes PANDOC_HTML to the -o target."""
    calls: list[list[str]] = []

    def run(cmd, **kwargs):
        calls.append(cmd)
        output = Path(cmd[cmd.index("-o") + 1])
        media_arg = next(a for a in cmd if a.startswith("--extract-media="))
        media_dir = media_arg.split("=", 1)[1]
        title = next(a for a in cmd if a.startswith("title=")).split("=", 1)[1]
        Path(media_dir, "figure.png").write_bytes(b"\x89PNG fake")
        output.write_text(PANDOC_HTML.format(title=title, media_dir=media_dir))
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    with patch(
        "epubviewer.converters.epub_converter.shutil.which", return_value="/usr/bin/pandoc"
    ), patch("epubviewer.converters.epub_converter.subprocess.run", side_effect=run):
        yield calls
