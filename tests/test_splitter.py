"""Tests for the page splitter."""

from __future__ import annotations

from epubviewer.content.splitter import (
    DEFAULT_STYLES,
    detect_sections,
    extract_body,
    extract_head,
    extract_headings,
    page_name,
    split_document,
    split_into_pages,
)


def _doc(body: str, head: str = "<title>Book</title>") -> str:
    return f"<!DOCTYPE html><html><head>{head}</head><body class=\"x\">{body}</body></html>"


TOC = '<nav id="TOC" role="doc-toc"><ul><li><a href="#c1">One</a></li></ul></nav>'


class TestExtraction:
    def test_head_and_body(self):
        html = _doc("<p>hi</p>")
        assert extract_head(html) == "<title>Book</title>"
        assert extract_body(html) == "<p>hi</p>"

    def test_body_falls_back_to_input(self):
        assert extract_body("<p>fragment</p>") == "<p>fragment</p>"

    def test_page_name(self):
        assert page_name(3) == "page-3.html"


class TestSectionDetection:
    def test_level1_sections(self):
        content = (
            '<section id="c1" class="level1"><h1>One</h1><p>a</p></section>'
            '<section id="c2" class="level1"><h1>Two</h1><p>b</p></section>'
        )
        sections = detect_sections(content)
        assert len(sections) == 2
        assert sections[0].startswith('<section id="c1"')
        assert sections[1].endswith("</section>")

    def test_level1_div_containers(self):
        content = '<div class="section level1"><p>a</p></div><div class="level1"><p>b</p></div>'
        assert len(detect_sections(content)) == 2

    def test_h1_runs(self):
        content = "<h1>One</h1><p>a</p><h1>Two</h1><p>b</p><h1>Three</h1><p>c</p>"
        sections = detect_sections(content)
        assert sections == [
            "<h1>One</h1><p>a</p>",
            "<h1>Two</h1><p>b</p>",
            "<h1>Three</h1><p>c</p>",
        ]

    def test_h2_fallback(self):
        content = "<h2>A</h2><p>x</p><h2>B</h2><p>y</p>"
        assert detect_sections(content) == ["<h2>A</h2><p>x</p>", "<h2>B</h2><p>y</p>"]

    def test_single_page_fallback(self):
        content = "<p>just text</p>"
        assert detect_sections(content) == [content]


class TestSplitDocument:
    def test_toc_removed_from_pages(self):
        html = _doc(
            TOC
            + '<section class="level1"><h1>One</h1></section>'
            + '<section class="level1"><h1>Two</h1></section>'
        )
        doc = split_document(html)
        assert doc.toc == TOC
        assert doc.total == 2
        assert all("TOC" not in s for s in doc.sections)

    def test_three_chapters_three_pages(self):
        html = _doc(
            TOC
            + "".join(
                f'<section id="c{i}" class="level1"><h1>Ch {i}</h1><p>text {i}</p></section>'
                for i in range(1, 4)
            )
        )
        pages, toc = split_into_pages(html)
        assert len(pages) == 3
        assert toc == TOC
        for i, page in enumerate(pages, start=1):
            assert page.startswith("<!DOCTYPE html>")
            assert f"<h1>Ch {i}</h1>" in page
            assert "<title>Book</title>" in page
            assert DEFAULT_STYLES in page

    def test_no_headings_single_page(self):
        pages, toc = split_into_pages(_doc("<p>plain</p>"))
        assert len(pages) == 1
        assert toc == ""
        assert "<p>plain</p>" in pages[0]

    def test_default_styles_values(self):
        assert "max-width: 800px" in DEFAULT_STYLES
        assert "line-height: 1.8" in DEFAULT_STYLES
        assert "#fafafa" in DEFAULT_STYLES


class TestHeadings:
    def test_extract_headings(self):
        page = "<h1>Title</h1><p>x</p><h2>Sub <em>part</em></h2><h3></h3><h4>skip</h4>"
        items = extract_headings(page, 4)
        assert [(i.page, i.level, i.title) for i in items] == [
            (4, 1, "Title"),
            (4, 2, "Sub part"),
        ]

    def test_long_titles_dropped(self):
        page = f"<h2>{'x' * 250}</h2>"
        assert extract_headings(page, 1) == []
