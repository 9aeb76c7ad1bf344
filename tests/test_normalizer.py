"""Tests for content normalization."""

from __future__ import annotations

from epubviewer.content.normalizer import (
    media_url,
    normalize_content,
    normalize_image_paths,
    normalize_layout_width,
)

BOOK = "abc-123"
CANONICAL = "/api/books/abc-123/media/"


class TestImagePaths:
    def test_media_url(self):
        assert media_url(BOOK) == CANONICAL
        assert media_url(BOOK, "/v2/") == "/v2/books/abc-123/media/"

    def test_relative(self):
        html = '<img src="media/cover.jpg">'
        assert normalize_image_paths(html, BOOK) == f'<img src="{CANONICAL}cover.jpg">'

    def test_dot_relative(self):
        html = '<img src="./media/a/b.png">'
        assert normalize_image_paths(html, BOOK) == f'<img src="{CANONICAL}a/b.png">'

    def test_absolute_converter_path(self):
        html = '<img src="/home/user/app/converted/abc-123/media/fig1.png">'
        assert normalize_image_paths(html, BOOK) == f'<img src="{CANONICAL}fig1.png">'

    def test_absolute_path_outside_home(self):
        html = '<img src="/var/lib/epubviewer/converted/abc-123/media/x.gif">'
        assert normalize_image_paths(html, BOOK) == f'<img src="{CANONICAL}x.gif">'

    def test_idempotent(self):
        html = (
            '<img src="media/1.jpg"><img src="./media/2.jpg">'
            '<img src="/srv/data/abc-123/media/3.jpg">'
        )
        once = normalize_image_paths(html, BOOK)
        assert normalize_image_paths(once, BOOK) == once
        assert once.count(CANONICAL) == 3

    def test_other_book_media_url_untouched(self):
        html = '<img src="/api/books/other-book/media/x.png">'
        assert normalize_image_paths(html, BOOK) == html

    def test_other_sources_untouched(self):
        html = '<img src="https://cdn.example.com/media/x.png"><img src="images/y.png">'
        assert normalize_image_paths(html, BOOK) == html


class TestLayoutWidth:
    def test_fixed_width_replaced(self):
        assert normalize_layout_width("body { max-width: 800px; }") == "body { max-width: 100%; }"
        assert normalize_layout_width("max-width:800px") == "max-width: 100%"

    def test_other_widths_untouched(self):
        css = "max-width: 600px"
        assert normalize_layout_width(css) == css


def test_normalize_content_applies_both():
    html = '<style>body { max-width: 800px; }</style><img src="media/a.png">'
    out = normalize_content(html, BOOK)
    assert "max-width: 100%" in out
    assert f'src="{CANONICAL}a.png"' in out
