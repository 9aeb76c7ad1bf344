"""Tests for web article extraction and pagination."""

from __future__ import annotations

from bs4 import BeautifulSoup

from epubviewer.library.models import WebsiteMetadata
from epubviewer.web.extractor import (
    add_heading_prefixes,
    extract_article_content,
    extract_metadata,
    image_extension,
    render_article_pages,
    render_crawled_page,
    replace_image_placeholders,
    split_content_by_headings,
)

BASE = "https://blog.example.com/posts/hello"
LONG = "This paragraph has plenty of words so the container clears the threshold. " * 3


class TestMetadata:
    def test_open_graph_preferred(self):
        html = """<html><head>
            <title>Doc Title</title>
            <meta property="og:title" content="OG Title">
            <meta name="twitter:title" content="Twitter Title">
            <meta property="og:description" content="OG desc">
            <meta name="description" content="Plain desc">
            <meta property="og:image" content="/img/card.png">
            <meta property="og:site_name" content="Example Blog">
            <link rel="shortcut icon" href="/static/fav.ico">
        </head><body></body></html>"""
        meta = extract_metadata(html, BASE)
        assert meta.title == "OG Title"
        assert meta.description == "OG desc"
        assert meta.og_image == "https://blog.example.com/img/card.png"
        assert meta.site_name == "Example Blog"
        assert meta.favicon == "https://blog.example.com/static/fav.ico"

    def test_fallbacks(self):
        html = """<html><head>
            <title> Doc Title </title>
            <meta name="twitter:image" content="https://cdn.example.com/t.jpg">
            <meta name="description" content="Plain desc">
        </head><body></body></html>"""
        meta = extract_metadata(html, BASE)
        assert meta.title == "Doc Title"
        assert meta.description == "Plain desc"
        assert meta.og_image == "https://cdn.example.com/t.jpg"
        assert meta.favicon == "https://blog.example.com/favicon.ico"
        assert meta.site_name is None

    def test_twitter_title_before_document_title(self):
        html = '<html><head><title>Doc</title><meta name="twitter:title" content="TW"></head></html>'
        assert extract_metadata(html, BASE).title == "TW"

    def test_untitled(self):
        assert extract_metadata("<html><body><p>x</p></body></html>", BASE).title == "Untitled"


class TestArticleContent:
    def test_chrome_removed_and_article_selected(self):
        html = f"""<html><body>
            <nav>Menu</nav><header>Site header</header>
            <div class="sidebar">Sidebar</div>
            <article>
              <p>{LONG}</p>
              <div class="share-buttons">Share!</div>
              <script>alert(1)</script>
            </article>
            <div id="comments">Comment</div>
            <footer>Footer</footer>
        </body></html>"""
        article = extract_article_content(html, BASE)
        assert LONG.strip()[:40] in article.content
        for junk in ("Menu", "Site header", "Sidebar", "Share!", "alert", "Comment", "Footer"):
            assert junk not in article.content

    def test_short_candidate_skipped(self):
        html = f"""<html><body>
            <article><p>Too short</p></article>
            <div class="entry-content"><p>{LONG}</p></div>
        </body></html>"""
        article = extract_article_content(html, BASE)
        assert "Too short" not in article.content
        assert "plenty of words" in article.content

    def test_body_fallback(self):
        html = "<html><body><p>Only a little text</p></body></html>"
        assert "Only a little text" in extract_article_content(html, BASE).content

    def test_images_rewritten_to_placeholders(self):
        html = f"""<html><body><article>
            <p>{LONG}</p>
            <img src="/a.png" alt="A" class="wide" srcset="/a-2x.png 2x" loading="lazy">
            <img data-src="https://cdn.example.com/b.jpg">
            <img src="data:image/gif;base64,R0lGOD">
            <img src="#">
            <img>
            <img src="/pixel.gif" width="1" height="1">
            <img data-lazy-src="c.webp" height="8px">
            <img data-original="//img.example.org/d">
        </article></body></html>"""
        article = extract_article_content(html, BASE)
        assert article.images == [
            "https://blog.example.com/a.png",
            "https://cdn.example.com/b.jpg",
            "https://img.example.org/d",
        ]
        first = BeautifulSoup(article.content, "lxml").find("img")
        assert first.attrs == {"src": "media/0.img", "alt": "A"}
        assert 'src="media/1.img"' in article.content
        assert 'src="media/2.img"' in article.content
        assert "data:" not in article.content
        assert "srcset" not in article.content
        assert "data-src" not in article.content
        assert "pixel" not in article.content
        assert article.content.count("<img") == 3

    def test_attributes_sanitized_except_code(self):
        html = f"""<html><body><article>
            <p class="lead" style="color:red" onclick="x()">{LONG}</p>
            <a href="/next" target="_blank" rel="nofollow">link</a>
            <pre class="lang-py"><code class="language-python" data-lang="py">print(1)</code></pre>
        </article></body></html>"""
        content = extract_article_content(html, BASE).content
        assert "style=" not in content
        assert "onclick" not in content
        assert 'class="lead"' not in content
        assert 'target="_blank"' not in content
        assert '<a href="/next">link</a>' in content
        assert 'class="language-python"' in content
        assert 'data-lang="py"' in content

    def test_empty_blocks_pruned(self):
        html = f"""<html><body><article>
            <p>{LONG}</p><div>   </div><span></span><p><img src="/x.png"></p>
        </article></body></html>"""
        content = extract_article_content(html, BASE).content
        assert "<div>" not in content
        assert "<span>" not in content
        assert 'src="media/0.img"' in content

    def test_highlighted_code_keeps_whitespace_spans(self):
        html = f"""<html><body><article><p>{LONG}</p>
            <pre><code><span class="k">def</span><span> </span><span class="n">f</span></code></pre>
        </article></body></html>"""
        content = extract_article_content(html, BASE).content
        code = BeautifulSoup(content, "lxml").find("code")
        assert code.get_text() == "def f"
        assert len(code.find_all("span")) == 3

    def test_attribute_whitelist(self):
        html = f"""<html><body><article>
            <p lang="en" dir="ltr" class="x" id="p1" data-track="1">{LONG}</p>
            <blockquote cite="https://example.com/q" style="x">quote</blockquote>
            <time datetime="2024-01-01" itemprop="date">Jan 1</time>
            <a href="/a" title="T" rel="nofollow">a</a>
            <pre class="lang-py" id="c1"><code class="py" data-lang="python" data-x="1">x = 1</code></pre>
        </article></body></html>"""
        soup = BeautifulSoup(extract_article_content(html, BASE).content, "lxml")
        assert soup.find("p").attrs == {"lang": "en", "dir": "ltr"}
        assert soup.find("blockquote").attrs == {"cite": "https://example.com/q"}
        assert soup.find("time").attrs == {"datetime": "2024-01-01"}
        assert soup.find("a").attrs == {"href": "/a", "title": "T"}
        assert soup.find("pre").attrs == {"class": ["lang-py"]}
        assert soup.find("code").attrs == {"class": ["py"], "data-lang": "python"}


class TestHeadingPrefixes:
    def test_prefixes_added(self):
        out = add_heading_prefixes("<h1>A</h1><h2>B</h2><h3>C</h3><h4>D</h4>")
        assert out == "<h1># A</h1><h2>## B</h2><h3>### C</h3><h4>D</h4>"

    def test_idempotent(self):
        once = add_heading_prefixes("<h2>Section</h2><p>x</p>")
        assert add_heading_prefixes(once) == once
        assert once.count("## ") == 1


class TestSplitByHeadings:
    def test_no_h2_single_page(self):
        pages = split_content_by_headings("<h1>Title</h1><p>text</p>")
        assert pages == ["<h1># Title</h1><p>text</p>"]

    def test_split_at_h2(self):
        content = (
            "<p>Introduction paragraph that is long enough.</p>"
            "<h2>First</h2><p>The first section has enough text.</p>"
            "<h2>Second</h2><p>The second section has enough text.</p>"
        )
        pages = split_content_by_headings(content)
        assert len(pages) == 3
        assert pages[1].startswith("<h2>## First</h2>")
        assert pages[2].startswith("<h2>## Second</h2>")

    def test_trivial_sections_dropped(self):
        content = (
            "<h2>A</h2><p>Section A has more than enough text.</p>"
            "<h2>B</h2><p>tiny</p>"
            "<h2>C</h2><p>Section C has more than enough text.</p>"
        )
        pages = split_content_by_headings(content)
        assert len(pages) == 2
        assert all("tiny" not in p for p in pages)

    def test_fifteen_char_section_dropped(self):
        intro = "<p>" + "x" * 40 + "</p>"
        sections = ["<h2>Head</h2><p>" + "y" * 40 + "</p>", "<h2>Tail</h2><p>12345678</p>"]
        pages = split_content_by_headings(intro + "".join(sections))
        # "## Tail" plus eight digits is 15 characters
        assert len(pages) == 2
        assert "Tail" not in "".join(pages)

    def test_single_surviving_section_means_one_page(self):
        content = "<h2>A</h2><p>Section A has more than enough text.</p><h2>B</h2><p>x</p>"
        pages = split_content_by_headings(content)
        assert len(pages) == 1
        assert "<p>x</p>" in pages[0]

    def test_threshold_is_configurable(self):
        content = "<h2>A</h2><p>" + "a" * 30 + "</p><h2>B</h2><p>" + "b" * 30 + "</p>"
        assert len(split_content_by_headings(content)) == 2
        assert len(split_content_by_headings(content, min_chars=50)) == 1


class TestImagePlaceholders:
    def test_image_extension(self):
        assert image_extension("https://x.example/a/photo.png?w=200") == ".png"
        assert image_extension("https://x.example/a/photo") == ".jpg"

    def test_replace(self):
        content = '<img src="media/1.img"><img src="media/11.img">'
        out = replace_image_placeholders(content, {1: "1.png", 11: "11.gif"})
        assert out == '<img src="media/1.png"><img src="media/11.gif">'


class TestRendering:
    def test_first_and_last_page_decorations(self):
        meta = WebsiteMetadata(title="My <Post>", site_name="Blog")
        pages = render_article_pages(["<p>one</p>", "<p>two</p>"], meta, BASE)
        assert "<h1>My &lt;Post&gt;</h1>" in pages[0]
        assert "Source: Blog" in pages[0]
        assert "Original:" not in pages[0]
        assert "<h1>" not in pages[1]
        assert f'Original: <a href="{BASE}"' in pages[1]
        assert all("max-width: 800px" in p for p in pages)

    def test_single_page_has_both(self):
        pages = render_article_pages(["<p>only</p>"], WebsiteMetadata(title="T"), BASE)
        assert "<h1>T</h1>" in pages[0]
        assert "Original:" in pages[0]
        assert "Source:" not in pages[0]

    def test_crawled_page_footer(self):
        page = render_crawled_page("<p>x</p>", "Story", BASE, 2, 5)
        assert "<title>Story - Page 2</title>" in page
        assert "Page 2 of 5 | Source:" in page
