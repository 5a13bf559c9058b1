"""Content extraction tests."""

from datetime import datetime, timezone

from siteschema.crawl.extract import extract_page
from siteschema.crawl.urls import generate_content_hash, url_to_id

LONG_TEXT = "Structured content modelling starts with a careful look at the pages a site already has. " * 3

PAGE_HTML = f"""
<html lang="en">
<head>
  <title>  Hello
     World </title>
  <meta name="description" content="A description">
  <meta name="keywords" content="one, two">
  <meta property="og:title" content="OG Title">
  <meta property="og:type" content="article">
  <meta name="author" content="Jane Doe">
  <link rel="canonical" href="/canonical-path">
  <script type="application/ld+json">{{"@type": "Article", "headline": "Hello"}}</script>
  <script type="application/ld+json">{{ this is not json </script>
  <script type="application/ld+json">{{"@graph": [{{"@type": "Person"}}, {{"@type": "WebPage"}}]}}</script>
</head>
<body>
  <header><a href="/home">Home</a></header>
  <nav><a href="/blog">Blog</a></nav>
  <nav aria-label="Breadcrumb"><a href="/">Root</a></nav>
  <main>
    <h1 id="top">Main heading</h1>
    <p>{LONG_TEXT}</p>
    <h2>Sub heading</h2>
    <a href="/posts/1" rel="nofollow" title="First">Post one</a>
    <a href="http://[bad">Broken</a>
    <a href="">Empty</a>
    <script>var ignored = true;</script>
  </main>
  <aside><a href="/side">Side</a></aside>
  <footer><a href="/privacy">Privacy</a></footer>
</body>
</html>
"""

URL = "https://example.com/blog/hello"
CRAWLED_AT = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _extract(html: str = PAGE_HTML, url: str = URL, status: int = 200, **kwargs):
    return extract_page(url, html, status, crawled_at=CRAWLED_AT, **kwargs)


def test_identity_and_status():
    page = _extract(status=404)
    assert page.id == url_to_id(URL)
    assert page.url == URL
    assert page.status == 404
    assert page.crawled_at == CRAWLED_AT


def test_title_prefers_title_tag():
    assert _extract().title == "Hello World"


def test_title_falls_back_to_h1():
    page = _extract("<html><body><h1>Only heading</h1></body></html>")
    assert page.title == "Only heading"


def test_meta_fields():
    meta = _extract().meta
    assert meta.description == "A description"
    assert meta.keywords == "one, two"
    assert meta.og_title == "OG Title"
    assert meta.og_type == "article"
    assert meta.author == "Jane Doe"
    assert meta.og_image is None


def test_headings_in_document_order():
    headings = _extract().headings
    assert [(h.level, h.text, h.id) for h in headings] == [
        (1, "Main heading", "top"),
        (2, "Sub heading", None),
    ]


def test_links_resolved_with_context():
    links = {link.href: link for link in _extract().links}
    assert links["https://example.com/home"].context == "nav"
    assert links["https://example.com/blog"].context == "nav"
    assert links["https://example.com/"].context == "breadcrumb"
    assert links["https://example.com/posts/1"].context == "main"
    assert links["https://example.com/side"].context == "aside"
    assert links["https://example.com/privacy"].context == "footer"


def test_link_attributes():
    links = {link.href: link for link in _extract().links}
    post = links["https://example.com/posts/1"]
    assert post.text == "Post one"
    assert post.rel == "nofollow"
    assert post.title == "First"


def test_malformed_and_empty_hrefs_skipped():
    hrefs = [link.href for link in _extract().links]
    assert len(hrefs) == 6
    assert not any("[bad" in href for href in hrefs)


def test_breadcrumb_class_overrides_nav():
    html = """
    <html><body><nav><ol class="Breadcrumb-list"><li><a href="/shop">Shop</a></li></ol></nav></body></html>
    """
    (link,) = _extract(html).links
    assert link.context == "breadcrumb"


def test_role_navigation_is_nav():
    html = '<html><body><div role="navigation"><a href="/x">X</a></div></body></html>'
    (link,) = _extract(html).links
    assert link.context == "nav"


def test_json_ld_malformed_block_skipped_and_graph_flattened():
    json_ld = _extract().json_ld
    assert [item["@type"] for item in json_ld] == ["Article", "Person", "WebPage"]


def test_json_ld_absent_is_none():
    assert _extract("<html><body><p>x</p></body></html>").json_ld is None


def test_main_content_strips_boilerplate():
    page = _extract()
    assert page.main_content.startswith("Main heading")
    assert "var ignored" not in page.main_content
    assert "Privacy" not in page.main_content
    assert page.content_hash == generate_content_hash(page.main_content)


def test_main_content_falls_back_to_body():
    html = f"<html><body><nav>Menu</nav><div>{LONG_TEXT}</div></body></html>"
    page = _extract(html)
    assert page.main_content == LONG_TEXT.strip()


def test_main_content_empty_when_too_short():
    page = _extract("<html><body><main>Short text</main></body></html>")
    assert page.main_content == ""
    assert page.content_hash == generate_content_hash("")


def test_canonical_and_lang():
    page = _extract()
    assert page.canonical == "https://example.com/canonical-path"
    assert page.lang == "en"


def test_canonical_defaults_to_url():
    assert _extract("<html><body></body></html>").canonical == URL


def test_deterministic_for_identical_input():
    assert _extract() == _extract()


def test_links_resolve_against_final_url():
    html = '<html><head><link rel="canonical" href="hello"></head><body><a href="next">Next</a></body></html>'
    page = _extract(html, url="https://example.com/blog", final_url="https://example.com/blog/")
    assert page.url == "https://example.com/blog"
    assert page.id == url_to_id("https://example.com/blog")
    assert [link.href for link in page.links] == ["https://example.com/blog/next"]
    assert page.canonical == "https://example.com/blog/hello"


def test_base_href_overrides_document_url():
    html = """
    <html><head><base href="https://cdn.example.com/docs/"><link rel="canonical" href="guide"></head>
    <body><a href="intro">Intro</a><a href="/root">Root</a></body></html>
    """
    page = _extract(html)
    assert [link.href for link in page.links] == ["https://cdn.example.com/docs/intro", "https://cdn.example.com/root"]
    assert page.canonical == "https://cdn.example.com/docs/guide"
    assert page.url == URL


def test_relative_base_href_resolved_against_final_url():
    html = '<html><head><base href="../shared/"></head><body><a href="page">Page</a></body></html>'
    page = _extract(html, url="https://example.com/a", final_url="https://example.com/docs/v2/index")
    assert [link.href for link in page.links] == ["https://example.com/docs/shared/page"]
