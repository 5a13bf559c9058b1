"""Page-type analyzer tests."""

from datetime import datetime, timezone

from siteschema.analysis.models import PageFeatures
from siteschema.analysis.page_types import (
    SiteAnalyzer,
    dom_signature,
    infer_page_type_name,
    page_type_confidence,
)
from siteschema.crawl.models import Heading, Link, Page
from siteschema.crawl.urls import generate_content_hash, url_to_id

SITE = "https://example.com"


def _link(path: str, context: str = "main", text: str = "") -> Link:
    return Link(href=f"{SITE}{path}", text=text or path, context=context)


def _make_page(path: str, **overrides) -> Page:
    url = f"{SITE}{path}"
    main_content = overrides.pop("main_content", "")
    levels = overrides.pop("headings", ())
    defaults = dict(
        id=url_to_id(url),
        url=url,
        status=200,
        headings=[Heading(level=level, text=f"Heading {level}") for level in levels],
        main_content=main_content,
        content_hash=generate_content_hash(main_content),
        crawled_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    defaults.update(overrides)
    return Page(**defaults)


ARTICLE_LD = [{
    "@type": "Article",
    "author": {"@type": "Person", "name": "Jane Doe"},
    "datePublished": "2024-01-15",
}]


# --- filtering ---


def test_only_successful_pages_analyzed():
    analyzer = SiteAnalyzer([_make_page("/a"), _make_page("/b", status=404), _make_page("/c", status=301)])
    assert [p.url for p in analyzer.pages] == [f"{SITE}/a"]
    assert analyzer.total_pages == 3


def test_query_variants_deduplicated_first_wins():
    first = _make_page("/list?page=1", title="first")
    second = _make_page("/list?page=2", title="second")
    analyzer = SiteAnalyzer([first, second])
    assert [p.title for p in analyzer.pages] == ["first"]


def test_canonical_used_for_dedup():
    a = _make_page("/a", canonical=f"{SITE}/original")
    b = _make_page("/b", canonical=f"{SITE}/original/")
    assert len(SiteAnalyzer([a, b]).pages) == 1


# --- page types ---


def test_articles_cluster_into_one_type():
    pages = [
        _make_page(f"/blog/{slug}", json_ld=ARTICLE_LD)
        for slug in ("first-post", "second-post", "third-post")
    ]
    (page_type,) = SiteAnalyzer(pages).detect_page_types()

    assert page_type.name == "article"
    assert page_type.page_count == 3
    assert page_type.url_pattern == "/blog/:slug"
    assert page_type.features.has_author is True
    assert page_type.features.has_date is True
    assert page_type.json_ld_types == ["Article"]
    assert page_type.confidence == 0.6
    assert '3 pages match the URL pattern "/blog/:slug"' in page_type.rationale


def test_page_types_sorted_and_bounded():
    pages = (
        [_make_page(f"/posts/{i}") for i in range(12)]
        + [_make_page(f"/products/item-{i}", main_content="Price: $10") for i in range(6)]
        + [_make_page("/about"), _make_page("/contact", headings=(1, 2))]
    )
    page_types = SiteAnalyzer(pages).detect_page_types()

    counts = [pt.page_count for pt in page_types]
    assert counts == sorted(counts, reverse=True)
    assert all(0.0 <= pt.confidence <= 1.0 for pt in page_types)
    assert [pt.id for pt in page_types] == [f"type-{i}" for i in range(1, len(page_types) + 1)]
    assert page_types[0].url_pattern == "/posts/:id"
    assert page_types[0].confidence == 0.7
    assert all(len(pt.examples) <= 5 for pt in page_types)


def test_singletons_can_be_excluded():
    pages = [_make_page("/posts/1"), _make_page("/posts/2"), _make_page("/about")]
    page_types = SiteAnalyzer(pages).detect_page_types(include_singletons=False)
    assert [pt.url_pattern for pt in page_types] == ["/posts/:id"]


def test_max_clusters_truncates():
    pages = [_make_page(f"/{name}") for name in ("a", "b", "c", "d")]
    assert len(SiteAnalyzer(pages).detect_page_types(max_clusters=2)) == 2


def test_features_require_majority():
    pages = [
        _make_page("/shop/one", main_content="price list"),
        _make_page("/shop/two", main_content="price list"),
        _make_page("/shop/three"),
        _make_page("/shop/four"),
    ]
    (page_type,) = SiteAnalyzer(pages).detect_page_types()
    assert page_type.features.has_price is False  # 2 of 4 is not a majority


def test_name_rules_in_order():
    features = PageFeatures(has_author=True, has_date=True, has_price=True)
    assert infer_page_type_name("/blog/:slug", ["BlogPosting"], features) == "blogposting"
    assert infer_page_type_name("/blog/:slug", [], features) == "blog"
    assert infer_page_type_name("/index", [], features) == "article"
    assert infer_page_type_name("/:id", [], PageFeatures(has_price=True)) == "product"
    assert infer_page_type_name("/home", [], PageFeatures(has_form=True)) == "contact"
    assert infer_page_type_name("/", [], PageFeatures()) == "page"


def test_confidence_formula():
    assert page_type_confidence(3, PageFeatures()) == 0.5
    assert page_type_confidence(6, PageFeatures(has_date=True)) == 0.65
    assert page_type_confidence(11, PageFeatures(**{name: True for name in PageFeatures.model_fields})) == 1.0


def test_dom_signature_mode():
    pages = [
        _make_page("/a", headings=(1, 2)),
        _make_page("/b", headings=(1,)),
        _make_page("/c", headings=(1, 2)),
    ]
    assert dom_signature(pages) == "h1-h2"
    assert dom_signature([_make_page("/d")]) == "unknown"


# --- navigation ---


def _nav_site() -> list[Page]:
    pages = []
    for i in range(4):
        links = [
            _link("/about", "nav", "About"),
            _link("/about", "nav", "About"),
            _link("/privacy", "footer", "Privacy"),
        ]
        if i == 0:
            links.append(_link("/rare", "nav", "Rare"))
        pages.append(_make_page(f"/page-{i}", links=links))
    return pages


def test_primary_nav_frequency_by_page():
    nav = SiteAnalyzer(_nav_site()).analyze_navigation()
    assert [(item.url, item.frequency) for item in nav.primary_nav] == [(f"{SITE}/about", 4)]
    assert nav.primary_nav[0].text == "About"
    assert [item.url for item in nav.footer] == [f"{SITE}/privacy"]


def test_breadcrumbs_one_per_page():
    crumb_ld = {
        "@type": "BreadcrumbList",
        "itemListElement": [
            {"@type": "ListItem", "position": 1, "name": "Home", "item": f"{SITE}/"},
            {"@type": "ListItem", "position": 2, "item": {"@id": f"{SITE}/shop", "name": "Shop"}},
        ],
    }
    pages = [
        _make_page("/html-only", links=[_link("/", "breadcrumb", "Home")]),
        _make_page("/ld-only", json_ld=[crumb_ld]),
        _make_page("/both", links=[_link("/", "breadcrumb", "Home")], json_ld=[crumb_ld]),
    ]
    patterns = SiteAnalyzer(pages).analyze_navigation().breadcrumbs

    assert [(p.url, p.source) for p in patterns] == [
        (f"{SITE}/html-only", "html"),
        (f"{SITE}/ld-only", "jsonld"),
        (f"{SITE}/both", "html"),
    ]
    assert [(c.text, c.url) for c in patterns[1].breadcrumbs] == [("Home", f"{SITE}/"), ("Shop", f"{SITE}/shop")]


def test_site_graph_edges():
    pages = [
        _make_page("/", links=[_link("/blog/post", "nav"), _link("/missing")]),
        _make_page("/blog/post", links=[_link("/")]),
    ]
    graph = SiteAnalyzer(pages).analyze_navigation().site_graph

    assert {(n.url, n.depth) for n in graph.nodes} == {(f"{SITE}/", 0), (f"{SITE}/blog/post", 2)}
    assert sorted((e.context, e.confidence) for e in graph.edges) == [("main", 0.7), ("nav", 0.9)]
    assert graph.edges[0].model_dump(by_alias=True)["from"] == pages[0].id


# --- relationships ---


def test_index_detail_relationship():
    details = [f"/blog/post-{n}" for n in ("one", "two", "three", "four")]
    index = _make_page("/blog", links=[_link(path) for path in details] + [_link(details[0] + "#comments")])
    pages = [index] + [_make_page(path) for path in details]

    analyzer = SiteAnalyzer(pages)
    page_types = analyzer.detect_page_types()
    detail_type = next(pt for pt in page_types if pt.url_pattern == "/blog/:slug")
    index_type = next(pt for pt in page_types if pt.url_pattern == "/blog")

    relationships = [r for r in analyzer.detect_relationships(page_types) if r.type == "index-detail"]

    assert len(relationships) == 1
    (rel,) = relationships
    assert rel.from_ == index_type.id
    assert rel.to == detail_type.id
    assert rel.confidence == 0.4
    assert len(rel.evidence) <= 5
    assert len({e.to_url for e in rel.evidence}) == len(rel.evidence)


def test_index_detail_needs_three_links():
    details = ["/blog/post-one", "/blog/post-two"]
    index = _make_page("/blog", links=[_link(path) for path in details])
    analyzer = SiteAnalyzer([index] + [_make_page(path) for path in details])
    assert analyzer.detect_relationships(analyzer.detect_page_types()) == []


def test_index_detail_caps_evidence():
    details = [f"/items/{n}" for n in range(12)]
    index = _make_page("/catalog", links=[_link(path) for path in details])
    pages = [index] + [_make_page(path) for path in details]
    analyzer = SiteAnalyzer(pages)
    page_types = analyzer.detect_page_types()
    # only the first five detail pages are examples of the detail type
    (rel,) = analyzer.detect_relationships(page_types)
    assert rel.confidence == 0.5
    assert len(rel.evidence) == 5


def test_index_detail_counts_links_per_index_page():
    details = [f"/posts/post-{n}" for n in ("a", "b", "c", "d", "e")]
    indexes = [_make_page(f"/archive/{n}", links=[_link(path) for path in details]) for n in (1, 2, 3)]
    analyzer = SiteAnalyzer(indexes + [_make_page(path) for path in details])
    page_types = analyzer.detect_page_types()
    archive = next(pt for pt in page_types if pt.url_pattern == "/archive/:id")
    posts = next(pt for pt in page_types if pt.url_pattern == "/posts/:slug")

    (rel,) = analyzer.detect_relationships(page_types)

    assert (rel.from_, rel.to) == (archive.id, posts.id)
    assert rel.confidence == 1.0
    assert len(rel.evidence) == 5


def test_taxonomy_relationship():
    pages = [_make_page(f"/category/{name}") for name in ("shoes", "hats", "bags")]
    analyzer = SiteAnalyzer(pages)
    (rel,) = analyzer.detect_relationships(analyzer.detect_page_types())

    assert rel.type == "taxonomy"
    assert rel.from_ == "taxonomy"
    assert rel.confidence == 0.8
    assert rel.model_dump(by_alias=True)["from"] == "taxonomy"
    assert {e.context for e in rel.evidence} == {"url-pattern"}
