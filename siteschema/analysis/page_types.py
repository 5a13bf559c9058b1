"""Page-type clustering, navigation analysis and relationship detection."""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Any, Callable, Optional, Sequence

from siteschema.crawl.models import Link, Page
from siteschema.crawl.urls import (
    extract_url_pattern,
    get_url_dedup_key,
    get_url_depth,
    normalize_url,
)

from .models import (
    Breadcrumb,
    BreadcrumbPattern,
    GraphEdge,
    GraphNode,
    NavigationStructure,
    NavItem,
    PageFeatures,
    PageType,
    Relationship,
    RelationshipEvidence,
    SiteGraph,
)
from .objects import json_ld_types

logger = logging.getLogger(__name__)

MAX_EXAMPLES = 5
DOM_SIGNATURE_SAMPLE = 5
NAV_MIN_SHARE = 0.3
RICH_CONTENT_CHARS = 1000
MIN_RELATIONSHIP_EVIDENCE = 3
MAX_SCANNED_MATCHES = 10
MAX_RECORDED_EVIDENCE = 5
TAXONOMY_CONFIDENCE = 0.8
TAXONOMY_MARKERS = ("/category/", "/tag/", "/topic/", "/type/")
GENERIC_SEGMENTS = {"index", "home"}


def _content(page: Page) -> str:
    return (page.main_content or "").lower()


def _has_date(page: Page) -> bool:
    return any(
        "Article" in json_ld_types(item) or item.get("datePublished")
        for item in page.json_ld or []
    )


def _has_author(page: Page) -> bool:
    return "author" in _content(page) or any(item.get("author") for item in page.json_ld or [])


def _has_price(page: Page) -> bool:
    content = _content(page)
    return "$" in content or "price" in content


def _has_form(page: Page) -> bool:
    headings = " ".join(h.text.lower() for h in page.headings)
    return "contact" in headings or "form" in headings


def _has_gallery(page: Page) -> bool:
    return any("gallery" in link.href.lower() or "gallery" in link.text.lower() for link in page.links)


def _has_breadcrumbs(page: Page) -> bool:
    return any(link.context == "breadcrumb" for link in page.links)


def _has_related_content(page: Page) -> bool:
    return any("related" in link.text.lower() for link in page.links)


def _is_rich(page: Page) -> bool:
    return len(page.main_content or "") > RICH_CONTENT_CHARS


# Per-page signals; a feature holds for a group when a strict majority shows it.
FEATURE_RULES: tuple[tuple[str, Callable[[Page], bool]], ...] = (
    ("has_date", _has_date),
    ("has_author", _has_author),
    ("has_price", _has_price),
    ("has_form", _has_form),
    ("has_gallery", _has_gallery),
    ("has_breadcrumbs", _has_breadcrumbs),
    ("has_related_content", _has_related_content),
    ("rich_content", _is_rich),
)

NameRule = Callable[[str, list[str], PageFeatures], Optional[str]]


def _name_from_json_ld(pattern: str, types: list[str], features: PageFeatures) -> str | None:
    return types[0].lower() if types else None


def _name_from_pattern(pattern: str, types: list[str], features: PageFeatures) -> str | None:
    static = [s for s in pattern.split("/") if s and not s.startswith(":")]
    if static and static[-1] not in GENERIC_SEGMENTS:
        return static[-1]
    return None


def _name_from_features(pattern: str, types: list[str], features: PageFeatures) -> str | None:
    if features.has_author and features.has_date:
        return "article"
    if features.has_price:
        return "product"
    if features.has_form:
        return "contact"
    return None


# First rule returning a name wins; "page" otherwise.
NAME_RULES: tuple[tuple[str, NameRule], ...] = (
    ("json_ld_type", _name_from_json_ld),
    ("url_segment", _name_from_pattern),
    ("features", _name_from_features),
)


def infer_page_type_name(pattern: str, types: list[str], features: PageFeatures) -> str:
    for _, rule in NAME_RULES:
        name = rule(pattern, types, features)
        if name:
            return name
    return "page"


def group_features(pages: Sequence[Page]) -> PageFeatures:
    threshold = len(pages) * 0.5
    return PageFeatures(**{
        name: sum(1 for page in pages if rule(page)) > threshold
        for name, rule in FEATURE_RULES
    })


def dom_signature(pages: Sequence[Page]) -> str:
    """Most common heading-level sequence among the first pages of a group."""
    signatures = Counter(
        "-".join(f"h{h.level}" for h in page.headings)
        for page in pages[:DOM_SIGNATURE_SAMPLE]
    )
    signature, _ = signatures.most_common(1)[0] if signatures else ("", 0)
    return signature or "unknown"


def page_type_confidence(page_count: int, features: PageFeatures) -> float:
    score = 0.5
    if page_count > 10:
        score += 0.2
    elif page_count > 5:
        score += 0.1
    score += 0.05 * features.count()
    return round(min(score, 1.0), 4)


def _rationale(pattern: str, page_count: int, features: PageFeatures, types: list[str]) -> str:
    reasons = [f'{page_count} pages match the URL pattern "{pattern}"']
    if types:
        reasons.append(f"Detected JSON-LD types: {', '.join(types)}")
    dominant = [
        label
        for label, present in (
            ("dates", features.has_date),
            ("authors", features.has_author),
            ("pricing", features.has_price),
            ("rich content", features.rich_content),
        )
        if present
    ]
    if dominant:
        reasons.append(f"Common features: {', '.join(dominant)}")
    return ". ".join(reasons)


class SiteAnalyzer:
    """Derives page types, navigation and relationships from a page snapshot.

    Only pages with status 200 are analyzed, deduplicated by canonical URL
    (or the URL without query string). The first occurrence wins.
    """

    def __init__(self, pages: Sequence[Page]) -> None:
        self.total_pages = len(pages)
        seen: set[str] = set()
        self.pages: list[Page] = []
        for page in pages:
            if page.status != 200:
                continue
            key = get_url_dedup_key(page.canonical or page.url)
            if key in seen:
                continue
            seen.add(key)
            self.pages.append(page)
        self._by_url = {normalize_url(page.url): page for page in self.pages}

    # -- page types -----------------------------------------------------------

    def detect_page_types(
        self, max_clusters: int = 20, include_singletons: bool = True
    ) -> list[PageType]:
        groups: dict[str, list[Page]] = {}
        for page in self.pages:
            groups.setdefault(extract_url_pattern(page.url), []).append(page)

        ranked = sorted(
            (
                (pattern, pages)
                for pattern, pages in groups.items()
                if include_singletons or len(pages) > 1
            ),
            key=lambda item: len(item[1]),
            reverse=True,
        )[:max_clusters]

        page_types: list[PageType] = []
        for index, (pattern, pages) in enumerate(ranked, start=1):
            features = group_features(pages)
            types = list(dict.fromkeys(t for p in pages for item in p.json_ld or [] for t in json_ld_types(item)))
            page_types.append(
                PageType(
                    id=f"type-{index}",
                    name=infer_page_type_name(pattern, types, features),
                    confidence=page_type_confidence(len(pages), features),
                    examples=[p.url for p in pages[:MAX_EXAMPLES]],
                    url_pattern=pattern,
                    dom_signature=dom_signature(pages),
                    json_ld_types=types,
                    features=features,
                    page_count=len(pages),
                    rationale=_rationale(pattern, len(pages), features, types),
                )
            )

        logger.info(
            "page types detected",
            extra={"pages": len(self.pages), "patterns": len(groups), "page_types": len(page_types)},
        )
        return page_types

    # -- navigation -----------------------------------------------------------

    def analyze_navigation(self) -> NavigationStructure:
        return NavigationStructure(
            primary_nav=self._frequent_links("nav"),
            footer=self._frequent_links("footer"),
            breadcrumbs=self._breadcrumbs(),
            site_graph=self._site_graph(),
        )

    def _frequent_links(self, context: str) -> list[NavItem]:
        """Targets linked from at least 30% of analyzed pages, most frequent first."""
        if not self.pages:
            return []
        page_counts: Counter[str] = Counter()
        labels: dict[str, str] = {}
        for page in self.pages:
            targets: set[str] = set()
            for link in page.links:
                if link.context != context:
                    continue
                target = normalize_url(link.href)
                labels.setdefault(target, link.text)
                targets.add(target)
            page_counts.update(targets)

        min_pages = math.ceil(len(self.pages) * NAV_MIN_SHARE)
        items = [
            NavItem(text=labels[url], url=url, frequency=count)
            for url, count in page_counts.items()
            if count >= min_pages
        ]
        return sorted(items, key=lambda item: item.frequency, reverse=True)

    def _breadcrumbs(self) -> list[BreadcrumbPattern]:
        patterns: list[BreadcrumbPattern] = []
        for page in self.pages:
            crumbs = [link for link in page.links if link.context == "breadcrumb"]
            if crumbs:
                patterns.append(
                    BreadcrumbPattern(
                        url=page.url,
                        breadcrumbs=[Breadcrumb(text=link.text, url=normalize_url(link.href)) for link in crumbs],
                        source="html",
                    )
                )
                continue
            json_ld_crumbs = self._json_ld_breadcrumbs(page)
            if json_ld_crumbs is not None:
                patterns.append(
                    BreadcrumbPattern(url=page.url, breadcrumbs=json_ld_crumbs, source="jsonld")
                )
        return patterns

    @staticmethod
    def _json_ld_breadcrumbs(page: Page) -> list[Breadcrumb] | None:
        for item in page.json_ld or []:
            if "BreadcrumbList" not in json_ld_types(item):
                continue
            crumbs: list[Breadcrumb] = []
            for element in item.get("itemListElement") or []:
                if not isinstance(element, dict):
                    continue
                target: Any = element.get("item")
                name = element.get("name")
                if isinstance(target, dict):
                    name = name or target.get("name")
                    target = target.get("@id") or target.get("url")
                crumbs.append(
                    Breadcrumb(
                        text=str(name or ""),
                        url=target if isinstance(target, str) else None,
                    )
                )
            return crumbs
        return None

    def _site_graph(self) -> SiteGraph:
        nodes = [
            GraphNode(id=page.id, url=page.url, depth=get_url_depth(page.url))
            for page in self.pages
        ]
        edges: list[GraphEdge] = []
        for page in self.pages:
            for link in page.links:
                target = self._by_url.get(normalize_url(link.href))
                if target is None:
                    continue
                edges.append(
                    GraphEdge(
                        from_=page.id,
                        to=target.id,
                        context=link.context,
                        confidence=0.9 if link.context == "nav" else 0.7,
                    )
                )
        return SiteGraph(nodes=nodes, edges=edges)

    # -- relationships --------------------------------------------------------

    def detect_relationships(self, page_types: Sequence[PageType]) -> list[Relationship]:
        relationships: list[Relationship] = []

        for source in page_types:
            for target in page_types:
                if source.id == target.id:
                    continue
                evidence = self._index_detail_evidence(source, target)
                if len(evidence) < MIN_RELATIONSHIP_EVIDENCE:
                    continue
                relationships.append(
                    Relationship(
                        type="index-detail",
                        from_=source.id,
                        to=target.id,
                        confidence=min(len(evidence) / MAX_SCANNED_MATCHES, 1.0),
                        evidence=evidence[:MAX_RECORDED_EVIDENCE],
                        description=f"{source.name} pages link to multiple {target.name} pages",
                    )
                )

        for page_type in page_types:
            matches = [
                url for url in page_type.examples
                if any(marker in url for marker in TAXONOMY_MARKERS)
            ]
            if len(matches) < MIN_RELATIONSHIP_EVIDENCE:
                continue
            relationships.append(
                Relationship(
                    type="taxonomy",
                    from_="taxonomy",
                    to=page_type.id,
                    confidence=TAXONOMY_CONFIDENCE,
                    evidence=[
                        RelationshipEvidence(from_url="taxonomy", to_url=url, context="url-pattern")
                        for url in matches[:MAX_RECORDED_EVIDENCE]
                    ],
                    description=f"{page_type.name} pages are organized by category/taxonomy",
                )
            )

        logger.info("relationships detected", extra={"relationships": len(relationships)})
        return relationships

    def _index_detail_evidence(
        self, source: PageType, target: PageType
    ) -> list[RelationshipEvidence]:
        """Distinct (page, target) links from *source* examples to *target* examples, at most ten."""
        target_urls = {normalize_url(url) for url in target.examples}
        matched: dict[tuple[str, str], RelationshipEvidence] = {}
        for example in source.examples:
            page = self._by_url.get(normalize_url(example))
            if page is None:
                continue
            for link in page.links:
                href = normalize_url(link.href)
                key = (page.url, href)
                if href not in target_urls or key in matched:
                    continue
                matched[key] = _evidence(page, href, link)
                if len(matched) >= MAX_SCANNED_MATCHES:
                    return list(matched.values())
        return list(matched.values())


def _evidence(page: Page, href: str, link: Link) -> RelationshipEvidence:
    return RelationshipEvidence(from_url=page.url, to_url=href, context=link.context)
