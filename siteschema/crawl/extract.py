"""HTML extraction into :class:`Page` records."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from itertools import chain
from typing import Any, Iterable
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from .models import Heading, Link, LinkContext, Page, PageMeta
from .urls import generate_content_hash, url_to_id

logger = logging.getLogger(__name__)

_MIN_MAIN_CONTENT_CHARS = 100
_CONTENT_SELECTORS = ("main", '[role="main"]', "article", "#content", ".content", "body")
_STRIPPED_TAGS = ["script", "style", "nav", "header", "footer", "aside"]
_HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]


def _clean_text(node: Tag) -> str:
    return " ".join(node.get_text(" ").split())


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


def _extract_meta(soup: BeautifulSoup) -> PageMeta:
    return PageMeta(
        description=_meta_content(soup, name="description"),
        keywords=_meta_content(soup, name="keywords"),
        og_title=_meta_content(soup, property="og:title"),
        og_description=_meta_content(soup, property="og:description"),
        og_image=_meta_content(soup, property="og:image"),
        og_type=_meta_content(soup, property="og:type"),
        author=_meta_content(soup, name="author"),
        article_author=(
            _meta_content(soup, property="article:author")
            or _meta_content(soup, name="article:author")
        ),
    )


def _extract_title(soup: BeautifulSoup) -> str | None:
    if soup.title:
        title = _clean_text(soup.title)
        if title:
            return title
    h1 = soup.find("h1")
    if h1:
        return _clean_text(h1) or None
    return None


def _extract_headings(soup: BeautifulSoup) -> list[Heading]:
    return [
        Heading(level=int(tag.name[1]), text=_clean_text(tag), id=tag.get("id"))
        for tag in soup.find_all(_HEADING_TAGS)
    ]


def _is_breadcrumb(node: Tag) -> bool:
    classes = node.get("class") or []
    if any("breadcrumb" in cls.lower() for cls in classes):
        return True
    return "breadcrumb" in (node.get("aria-label") or "").lower()


def _link_context(anchor: Tag) -> LinkContext:
    """Classify a link by its closest structural ancestor.

    Breadcrumb containers win over everything else.
    """
    if any(_is_breadcrumb(node) for node in chain([anchor], anchor.parents)):
        return "breadcrumb"
    for node in anchor.parents:
        if node.name in ("header", "nav") or node.get("role") == "navigation":
            return "nav"
        if node.name == "footer":
            return "footer"
        if node.name == "aside":
            return "aside"
    return "main"


def _extract_links(soup: BeautifulSoup, page_url: str) -> list[Link]:
    links: list[Link] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href:
            continue
        try:
            absolute = urljoin(page_url, href)
            urlsplit(absolute).port  # raises on malformed host/port
        except ValueError:
            logger.debug("skipping malformed link", extra={"url": page_url, "href": href})
            continue

        rel = anchor.get("rel")
        if isinstance(rel, list):
            rel = " ".join(rel)
        links.append(
            Link(
                href=absolute,
                text=_clean_text(anchor),
                context=_link_context(anchor),
                rel=rel or None,
                title=anchor.get("title"),
            )
        )
    return links


def _flatten_json_ld(data: Any) -> Iterable[dict[str, Any]]:
    if isinstance(data, list):
        for item in data:
            yield from _flatten_json_ld(item)
    elif isinstance(data, dict):
        graph = data.get("@graph")
        if isinstance(graph, list):
            yield from _flatten_json_ld(graph)
        else:
            yield data


def _is_json_ld_type(value: str | None) -> bool:
    return bool(value) and value.strip().lower() == "application/ld+json"


def _extract_json_ld(soup: BeautifulSoup, page_url: str) -> list[dict[str, Any]]:
    """Parse each JSON-LD block on its own; a malformed block is skipped."""
    items: list[dict[str, Any]] = []
    for script in soup.find_all("script", attrs={"type": _is_json_ld_type}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("skipping malformed json-ld block", extra={"url": page_url})
            continue
        items.extend(_flatten_json_ld(data))
    return items


def extract_main_content(soup: BeautifulSoup) -> str:
    """Return the text of the first content container with enough text."""
    for selector in _CONTENT_SELECTORS:
        candidate = soup.select_one(selector)
        if candidate is None:
            continue
        fragment = BeautifulSoup(str(candidate), "html.parser")
        for tag in fragment(_STRIPPED_TAGS):
            tag.decompose()
        text = _clean_text(fragment)
        if len(text) > _MIN_MAIN_CONTENT_CHARS:
            return text
    return ""


def _document_base(soup: BeautifulSoup, served_from: str) -> str:
    """Base for relative references: a `<base href>` resolved against the served URL."""
    tag = soup.find("base", href=True)
    if tag and tag["href"].strip():
        try:
            return urljoin(served_from, tag["href"].strip())
        except ValueError:
            logger.debug("ignoring malformed base href", extra={"url": served_from})
    return served_from


def _extract_canonical(soup: BeautifulSoup, page_url: str, base: str) -> str:
    tag = soup.find("link", rel="canonical")
    if tag and tag.get("href"):
        try:
            return urljoin(base, tag["href"].strip())
        except ValueError:
            pass
    return page_url


def extract_page(
    url: str,
    html: str,
    status: int,
    *,
    redirect_chain: list[str] | None = None,
    crawled_at: datetime | None = None,
    screenshot: str | None = None,
    final_url: str | None = None,
) -> Page:
    """Build a :class:`Page` from fetched markup. Deterministic for equal input.

    Relative links resolve against *final_url* (the post-redirect address) or
    a `<base href>`; the page keeps *url* as its identity.
    """
    soup = BeautifulSoup(html, "html.parser")
    base = _document_base(soup, final_url or url)

    main_content = extract_main_content(soup)
    json_ld = _extract_json_ld(soup, url)
    lang = soup.html.get("lang") if soup.html else None

    return Page(
        id=url_to_id(url),
        url=url,
        canonical=_extract_canonical(soup, url, base),
        status=status,
        redirect_chain=redirect_chain or None,
        title=_extract_title(soup),
        meta=_extract_meta(soup),
        headings=_extract_headings(soup),
        lang=lang or None,
        links=_extract_links(soup, base),
        json_ld=json_ld or None,
        main_content=main_content,
        content_hash=generate_content_hash(main_content),
        screenshot=screenshot,
        crawled_at=crawled_at or datetime.now(timezone.utc),
    )
