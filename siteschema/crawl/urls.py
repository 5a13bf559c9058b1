"""URL normalization, identity and path-template helpers."""

from __future__ import annotations

import hashlib
import re
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

import tldextract

_DEFAULT_PORTS = {"http": 80, "https": 443}

# Bundled public-suffix snapshot only, never fetched over the network
_tld_extract = tldextract.TLDExtract(suffix_list_urls=())

_NUMERIC_RE = re.compile(r"^\d+$")
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SLUG_RE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
_LONG_TOKEN_RE = re.compile(r"^[a-z0-9-]+$")
_LONG_TOKEN_MIN = 12

SKIPPED_EXTENSIONS = (
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".css", ".js", ".xml", ".zip",
)


def normalize_url(url: str, base: str | None = None) -> str:
    """Return the canonical form of *url*, resolved against *base* if given.

    Lowercases scheme and host, drops default ports, the fragment and any
    trailing slash (except the root path), and sorts query parameters by key.
    Idempotent. Unparseable input is returned unchanged.
    """
    try:
        absolute = urljoin(base, url) if base else url
        parts = urlsplit(absolute)
        port = parts.port
    except ValueError:
        return url

    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    if not scheme or not host:
        return absolute

    if port is not None and _DEFAULT_PORTS.get(scheme) == port:
        port = None
    if ":" in host:
        host = f"[{host}]"
    netloc = f"{host}:{port}" if port is not None else host

    path = parts.path or "/"
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/") or "/"

    params = parse_qsl(parts.query, keep_blank_values=True)
    params.sort(key=lambda kv: kv[0])
    query = urlencode(params)

    return urlunsplit((scheme, netloc, path, query, ""))


def get_url_dedup_key(url: str) -> str:
    """Normalized URL without query string, used to collapse query variants."""
    parts = urlsplit(normalize_url(url))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def url_to_id(url: str) -> str:
    """Stable 16-hex-char identifier derived from the normalized URL."""
    digest = hashlib.sha256(normalize_url(url).encode("utf-8")).hexdigest()
    return digest[:16]


def generate_content_hash(content: str) -> str:
    """MD5 digest of page text for change detection (not a security hash)."""
    return hashlib.md5(content.encode("utf-8"), usedforsecurity=False).hexdigest()


def get_registrable_domain(hostname: str) -> str:
    """Return the eTLD+1 of *hostname* ("blog.example.co.uk" -> "example.co.uk")."""
    hostname = hostname.lower().rstrip(".")
    ext = _tld_extract(hostname)
    if ext.domain and ext.suffix:
        return f"{ext.domain}.{ext.suffix}"
    return ext.domain or hostname


def _effective_port(scheme: str, port: int | None) -> int | None:
    return port if port is not None else _DEFAULT_PORTS.get(scheme)


def is_same_origin(url: str, base_url: str, follow_subdomains: bool = False) -> bool:
    """Check whether *url* belongs to the site rooted at *base_url*.

    Scheme and port must always match. The host must match exactly unless
    *follow_subdomains* is set, in which case any host under the base's
    registrable domain is accepted.
    """
    try:
        target = urlsplit(normalize_url(url))
        base = urlsplit(normalize_url(base_url))
        target_port = _effective_port(target.scheme, target.port)
        base_port = _effective_port(base.scheme, base.port)
    except ValueError:
        return False

    if target.scheme != base.scheme or target_port != base_port:
        return False

    host = target.hostname
    base_host = base.hostname
    if not host or not base_host:
        return False
    if host == base_host:
        return True
    if not follow_subdomains:
        return False

    root = get_registrable_domain(base_host)
    return host == root or host.endswith("." + root)


def get_path_segments(url: str) -> list[str]:
    try:
        path = urlsplit(url).path or "/"
    except ValueError:
        return []
    return [segment for segment in path.split("/") if segment]


def get_url_depth(url: str) -> int:
    """Number of path segments in *url*."""
    return len(get_path_segments(url))


def _template_segment(segment: str, index: int, total: int) -> str:
    if _NUMERIC_RE.match(segment):
        return ":id"
    if _UUID_RE.match(segment):
        return ":uuid"
    if _DATE_RE.match(segment):
        return ":date"
    if index > 0 and index == total - 1 and _SLUG_RE.match(segment):
        return ":slug"
    if len(segment) > _LONG_TOKEN_MIN and _LONG_TOKEN_RE.match(segment):
        return ":slug"
    return segment


def extract_url_pattern(url: str) -> str:
    """Generalize the path of *url* into a clustering template.

    ``/posts/123`` -> ``/posts/:id``, ``/blog/my-post`` -> ``/blog/:slug``,
    ``/archive/2024-01-15`` -> ``/archive/:date``. Short static segments such
    as ``/api`` are kept verbatim.
    """
    segments = get_path_segments(url)
    total = len(segments)
    return "/" + "/".join(
        _template_segment(segment, index, total) for index, segment in enumerate(segments)
    )


def matches_pattern(url: str, pattern: str) -> bool:
    """Check whether *url*'s path fits a template from :func:`extract_url_pattern`."""
    url_segments = get_path_segments(url)
    pattern_segments = [s for s in pattern.split("/") if s]
    if len(url_segments) != len(pattern_segments):
        return False
    return all(
        p.startswith(":") or p == u for p, u in zip(pattern_segments, url_segments)
    )


def has_skipped_extension(url: str) -> bool:
    """True for links to assets that are never HTML documents."""
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return False
    return path.endswith(SKIPPED_EXTENSIONS)
