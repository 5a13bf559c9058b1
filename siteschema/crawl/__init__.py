from .engine import CrawlError, Crawler, CrawlSetupError, PageOutcome
from .extract import extract_page
from .fetchers import BrowserRenderer, FetchResult, HttpFetcher, PageFetcher
from .models import CrawlConfig, CrawlState, CrawlSummary, Heading, Link, Page, PageMeta

__all__ = [
    "BrowserRenderer",
    "CrawlConfig",
    "CrawlError",
    "CrawlSetupError",
    "CrawlState",
    "CrawlSummary",
    "Crawler",
    "FetchResult",
    "Heading",
    "HttpFetcher",
    "Link",
    "Page",
    "PageFetcher",
    "PageMeta",
    "PageOutcome",
    "extract_page",
]
