"""Data models for crawled pages and crawl runs."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

LinkContext = Literal["main", "nav", "footer", "aside", "breadcrumb"]
ScreenshotMode = Literal["none", "above_fold", "full_page"]


class PageMeta(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str | None = None
    keywords: str | None = None
    og_title: str | None = None
    og_description: str | None = None
    og_image: str | None = None
    og_type: str | None = None
    author: str | None = None
    article_author: str | None = None


class Heading(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: int = Field(ge=1, le=6)
    text: str
    id: str | None = None


class Link(BaseModel):
    model_config = ConfigDict(frozen=True)

    href: str
    text: str = ""
    context: LinkContext = "main"
    rel: str | None = None
    title: str | None = None


class Page(BaseModel):
    """A single fetched page. Superseded, never merged, by a later fetch."""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    canonical: str | None = None
    status: int
    redirect_chain: list[str] | None = None
    title: str | None = None
    meta: PageMeta = PageMeta()
    headings: list[Heading] = []
    lang: str | None = None
    links: list[Link] = []
    json_ld: list[dict[str, Any]] | None = None
    main_content: str | None = None
    content_hash: str
    screenshot: str | None = None
    crawled_at: datetime


class CrawlConfig(BaseModel):
    """Options for one crawl run. Read-only while the run is in progress."""

    model_config = ConfigDict(frozen=True)

    max_pages: int = Field(default=1000, ge=1)
    max_depth: int = Field(default=10, ge=0)
    concurrency: int = Field(default=5, ge=1)
    throttle_ms: int = Field(default=100, ge=0)
    render: bool = False
    follow_subdomains: bool = False
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    user_agent: str = "Mozilla/5.0 (compatible; siteschema-bot/1.0)"
    screenshot_mode: ScreenshotMode = "none"
    timeout_seconds: float = Field(default=30.0, gt=0)
    screenshot_dir: str = "screenshots"


class CrawlState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    COMPLETED = "completed"
    FAILED = "failed"


class CrawlSummary(BaseModel):
    run_id: str
    base_url: str
    state: CrawlState
    pages_crawled: int = 0
    pages_failed: int = 0
    pages_skipped: int = 0
    duration_seconds: float = 0.0
    cancelled: bool = False
    error: str | None = None
