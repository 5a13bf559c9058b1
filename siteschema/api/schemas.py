"""Request/response Pydantic models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from siteschema.crawl.models import ScreenshotMode


class CrawlRequest(BaseModel):
    url: str
    mode: Literal["stream", "background"] = "background"
    max_pages: int | None = Field(default=None, ge=1)
    max_depth: int | None = Field(default=None, ge=0)
    concurrency: int | None = Field(default=None, ge=1)
    throttle_ms: int | None = Field(default=None, ge=0)
    render: bool | None = None
    follow_subdomains: bool | None = None
    include: list[str] | None = None
    exclude: list[str] | None = None
    screenshot_mode: ScreenshotMode | None = None
    clear: bool = False


class CrawlAccepted(BaseModel):
    status: Literal["accepted"] = "accepted"
    run_id: str


class ScreenshotRequest(BaseModel):
    urls: list[str] = Field(min_length=1)


class ScreenshotResult(BaseModel):
    requested: int
    captured: int


class PageSummary(BaseModel):
    id: str
    url: str
    status: int
    title: str | None = None
    crawled_at: datetime


class ClearResult(BaseModel):
    deleted: int


class AnalyzeRequest(BaseModel):
    max_clusters: int | None = Field(default=None, ge=1)
    include_singletons: bool | None = None
    validate_objects: bool | None = None
