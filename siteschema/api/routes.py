"""Crawl, page and analysis endpoint handlers."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from siteschema.analysis import AnalysisReport
from siteschema.api import service
from siteschema.api.schemas import (
    AnalyzeRequest,
    ClearResult,
    CrawlAccepted,
    CrawlRequest,
    PageSummary,
    ScreenshotRequest,
    ScreenshotResult,
)
from siteschema.auth.dependencies import require_api_key
from siteschema.config import Settings
from siteschema.crawl.engine import CrawlSetupError
from siteschema.crawl.models import CrawlSummary, Page
from siteschema.store.redis import RedisPageStore

router = APIRouter(dependencies=[Depends(require_api_key)])


def _get_store(request: Request) -> RedisPageStore:
    return request.app.state.store


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.post("/crawl", response_model=None)
async def create_crawl(
    body: CrawlRequest,
    store: RedisPageStore = Depends(_get_store),
    settings: Settings = Depends(_get_settings),
) -> CrawlAccepted | EventSourceResponse:
    if body.mode == "background":
        return await service.start_background_crawl(store, settings, body)
    return EventSourceResponse(service.stream_crawl(store, settings, body))


@router.get("/crawl/{run_id}")
async def get_crawl(
    run_id: str,
    store: RedisPageStore = Depends(_get_store),
) -> CrawlSummary:
    summary = await service.get_crawl_summary(store, run_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Crawl run not found or expired")
    return summary


@router.post("/screenshots")
async def create_screenshots(
    body: ScreenshotRequest,
    store: RedisPageStore = Depends(_get_store),
    settings: Settings = Depends(_get_settings),
) -> ScreenshotResult:
    try:
        return await service.capture_screenshots(store, settings, body)
    except CrawlSetupError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.get("/pages")
async def get_pages(store: RedisPageStore = Depends(_get_store)) -> list[PageSummary]:
    return await service.list_pages(store)


@router.get("/pages/lookup")
async def lookup_page(url: str, store: RedisPageStore = Depends(_get_store)) -> Page:
    page = await store.get_by_url(url)
    if page is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return page


@router.delete("/pages")
async def clear_pages(store: RedisPageStore = Depends(_get_store)) -> ClearResult:
    return ClearResult(deleted=await store.clear())


@router.post("/analyze")
async def analyze(
    body: AnalyzeRequest | None = None,
    store: RedisPageStore = Depends(_get_store),
    settings: Settings = Depends(_get_settings),
) -> AnalysisReport:
    report = await service.run_analysis(store, settings, body or AnalyzeRequest())
    if report is None:
        raise HTTPException(status_code=404, detail="No crawled pages to analyze")
    return report
