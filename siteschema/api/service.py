"""Service layer: orchestrates crawl and analysis operations for the API routes."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import AsyncGenerator

from siteschema.analysis import AIValidator, AnalysisReport, analyze_site
from siteschema.api.schemas import (
    AnalyzeRequest,
    CrawlAccepted,
    CrawlRequest,
    PageSummary,
    ScreenshotRequest,
    ScreenshotResult,
)
from siteschema.config import Settings
from siteschema.crawl.engine import Crawler
from siteschema.crawl.events import EventCallback, EventStream
from siteschema.crawl.models import CrawlSummary
from siteschema.crawl.tasks import run_background_crawl, summary_key
from siteschema.store.redis import RedisPageStore

logger = logging.getLogger(__name__)

# Strong references so fire-and-forget crawls are not garbage collected mid-run
_background_tasks: set[asyncio.Task[None]] = set()


def _generate_run_id() -> str:
    return uuid.uuid4().hex[:12]


def build_crawler(
    settings: Settings,
    store: RedisPageStore,
    body: CrawlRequest,
    *,
    on_event: EventCallback | None = None,
) -> Crawler:
    config = settings.crawl_config(
        max_pages=body.max_pages,
        max_depth=body.max_depth,
        concurrency=body.concurrency,
        throttle_ms=body.throttle_ms,
        render=body.render,
        follow_subdomains=body.follow_subdomains,
        include=tuple(body.include) if body.include is not None else None,
        exclude=tuple(body.exclude) if body.exclude is not None else None,
        screenshot_mode=body.screenshot_mode,
    )
    return Crawler(body.url, config, store, on_event=on_event, run_id=_generate_run_id())


async def start_background_crawl(
    store: RedisPageStore,
    settings: Settings,
    body: CrawlRequest,
) -> CrawlAccepted:
    """Launch a crawl in the background and return its run id."""
    if body.clear:
        await store.clear()
    crawler = build_crawler(settings, store, body)
    logger.info(
        "background crawl started",
        extra={"run_id": crawler.run_id, "url": crawler.base_url},
    )

    task = asyncio.create_task(run_background_crawl(crawler, store))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return CrawlAccepted(run_id=crawler.run_id)


async def stream_crawl(
    store: RedisPageStore,
    settings: Settings,
    body: CrawlRequest,
) -> AsyncGenerator[dict[str, str], None]:
    """Yield SSE-formatted crawl events.

    If the client disconnects, the crawl keeps running so its pages and
    summary still land in the store.
    """
    if body.clear:
        await store.clear()

    stream = EventStream()
    crawler = build_crawler(settings, store, body, on_event=stream.publish)
    logger.info(
        "streaming crawl started",
        extra={"run_id": crawler.run_id, "url": crawler.base_url},
    )

    async def run_and_signal_done() -> None:
        try:
            await run_background_crawl(crawler, store)
        finally:
            await stream.close()

    task = asyncio.create_task(run_and_signal_done())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    async for message in stream:
        yield message


async def get_crawl_summary(store: RedisPageStore, run_id: str) -> CrawlSummary | None:
    return await store.get_metadata(summary_key(run_id), CrawlSummary)


async def capture_screenshots(
    store: RedisPageStore,
    settings: Settings,
    body: ScreenshotRequest,
) -> ScreenshotResult:
    """Re-render the requested pages with full-page screenshots."""
    crawler = Crawler(body.urls[0], settings.crawl_config(render=True), store)
    captured = await crawler.crawl_selected(body.urls)
    return ScreenshotResult(requested=len(body.urls), captured=captured)


async def list_pages(store: RedisPageStore) -> list[PageSummary]:
    pages = await store.get_all()
    return [
        PageSummary(
            id=page.id,
            url=page.url,
            status=page.status,
            title=page.title,
            crawled_at=page.crawled_at,
        )
        for page in pages
    ]


async def run_analysis(
    store: RedisPageStore,
    settings: Settings,
    body: AnalyzeRequest,
) -> AnalysisReport | None:
    """Analyze every stored page. Returns ``None`` when nothing has been crawled."""
    pages = await store.get_all()
    if not pages:
        return None

    validate = body.validate_objects
    if validate is None:
        validate = settings.ai_validation_enabled
    validator = (
        AIValidator(settings.validator_model, max_instances=settings.ai_max_instances)
        if validate
        else None
    )

    report = await analyze_site(
        pages,
        max_clusters=body.max_clusters or settings.analyze_max_clusters,
        include_singletons=(
            body.include_singletons
            if body.include_singletons is not None
            else settings.analyze_include_singletons
        ),
        validator=validator,
        tuning=settings.structural_tuning(),
    )
    logger.info(
        "analysis completed",
        extra={
            "pages_analyzed": report.stats.pages_analyzed,
            "page_types": report.stats.page_types,
            "objects": report.stats.objects,
            "ai_validation": validator is not None,
        },
    )
    return report
