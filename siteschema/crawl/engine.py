"""Crawl engine: frontier management, batched fetching and link discovery."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from .events import EventCallback, emit_event
from .extract import extract_page
from .fetchers import (
    BrowserRenderer,
    FetchResult,
    HttpFetcher,
    PageFetcher,
    is_retryable_error,
)
from .models import CrawlConfig, CrawlState, CrawlSummary, Page
from .urls import has_skipped_extension, is_same_origin, normalize_url

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 1.0


class CrawlError(Exception):
    """Base error for crawl runs."""


class CrawlSetupError(CrawlError):
    """Raised when the fetch backend cannot be started."""


class PageSink(Protocol):
    async def save(self, page: Page) -> None: ...


@dataclass
class PageOutcome:
    """What a worker hands back to the coordinator for one frontier item."""

    url: str
    depth: int
    page: Page | None = None
    links: list[str] = field(default_factory=list)
    error: str | None = None


class Crawler:
    """Crawls one site breadth-first in bounded concurrent batches.

    The coordinator (``crawl``) is the only writer of frontier and visited
    state. Workers fetch, extract and save a page, then return its outbound
    links in a :class:`PageOutcome`.
    """

    def __init__(
        self,
        base_url: str,
        config: CrawlConfig,
        store: PageSink,
        *,
        fetcher: PageFetcher | None = None,
        renderer: BrowserRenderer | None = None,
        on_event: EventCallback | None = None,
        run_id: str | None = None,
    ) -> None:
        self.base_url = normalize_url(base_url)
        self.config = config
        self.run_id = run_id or uuid.uuid4().hex
        self.state = CrawlState.IDLE
        self._store = store
        self._fetcher = fetcher
        self._renderer = renderer
        self._on_event = on_event
        self._semaphore = asyncio.Semaphore(config.concurrency)

        self._frontier: deque[tuple[str, int]] = deque()
        self._queued: set[str] = set()
        self._visited: set[str] = set()
        self._skipped: set[str] = set()
        self._failed = 0
        self._cancelled = False

    # -- public API -----------------------------------------------------------

    def should_exclude(self, url: str) -> bool:
        """Apply exclude substrings, the include allowlist and asset extensions."""
        if any(pattern in url for pattern in self.config.exclude):
            return True
        if self.config.include and not any(pattern in url for pattern in self.config.include):
            return True
        return has_skipped_extension(url)

    def cancel(self) -> None:
        """Stop issuing batches; the in-flight batch is allowed to settle."""
        if self.state is CrawlState.RUNNING:
            logger.info("crawl cancellation requested", extra={"run_id": self.run_id})
            self._cancelled = True
            self.state = CrawlState.DRAINING

    async def crawl(self) -> CrawlSummary:
        """Run the crawl to completion and return its summary.

        Raises :class:`CrawlSetupError` if the backend fails to start and
        re-raises store failures after the in-flight batch settles.
        """
        if self.state is not CrawlState.IDLE:
            raise CrawlError("a Crawler instance can only run once")

        started = time.monotonic()
        backend = self._backend()
        self.state = CrawlState.RUNNING
        try:
            await backend.start()
        except Exception as exc:
            self.state = CrawlState.FAILED
            logger.error(
                "crawl backend failed to start",
                extra={"run_id": self.run_id, "render": self.config.render},
                exc_info=True,
            )
            await emit_event(self._on_event, "error", {"error": str(exc)})
            raise CrawlSetupError(f"failed to start fetch backend: {exc}") from exc

        logger.info(
            "crawl started",
            extra={
                "run_id": self.run_id,
                "base_url": self.base_url,
                "max_pages": self.config.max_pages,
                "max_depth": self.config.max_depth,
                "concurrency": self.config.concurrency,
                "render": self.config.render,
            },
        )
        await emit_event(
            self._on_event,
            "started",
            {"run_id": self.run_id, "base_url": self.base_url},
        )

        self._enqueue(self.base_url, 0)
        try:
            await self._run_batches(backend)
        except Exception as exc:
            self.state = CrawlState.FAILED
            summary = self._summary(started, error=str(exc))
            logger.error(
                "crawl failed",
                extra={"run_id": self.run_id, "pages_crawled": summary.pages_crawled},
                exc_info=True,
            )
            await emit_event(self._on_event, "error", summary.model_dump(mode="json"))
            raise
        finally:
            await backend.close()

        self.state = CrawlState.COMPLETED
        summary = self._summary(started)
        logger.info(
            "crawl completed",
            extra={
                "run_id": self.run_id,
                "pages_crawled": summary.pages_crawled,
                "pages_failed": summary.pages_failed,
                "pages_skipped": summary.pages_skipped,
                "cancelled": summary.cancelled,
                "duration_seconds": summary.duration_seconds,
            },
        )
        await emit_event(self._on_event, "done", summary.model_dump(mode="json"))
        return summary

    async def crawl_selected(self, urls: Iterable[str]) -> int:
        """Re-fetch *urls* one at a time in rendered mode with full-page screenshots.

        Does not touch frontier or visited state. Pages that fail are logged
        and skipped. Returns the number of pages captured.
        """
        urls = [normalize_url(url) for url in urls]
        if not urls:
            logger.info("no urls selected for screenshots")
            return 0

        renderer = self._renderer or BrowserRenderer.from_config(self.config)
        try:
            await renderer.start()
        except Exception as exc:
            raise CrawlSetupError(f"failed to start renderer: {exc}") from exc

        captured = 0
        try:
            for url in urls:
                try:
                    result = await renderer.render(url, full_page_screenshot=True)
                    page = self._build_page(result)
                except Exception:
                    logger.warning("screenshot capture failed", extra={"url": url}, exc_info=True)
                    continue
                await self._store.save(page)
                captured += 1
                logger.info(
                    "screenshot captured",
                    extra={"url": url, "captured": captured, "total": len(urls)},
                )
        finally:
            await renderer.close()
        return captured

    # -- coordinator ----------------------------------------------------------

    def _backend(self) -> PageFetcher:
        if self.config.render:
            if self._renderer is None:
                self._renderer = BrowserRenderer.from_config(self.config)
            return self._renderer
        if self._fetcher is None:
            self._fetcher = HttpFetcher.from_config(self.config)
        return self._fetcher

    def _enqueue(self, url: str, depth: int) -> None:
        self._frontier.append((url, depth))
        self._queued.add(url)

    def _next_batch(self) -> list[tuple[str, int]]:
        budget = min(self.config.concurrency, self.config.max_pages - len(self._visited))
        batch: list[tuple[str, int]] = []
        while self._frontier and len(batch) < budget:
            url, depth = self._frontier.popleft()
            self._queued.discard(url)
            if url in self._visited:
                continue
            self._visited.add(url)
            batch.append((url, depth))
        return batch

    async def _run_batches(self, backend: PageFetcher) -> None:
        while (
            self._frontier
            and self.state is CrawlState.RUNNING
            and len(self._visited) < self.config.max_pages
        ):
            batch = self._next_batch()
            if not batch:
                break

            results = await asyncio.gather(
                *(self._process(backend, url, depth) for url, depth in batch),
                return_exceptions=True,
            )

            fatal: BaseException | None = None
            for result in results:
                if isinstance(result, BaseException):
                    fatal = fatal or result
                    continue
                await self._settle(result)
            if fatal is not None:
                raise fatal

            await emit_event(
                self._on_event,
                "progress",
                {
                    "pages_crawled": len(self._visited),
                    "pages_failed": self._failed,
                    "queued": len(self._frontier),
                },
            )

            if self._frontier and self.state is CrawlState.RUNNING and self.config.throttle_ms:
                await asyncio.sleep(self.config.throttle_ms / 1000)

    async def _settle(self, outcome: PageOutcome) -> None:
        if outcome.page is None:
            self._failed += 1
            return

        await emit_event(
            self._on_event,
            "page",
            {
                "url": outcome.url,
                "depth": outcome.depth,
                "status": outcome.page.status,
                "title": outcome.page.title,
            },
        )
        if outcome.depth >= self.config.max_depth:
            return

        for link in outcome.links:
            if link in self._visited or link in self._queued:
                continue
            if not is_same_origin(link, self.base_url, self.config.follow_subdomains):
                continue
            if self.should_exclude(link):
                self._skipped.add(link)
                continue
            self._enqueue(link, outcome.depth + 1)

    def _summary(self, started: float, error: str | None = None) -> CrawlSummary:
        return CrawlSummary(
            run_id=self.run_id,
            base_url=self.base_url,
            state=self.state,
            pages_crawled=len(self._visited),
            pages_failed=self._failed,
            pages_skipped=len(self._skipped),
            duration_seconds=round(time.monotonic() - started, 3),
            cancelled=self._cancelled,
            error=error,
        )

    # -- workers --------------------------------------------------------------

    async def _process(self, backend: PageFetcher, url: str, depth: int) -> PageOutcome:
        """Fetch, extract and save one page. Only store failures escape."""
        async with self._semaphore:
            try:
                result = await self._fetch_with_retry(backend, url)
                page = self._build_page(result)
            except Exception as exc:
                logger.warning(
                    "page abandoned",
                    extra={"url": url, "depth": depth, "error": str(exc)},
                )
                return PageOutcome(url=url, depth=depth, error=str(exc))

        await self._store.save(page)

        links: list[str] = []
        for link in page.links:
            normalized = normalize_url(link.href)
            if normalized not in links:
                links.append(normalized)
        return PageOutcome(url=url, depth=depth, page=page, links=links)

    async def _fetch_with_retry(self, backend: PageFetcher, url: str) -> FetchResult:
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                return await backend.fetch(url)
            except Exception as exc:
                if attempt >= MAX_ATTEMPTS or not is_retryable_error(exc):
                    raise
                delay = attempt * RETRY_DELAY_SECONDS
                logger.debug(
                    "retrying fetch",
                    extra={"url": url, "attempt": attempt, "delay": delay, "error": str(exc)},
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    @staticmethod
    def _build_page(result: FetchResult) -> Page:
        return extract_page(
            result.url,
            result.html,
            result.status,
            redirect_chain=result.redirect_chain,
            screenshot=result.screenshot,
            final_url=result.base_url,
        )
