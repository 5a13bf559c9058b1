"""Background and streaming crawl runner tests."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from siteschema.api import service
from siteschema.api.schemas import CrawlRequest
from siteschema.config import Settings
from siteschema.crawl.engine import Crawler
from siteschema.crawl.events import EventStream
from siteschema.crawl.fetchers import FetchResult
from siteschema.crawl.models import CrawlConfig, CrawlState, CrawlSummary
from siteschema.crawl.tasks import run_background_crawl, summary_key
from siteschema.store.redis import PageStoreError, RedisPageStore

pytestmark = pytest.mark.asyncio

BASE = "https://example.com"

SITE = {
    "https://example.com/": '<html><body><a href="/a">A</a><a href="/b">B</a></body></html>',
    "https://example.com/a": "<html><body>A</body></html>",
    "https://example.com/b": "<html><body>B</body></html>",
}


class StaticFetcher:
    def __init__(self, pages: dict[str, str], fail_start: bool = False):
        self.pages = pages
        self.fail_start = fail_start

    async def start(self) -> None:
        if self.fail_start:
            raise RuntimeError("browser missing")

    async def close(self) -> None:
        pass

    async def fetch(self, url: str) -> FetchResult:
        return FetchResult(url=url, html=self.pages.get(url, ""), status=200 if url in self.pages else 404)


def _crawler(store, fetcher=None, on_event=None, run_id="run-1") -> Crawler:
    return Crawler(
        BASE,
        CrawlConfig(throttle_ms=0),
        store,
        fetcher=fetcher or StaticFetcher(SITE),
        on_event=on_event,
        run_id=run_id,
    )


async def test_summary_persisted_after_crawl(page_store: RedisPageStore):
    await run_background_crawl(_crawler(page_store), page_store)

    summary = await page_store.get_metadata(summary_key("run-1"), CrawlSummary)
    assert summary.state == CrawlState.COMPLETED
    assert summary.pages_crawled == 3
    assert await page_store.count() == 3


async def test_failed_crawl_records_error(page_store: RedisPageStore):
    crawler = _crawler(page_store, fetcher=StaticFetcher(SITE, fail_start=True))
    await run_background_crawl(crawler, page_store)

    summary = await page_store.get_metadata(summary_key("run-1"), CrawlSummary)
    assert summary.state == CrawlState.FAILED
    assert "browser missing" in summary.error
    assert await page_store.count() == 0


async def test_unavailable_store_does_not_raise():
    store = MagicMock()
    store.set_metadata = AsyncMock(side_effect=PageStoreError("down"))
    store.save = AsyncMock()
    crawler = _crawler(store)

    await run_background_crawl(crawler, store)

    assert store.set_metadata.await_count == 2
    final = store.set_metadata.await_args.args[1]
    assert final.state == CrawlState.FAILED
    store.save.assert_not_awaited()


async def test_stream_crawl_yields_events_and_persists(page_store: RedisPageStore):
    def build(settings, store, body, *, on_event=None):
        return _crawler(store, on_event=on_event, run_id="streamed")

    settings = Settings(api_key="k")  # type: ignore[call-arg]
    body = CrawlRequest(url=BASE, mode="stream")

    with patch("siteschema.api.service.build_crawler", side_effect=build):
        events = [item async for item in service.stream_crawl(page_store, settings, body)]

    names = [item["event"] for item in events]
    assert names[0] == "started"
    assert names.count("page") == 3
    assert names[-1] == "done"
    done = json.loads(events[-1]["data"])
    assert done["state"] == "completed"

    summary = await service.get_crawl_summary(page_store, "streamed")
    assert summary.pages_crawled == 3


async def test_stream_crawl_clears_first(page_store: RedisPageStore):
    await run_background_crawl(_crawler(page_store, run_id="old"), page_store)
    assert await page_store.count() == 3

    def build(settings, store, body, *, on_event=None):
        return _crawler(store, fetcher=StaticFetcher({}), on_event=on_event, run_id="new")

    body = CrawlRequest(url=BASE, mode="stream", clear=True)
    with patch("siteschema.api.service.build_crawler", side_effect=build):
        [item async for item in service.stream_crawl(page_store, Settings(api_key="k"), body)]  # type: ignore[call-arg]

    # the seed answers 404 and is still stored
    assert await page_store.count() == 1


async def test_event_stream_serializes_until_closed():
    stream = EventStream()
    await stream.publish("page", {"url": f"{BASE}/a", "status": 200})
    await stream.publish("done", {"finished": datetime(2026, 1, 1, tzinfo=timezone.utc)})
    await stream.close()

    messages = [message async for message in stream]

    assert messages == [
        {"event": "page", "data": '{"url": "https://example.com/a", "status": 200}'},
        {"event": "done", "data": '{"finished": "2026-01-01 00:00:00+00:00"}'},
    ]
