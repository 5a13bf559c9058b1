"""Background crawl runner."""

from __future__ import annotations

import logging

from siteschema.crawl.engine import Crawler
from siteschema.crawl.models import CrawlState, CrawlSummary
from siteschema.store.redis import PageStoreError, RedisPageStore

logger = logging.getLogger(__name__)


def summary_key(run_id: str) -> str:
    return f"crawl:{run_id}"


async def run_background_crawl(crawler: Crawler, store: RedisPageStore) -> None:
    """Run *crawler* to completion and persist its summary under the run id.

    A pending summary is written first so ``GET /crawl/{run_id}`` answers
    while the run is still in progress.
    """
    key = summary_key(crawler.run_id)
    try:
        await store.set_metadata(
            key,
            CrawlSummary(
                run_id=crawler.run_id,
                base_url=crawler.base_url,
                state=CrawlState.RUNNING,
            ),
        )
        summary = await crawler.crawl()
    except Exception as exc:
        logger.exception("background crawl failed", extra={"run_id": crawler.run_id})
        summary = CrawlSummary(
            run_id=crawler.run_id,
            base_url=crawler.base_url,
            state=CrawlState.FAILED,
            error=str(exc),
        )

    try:
        await store.set_metadata(key, summary)
    except PageStoreError:
        logger.warning(
            "could not persist crawl summary", extra={"run_id": crawler.run_id}, exc_info=True
        )
