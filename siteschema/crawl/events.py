"""Crawl progress events and their bridge to Server-Sent Events."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable, Coroutine, Literal

logger = logging.getLogger(__name__)

CrawlEventName = Literal["started", "page", "progress", "done", "error"]

# Callback signature shared by the crawler and the SSE route.
EventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


async def emit_event(
    on_event: EventCallback | None,
    event: CrawlEventName,
    data: dict[str, Any] | None = None,
) -> None:
    """Emit a crawl event if a callback is registered."""
    if on_event:
        logger.debug("crawl event emitted", extra={"event": event})
        await on_event(event, data or {})


class EventStream:
    """Buffers crawl events from a running task for an SSE response.

    ``publish`` is the crawler's ``on_event`` callback; iterating yields
    ``{"event", "data"}`` dicts until ``close`` is called.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[tuple[str, dict[str, Any]] | None] = asyncio.Queue()

    async def publish(self, event: str, data: dict[str, Any]) -> None:
        await self._queue.put((event, data))

    async def close(self) -> None:
        await self._queue.put(None)

    async def __aiter__(self) -> AsyncIterator[dict[str, str]]:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            event, data = item
            yield {"event": event, "data": json.dumps(data, default=str)}
