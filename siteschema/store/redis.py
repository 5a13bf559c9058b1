"""Redis-backed page store: upsert by URL, ordered retrieval by crawl time."""

from __future__ import annotations

import logging
from typing import Protocol, TypeVar

import redis.asyncio as redis
from pydantic import BaseModel
from redis.backoff import ExponentialBackoff
from redis.retry import Retry

from siteschema.crawl.models import Page
from siteschema.crawl.urls import url_to_id

logger = logging.getLogger(__name__)

PAGE_PREFIX = "page:"
INDEX_KEY = "pages:index"
META_PREFIX = "meta:"

ModelT = TypeVar("ModelT", bound=BaseModel)


class PageStoreError(Exception):
    """A store read or write failed. Crawl runs treat this as fatal."""


class PageStore(Protocol):
    async def save(self, page: Page) -> None: ...

    async def get_all(self) -> list[Page]: ...

    async def get_by_url(self, url: str) -> Page | None: ...

    async def clear(self) -> int: ...


class RedisPageStore:
    """Stores pages as JSON under ``page:<id>`` with a crawl-time sorted index."""

    def __init__(self, client: redis.Redis, ttl: int | None = None) -> None:
        self._client = client
        self._ttl = ttl

    async def save(self, page: Page) -> None:
        """Upsert *page*; a later fetch of the same URL replaces the earlier one."""
        key = f"{PAGE_PREFIX}{url_to_id(page.url)}"
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.set(key, page.model_dump_json(), ex=self._ttl)
                pipe.zadd(INDEX_KEY, {key: page.crawled_at.timestamp()})
                await pipe.execute()
        except redis.RedisError as exc:
            logger.error("page save failed", extra={"url": page.url}, exc_info=True)
            raise PageStoreError(f"failed to save {page.url}: {exc}") from exc
        logger.debug("page saved", extra={"url": page.url, "key": key})

    async def get_all(self) -> list[Page]:
        """Return every stored page, oldest crawl first."""
        try:
            keys = await self._client.zrange(INDEX_KEY, 0, -1)
            if not keys:
                return []
            raws = await self._client.mget(keys)
        except redis.RedisError as exc:
            logger.error("page listing failed", exc_info=True)
            raise PageStoreError(f"failed to list pages: {exc}") from exc

        pages = [Page.model_validate_json(raw) for raw in raws if raw is not None]
        expired = len(keys) - len(pages)
        if expired:
            logger.debug("skipped expired index entries", extra={"count": expired})
        return pages

    async def get_by_url(self, url: str) -> Page | None:
        key = f"{PAGE_PREFIX}{url_to_id(url)}"
        try:
            raw = await self._client.get(key)
        except redis.RedisError as exc:
            logger.error("page lookup failed", extra={"url": url}, exc_info=True)
            raise PageStoreError(f"failed to load {url}: {exc}") from exc
        if raw is None:
            return None
        return Page.model_validate_json(raw)

    async def count(self) -> int:
        try:
            return await self._client.zcard(INDEX_KEY)
        except redis.RedisError as exc:
            raise PageStoreError(f"failed to count pages: {exc}") from exc

    async def clear(self) -> int:
        """Delete all stored pages. Returns how many were removed."""
        try:
            keys = [key async for key in self._client.scan_iter(match=f"{PAGE_PREFIX}*")]
            if keys:
                await self._client.delete(*keys)
            await self._client.delete(INDEX_KEY)
        except redis.RedisError as exc:
            logger.error("page store clear failed", exc_info=True)
            raise PageStoreError(f"failed to clear pages: {exc}") from exc
        logger.info("page store cleared", extra={"count": len(keys)})
        return len(keys)

    async def set_metadata(self, key: str, value: BaseModel, ttl: int | None = None) -> None:
        """Store an auxiliary record such as a crawl run summary."""
        try:
            await self._client.set(
                f"{META_PREFIX}{key}",
                value.model_dump_json(),
                ex=ttl if ttl is not None else self._ttl,
            )
        except redis.RedisError as exc:
            logger.error("metadata write failed", extra={"key": key}, exc_info=True)
            raise PageStoreError(f"failed to write {key}: {exc}") from exc

    async def get_metadata(self, key: str, model: type[ModelT]) -> ModelT | None:
        try:
            raw = await self._client.get(f"{META_PREFIX}{key}")
        except redis.RedisError as exc:
            logger.error("metadata read failed", extra={"key": key}, exc_info=True)
            raise PageStoreError(f"failed to read {key}: {exc}") from exc
        if raw is None:
            return None
        return model.model_validate_json(raw)


async def create_redis_client(redis_url: str, *, timeout: float = 5) -> redis.Redis:
    """Client for the page store. Pages are JSON text, so responses are decoded."""
    client = redis.from_url(
        redis_url,
        decode_responses=True,
        client_name="siteschema",
        socket_connect_timeout=timeout,
        socket_timeout=timeout,
        health_check_interval=30,
        retry=Retry(ExponentialBackoff(), retries=3),
        retry_on_error=[redis.ConnectionError, redis.TimeoutError],
    )
    # connection kwargs carry no password once parsed, unlike the raw URL
    params = client.connection_pool.connection_kwargs
    logger.info(
        "page store client created",
        extra={
            "redis_host": params.get("host", params.get("path")),
            "redis_port": params.get("port"),
            "redis_db": params.get("db", 0),
        },
    )
    return client
