"""Page fetchers: plain HTTP via httpx and rendered via a headless browser."""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import httpx
from playwright.async_api import (
    Browser,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .models import CrawlConfig, ScreenshotMode
from .urls import url_to_id

logger = logging.getLogger(__name__)

_ACCEPT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--window-size=1920,1080",
]

_RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    PlaywrightTimeoutError,
    ConnectionError,
    TimeoutError,
    socket.gaierror,
)

_RETRYABLE_MESSAGES = (
    "socket hang up",
    "econnreset",
    "econnrefused",
    "etimedout",
    "enotfound",
    "eai_again",
    "network request failed",
    "aborterror",
    "net::err_connection",
    "net::err_name_not_resolved",
    "net::err_timed_out",
    "net::err_aborted",
)


def is_retryable_error(exc: BaseException) -> bool:
    """True for transient network conditions worth another attempt."""
    if isinstance(exc, _RETRYABLE_EXCEPTIONS):
        return True
    message = str(exc).lower()
    return any(fragment in message for fragment in _RETRYABLE_MESSAGES)


@dataclass
class FetchResult:
    """Raw markup for one URL plus transport metadata."""

    url: str
    html: str
    status: int
    redirect_chain: list[str] = field(default_factory=list)
    screenshot: str | None = None
    final_url: str | None = None

    @property
    def base_url(self) -> str:
        """URL the markup was served from, used to resolve relative links."""
        return self.final_url or self.url


class PageFetcher(Protocol):
    """Protocol for fetch backends used by the crawler."""

    async def start(self) -> None: ...

    async def fetch(self, url: str) -> FetchResult: ...

    async def close(self) -> None: ...


class HttpFetcher:
    """Fetches raw HTML over HTTP, following and recording redirects."""

    def __init__(
        self,
        *,
        user_agent: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._user_agent = user_agent
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_config(cls, config: CrawlConfig) -> HttpFetcher:
        return cls(user_agent=config.user_agent, timeout=config.timeout_seconds)

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=self._timeout,
                headers={"User-Agent": self._user_agent, **_ACCEPT_HEADERS},
            )

    async def fetch(self, url: str) -> FetchResult:
        if self._client is None:
            raise RuntimeError("HttpFetcher.start() must be awaited before fetch()")
        resp = await self._client.get(url)
        return FetchResult(
            url=url,
            html=resp.text,
            status=resp.status_code,
            redirect_chain=[str(r.url) for r in resp.history],
            final_url=str(resp.url),
        )

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class BrowserRenderer:
    """Renders pages in headless Chromium via Playwright, optionally screenshotting."""

    def __init__(
        self,
        *,
        user_agent: str,
        timeout: float = 30.0,
        screenshot_mode: ScreenshotMode = "none",
        screenshot_dir: str = "screenshots",
    ) -> None:
        self._user_agent = user_agent
        self._timeout = timeout
        self._screenshot_mode = screenshot_mode
        self._screenshot_dir = Path(screenshot_dir)
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    @classmethod
    def from_config(cls, config: CrawlConfig) -> BrowserRenderer:
        return cls(
            user_agent=config.user_agent,
            timeout=config.timeout_seconds,
            screenshot_mode=config.screenshot_mode,
            screenshot_dir=config.screenshot_dir,
        )

    async def start(self) -> None:
        """Launch the browser. Failures propagate to the caller."""
        if self._browser is not None:
            return
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=True, args=_BROWSER_ARGS
            )
        except Exception:
            await self.close()
            raise
        logger.info("headless browser launched")

    async def fetch(self, url: str) -> FetchResult:
        return await self.render(url)

    async def render(self, url: str, *, full_page_screenshot: bool = False) -> FetchResult:
        """Navigate to *url* and return the rendered DOM.

        With *full_page_screenshot* a full-page capture is taken regardless of
        the configured screenshot mode.
        """
        if self._browser is None:
            raise RuntimeError("BrowserRenderer.start() must be awaited before render()")

        page = await self._browser.new_page(user_agent=self._user_agent)
        page.set_default_navigation_timeout(self._timeout * 1000)
        try:
            logger.debug("rendering", extra={"url": url})
            response = await page.goto(url, wait_until="domcontentloaded")
            html = await page.content()

            mode = "full_page" if full_page_screenshot else self._screenshot_mode
            screenshot: str | None = None
            if mode != "none":
                self._screenshot_dir.mkdir(parents=True, exist_ok=True)
                path = self._screenshot_dir / f"screenshot-{url_to_id(url)}.png"
                await page.screenshot(path=str(path), full_page=mode == "full_page")
                screenshot = str(path)

            redirect_chain: list[str] = []
            if response is not None:
                previous = response.request.redirected_from
                while previous is not None:
                    redirect_chain.append(previous.url)
                    previous = previous.redirected_from
                redirect_chain.reverse()

            return FetchResult(
                url=url,
                html=html,
                status=response.status if response is not None else 200,
                redirect_chain=redirect_chain,
                screenshot=screenshot,
                final_url=page.url,
            )
        finally:
            await page.close()

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
