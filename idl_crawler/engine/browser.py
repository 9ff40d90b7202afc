"""Playwright-backed browser instances and the per-job page scraper."""

from __future__ import annotations

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ..config import BrowserCapabilities
from ..errors import FetchFailure, WorkerCrashed
from .cache import CacheNamespace


class PlaywrightInstance:
    """One long-lived browser session: playwright, browser, context and page."""

    def __init__(self, timeout: float, capabilities: BrowserCapabilities) -> None:
        self.timeout = timeout
        self.capabilities = capabilities
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        self._closed = False

    async def start(self) -> None:
        if self._playwright is not None:
            return
        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, self.capabilities.browser_name)
        self._browser = await launcher.launch(headless=self.capabilities.headless)
        width, height = self.capabilities.viewport_size
        self._context = await self._browser.new_context(
            viewport={"width": width, "height": height},
            ignore_https_errors=True,
        )
        self._context.set_default_navigation_timeout(self.timeout * 1000)
        self._page = await self._context.new_page()

    def alive(self) -> bool:
        if self._closed:
            return False
        if self._browser is None:
            return True
        return self._browser.is_connected() and not self._page.is_closed()

    async def load(self, url: str, page_load_wait: float) -> str:
        if not self.alive() or self._page is None:
            raise WorkerCrashed(f"Browser session unavailable while loading {url}")
        try:
            await self._page.goto(url, wait_until="domcontentloaded", timeout=self.timeout * 1000)
            # Give page scripts time to render IDL blocks.
            await self._page.wait_for_timeout(page_load_wait * 1000)
            return await self._page.content()
        except PlaywrightTimeoutError as exc:
            raise FetchFailure(url, f"Playwright timeout: {exc}") from exc
        except PlaywrightError as exc:
            if not self.alive():
                raise WorkerCrashed(str(exc)) from exc
            raise FetchFailure(url, str(exc)) from exc

    async def close(self) -> None:
        self._closed = True
        page, context, browser, driver = self._page, self._context, self._browser, self._playwright
        self._page = self._context = self._browser = self._playwright = None
        # Each layer closes even when the one above it is already gone.
        try:
            try:
                try:
                    if page is not None:
                        await page.close()
                finally:
                    if context is not None:
                        await context.close()
            finally:
                if browser is not None:
                    await browser.close()
        finally:
            if driver is not None:
                await driver.stop()


class PlaywrightScraper:
    """Per-job behaviour: serve cached bytes or load the page and cache it."""

    def __init__(
        self,
        page_load_wait: float,
        url_cache: CacheNamespace,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.page_load_wait = page_load_wait
        self.url_cache = url_cache
        self.logger = logger or structlog.get_logger("idl_crawler.browser")

    async def scrape(self, instance: PlaywrightInstance, url: str) -> bytes:
        cached = self.url_cache.get(url)
        if cached is not None:
            self.logger.debug("found_cached", url=url)
            return cached
        self.logger.info("scraping", url=url, page_load_wait=self.page_load_wait)
        html = await instance.load(url, self.page_load_wait)
        payload = html.encode("utf-8")
        self.url_cache.put(url, payload)
        return payload


__all__ = ["PlaywrightInstance", "PlaywrightScraper"]
