"""HTTP and local-file fetching backed by the raw-bytes cache."""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import structlog

from ..config import HttpConfig
from ..errors import FetchFailure
from .cache import CacheNamespace


class HttpFetcher:
    """Fetch URLs with ``httpx.AsyncClient``, reusing cached bytes when present."""

    def __init__(
        self,
        http_config: HttpConfig,
        url_cache: CacheNamespace,
        logger: structlog.BoundLogger | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.http_config = http_config
        self.url_cache = url_cache
        self.logger = logger or structlog.get_logger("idl_crawler.fetcher")
        headers = {"User-Agent": http_config.user_agent} if http_config.user_agent else None
        self._client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=http_config.timeout,
            headers=headers,
            transport=transport,
        )
        self._gate = asyncio.Semaphore(http_config.max_connections)

    async def fetch(self, url: str) -> bytes:
        cached = self.url_cache.get(url)
        if cached is not None:
            self.logger.debug("found_cached", url=url)
            return cached
        self.logger.info("loading", url=url)
        async with self._gate:
            try:
                response = await self._client.get(url)
                response.raise_for_status()
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                self.logger.error("load_error", url=url, error=str(exc))
                raise FetchFailure(url, str(exc)) from exc
        payload = response.content
        self.url_cache.put(url, payload)
        self.logger.info("loaded", url=url, size=len(payload))
        return payload

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(self, *_exc) -> None:
        await self.close()


async def read_local(path: str | Path) -> bytes:
    """Read a local file without blocking the event loop."""

    target = Path(path)
    try:
        return await asyncio.to_thread(target.read_bytes)
    except OSError as exc:
        raise FetchFailure(str(target), str(exc)) from exc


__all__ = ["HttpFetcher", "read_local"]
