"""Runners for remote acquisition: pooled browser scraping and plain HTTP import."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol, TypeVar

import structlog

from .config import PassConfig
from .context import RunContext
from .engine.acquire import Acquirer, extractor_for
from .engine.canonical import canonicalize
from .engine.dataset import DatasetStore
from .engine.fetcher import HttpFetcher
from .engine.parser import whole_document
from .engine.reconcile import RetryDecision, plan_retries, resolve_retries
from .engine.records import ParseRecord, total_fragments
from .engine.scrape_pool import ScrapePoolManager, playwright_pool
from .logging_conf import win

T = TypeVar("T")

PoolFactory = Callable[[PassConfig], ScrapePoolManager]
FetcherFactory = Callable[[], HttpFetcher]


@dataclass(slots=True)
class RunOptions:
    """Inputs for a single runner invocation."""

    output: Path
    urls: list[str] = field(default_factory=list)
    root: Path | None = None
    extension: str = ".idl"


@dataclass(slots=True)
class RunSummary:
    urls: int = 0
    fragments: int = 0
    failures: list[str] = field(default_factory=list)
    retried: list[str] = field(default_factory=list)
    decisions: list[RetryDecision] = field(default_factory=list)


class Runner(Protocol):
    """Capability set shared by every driver variant."""

    summary: RunSummary

    def start(self) -> None: ...

    def configure(self, options: RunOptions) -> None: ...

    async def run(self) -> list[ParseRecord]: ...


def load_url_list(path: Path) -> list[str]:
    """Read URLs from a JSON array or a line-oriented text file."""

    text = path.read_text(encoding="utf-8")
    if text.lstrip().startswith("["):
        payload = json.loads(text)
        if not isinstance(payload, list) or not all(isinstance(u, str) for u in payload):
            raise ValueError(f"URL file must contain a JSON array of strings: {path}")
        return payload
    urls = []
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            urls.append(line)
    return urls


class HttpImportRunner:
    """Scrape pages through a browser pool, then reconcile against stored data."""

    def __init__(self, context: RunContext, pool_factory: PoolFactory | None = None) -> None:
        self.context = context
        self.logger = context.bind(runner="import_http")
        self.pool_factory = pool_factory or self._playwright_pool
        self.options: RunOptions | None = None
        self.summary = RunSummary()

    def start(self) -> None:
        self.context.cache.prepare()

    def configure(self, options: RunOptions) -> None:
        self.options = options

    async def run(self) -> list[ParseRecord]:
        options = require_options(self.options)
        config = self.context.config
        urls = canonicalize(options.urls)
        self.logger.info("scrape_start", urls=len(urls))

        failures: list[str] = []
        first_pass = await self.scrape_pass(urls, config.first_pass, failures)
        self.logger.info("first_pass_complete", urls=len(first_pass), failed=failures)

        store = DatasetStore(options.output, logger=self.logger)
        prior = store.load()
        retry_urls = plan_retries(first_pass, prior, logger=self.logger)
        self.logger.info("retrying", urls=len(retry_urls))
        for url in retry_urls:
            self.context.cache.invalidate(url)

        retry_failures: list[str] = []
        second_pass: list[ParseRecord] = []
        if retry_urls:
            second_pass = await self.scrape_pass(retry_urls, config.retry_pass, retry_failures)
            self.logger.info("retry_pass_complete", urls=len(second_pass), failed=retry_failures)

        records, decisions = resolve_retries(
            first_pass,
            second_pass,
            prior,
            retry_urls,
            accept_confirmed_regressions=config.reconcile.accept_confirmed_regressions,
            logger=self.logger,
        )
        written = store.write(records)
        count = total_fragments(written)
        win(self.logger, "wrote_fragments", fragments=count, urls=len(written), path=str(options.output))
        self.summary = RunSummary(
            urls=len(written),
            fragments=count,
            failures=failures,
            retried=retry_urls,
            decisions=decisions,
        )
        return written

    async def scrape_pass(
        self, urls: list[str], pass_config: PassConfig, failures: list[str]
    ) -> list[ParseRecord]:
        pool = self.pool_factory(pass_config)
        try:
            acquirer = Acquirer(
                self.context.cache,
                pool.scrape,
                extractor_for(self.context.config.idl_selectors),
                self.context.grammar,
                logger=self.logger,
            )
            return await acquirer.acquire_all(urls, failures)
        finally:
            await pool.destroy()

    def _playwright_pool(self, pass_config: PassConfig) -> ScrapePoolManager:
        return playwright_pool(
            pass_config,
            self.context.config.browser,
            self.context.cache.raw,
            logger=self.logger,
        )


class IdlImportRunner:
    """Load raw IDL files over HTTP; every URL contributes one record."""

    def __init__(self, context: RunContext, fetcher_factory: FetcherFactory | None = None) -> None:
        self.context = context
        self.logger = context.bind(runner="import_idl")
        self.fetcher_factory = fetcher_factory or self._default_fetcher
        self.options: RunOptions | None = None
        self.summary = RunSummary()

    def start(self) -> None:
        self.context.cache.prepare()

    def configure(self, options: RunOptions) -> None:
        self.options = options

    async def run(self) -> list[ParseRecord]:
        options = require_options(self.options)
        urls = sorted(set(options.urls))
        failures: list[str] = []
        async with self.fetcher_factory() as fetcher:
            acquirer = Acquirer(
                self.context.cache,
                fetcher.fetch,
                whole_document,
                self.context.grammar,
                logger=self.logger,
            )
            records = await acquirer.acquire_all(urls, failures)
        written = DatasetStore(options.output, logger=self.logger).write(records)
        count = total_fragments(written)
        win(self.logger, "wrote_fragments", fragments=count, urls=len(written), path=str(options.output))
        self.summary = RunSummary(urls=len(written), fragments=count, failures=failures)
        return written

    def _default_fetcher(self) -> HttpFetcher:
        return HttpFetcher(self.context.config.http, self.context.cache.raw, logger=self.logger)


def require_options(options: RunOptions | None) -> RunOptions:
    if options is None:
        raise RuntimeError("Runner.configure() must be called before run()")
    return options


def run_fatal(main: Awaitable[T], logger: structlog.BoundLogger) -> T:
    """Run ``main`` on a fresh loop; unhandled async failures abort the run.

    Exceptions that escape background tasks are logged with their traceback
    and re-raised once ``main`` settles, so the process exits non-zero
    instead of leaving partial state behind.
    """

    async def _wrapper() -> T:
        loop = asyncio.get_running_loop()
        unhandled: list[BaseException] = []

        def _handler(_loop: asyncio.AbstractEventLoop, ctx: dict[str, Any]) -> None:
            exc = ctx.get("exception")
            logger.error("unhandled_async_failure", message=ctx.get("message"), exc_info=exc)
            unhandled.append(exc or RuntimeError(str(ctx.get("message"))))

        loop.set_exception_handler(_handler)
        result = await main
        if unhandled:
            raise unhandled[0]
        return result

    try:
        return asyncio.run(_wrapper())
    except Exception as exc:
        logger.error("run_failed", error=str(exc), exc_info=exc)
        raise


__all__ = [
    "HttpImportRunner",
    "IdlImportRunner",
    "RunOptions",
    "RunSummary",
    "Runner",
    "load_url_list",
    "require_options",
    "run_fatal",
]
