"""Acquisition stage: cache lookup, fetch, extract and parse for one URL."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, Sequence

import structlog

from ..errors import NoIdlFound
from .cache import ContentCache
from .parser import GrammarParser, extract_idl_blocks, parse_candidates
from .records import ParseRecord

FetchFn = Callable[[str], Awaitable[bytes]]
ExtractFn = Callable[[bytes], list[str]]


class Acquirer:
    """Turn a canonical URL into a ``ParseRecord``, caching successful parses."""

    def __init__(
        self,
        cache: ContentCache,
        fetch: FetchFn,
        extract: ExtractFn,
        grammar: GrammarParser,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.cache = cache
        self.fetch = fetch
        self.extract = extract
        self.grammar = grammar
        self.logger = logger or structlog.get_logger("idl_crawler.acquire")

    async def acquire(self, url: str) -> ParseRecord:
        log = self.logger.bind(stage="acquire", url=url)
        cached = self.cache.get_record(url)
        if cached is not None:
            log.info("found_cached_idl", fragments=cached.count)
            return cached

        raw = await self.fetch(url)
        candidates = self.extract(raw)
        parses = parse_candidates(url, candidates, self.grammar, log)
        if not parses:
            raise NoIdlFound(url, len(candidates))

        record = ParseRecord(url=url, parses=parses)
        self.cache.put_record(record)
        return record

    async def acquire_or_empty(self, url: str, failures: list[str] | None = None) -> ParseRecord:
        """Like ``acquire`` but degrade any per-URL failure to an empty record."""

        try:
            return await self.acquire(url)
        except NoIdlFound as exc:
            self.logger.warning("no_idl_found", url=url, candidates=exc.candidates)
        except Exception as exc:  # noqa: BLE001
            self.logger.error(
                "acquire_failed", url=url, error=str(exc), error_type=type(exc).__name__
            )
        if failures is not None:
            failures.append(url)
        return ParseRecord(url=url, parses=[])

    async def acquire_all(
        self, urls: Iterable[str], failures: list[str] | None = None
    ) -> list[ParseRecord]:
        """Run one scrape pass; concurrency is bounded by the fetch capability."""

        return list(
            await asyncio.gather(*(self.acquire_or_empty(url, failures) for url in urls))
        )


def extractor_for(selectors: Sequence[str]) -> ExtractFn:
    return lambda raw: extract_idl_blocks(raw, selectors)


__all__ = ["Acquirer", "ExtractFn", "FetchFn", "extractor_for"]
