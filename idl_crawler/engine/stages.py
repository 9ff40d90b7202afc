"""Standard pipeline stages shared by the local-file and remote drivers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Sequence

import structlog

from ..errors import FetchFailure
from .canonical import canonicalize
from .fetcher import HttpFetcher
from .memo import FileMemoCache, Memo, content_key
from .parser import GrammarParser, extract_idl_blocks

_URL_PATTERN = re.compile(r"https?://[^\s\"'<>()\[\]{}\\]+")
_TRAILING_PUNCTUATION = ".,;:!?*"


@dataclass(frozen=True, slots=True)
class SourceFile:
    """Pipeline input in local-file mode: a path relative to the root plus its text."""

    path: str
    text: str


def find_urls(text: str) -> list[str]:
    """All http(s) URLs in ``text``, fragments removed, first occurrence order."""

    seen: dict[str, None] = {}
    for match in _URL_PATTERN.finditer(text):
        url = match.group(0).rstrip(_TRAILING_PUNCTUATION).split("#", 1)[0]
        if url:
            seen.setdefault(url, None)
    return list(seen)


def scrape_urls_from_file(cache: FileMemoCache | None = None) -> Memo:
    return Memo(
        compute=lambda source: find_urls(source.text),
        compute_key=lambda source: content_key("urls", source.text),
        cache=cache,
        name="scrape_urls_from_file",
    )


def filter_spec_urls(patterns: Sequence[str]) -> Memo:
    compiled = [re.compile(pattern) for pattern in patterns]

    def _filter(urls: list[str]) -> list[str]:
        matching = [url for url in urls if any(p.search(url) for p in compiled)]
        return canonicalize(matching)

    return Memo(
        compute=_filter,
        compute_key=lambda urls: content_key("filter", sorted(urls), list(patterns)),
        fan_out=True,
        name="filter_spec_urls",
    )


def scrape_html_for_webidl(
    fetcher: HttpFetcher,
    selectors: Sequence[str],
    logger: structlog.BoundLogger | None = None,
) -> Memo:
    log = logger or structlog.get_logger("idl_crawler.stages")

    async def _scrape(url: str) -> list[str]:
        try:
            html = await fetcher.fetch(url)
        except FetchFailure as exc:
            log.error("spec_fetch_failed", url=url, error=exc.reason)
            return []
        except Exception as exc:  # noqa: BLE001
            log.error("spec_fetch_failed", url=url, error=str(exc), error_type=type(exc).__name__)
            return []
        blocks = extract_idl_blocks(html, selectors)
        log.info("idl_blocks_found", url=url, blocks=len(blocks))
        return blocks

    return Memo(
        compute=_scrape,
        compute_key=lambda url: url,
        fan_out=True,
        name="scrape_html_for_webidl",
    )


def parse_webidl(
    grammar: GrammarParser,
    cache: FileMemoCache | None = None,
    logger: structlog.BoundLogger | None = None,
) -> Memo:
    log = logger or structlog.get_logger("idl_crawler.stages")

    def _parse(text: str) -> list[dict[str, Any]]:
        result = grammar.parse(text)
        if not result.ok:
            log.warning("not_idl", length=len(text), messages=result.messages[:3])
            return []
        return result.fragments

    return Memo(
        compute=_parse,
        compute_key=lambda text: content_key("parse", text),
        cache=cache,
        name="parse_webidl",
    )


__all__ = [
    "SourceFile",
    "filter_spec_urls",
    "find_urls",
    "parse_webidl",
    "scrape_html_for_webidl",
    "scrape_urls_from_file",
]
