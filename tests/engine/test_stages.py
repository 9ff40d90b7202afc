from __future__ import annotations

import asyncio

from conftest import FakeGrammar, idl_text, spec_page
from idl_crawler.engine.stages import (
    SourceFile,
    filter_spec_urls,
    find_urls,
    parse_webidl,
    scrape_html_for_webidl,
    scrape_urls_from_file,
)
from idl_crawler.errors import FetchFailure


class FakeFetcher:
    def __init__(self, pages: dict[str, str]) -> None:
        self.pages = pages
        self.calls: list[str] = []

    async def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        if url not in self.pages:
            raise FetchFailure(url, "HTTP 500")
        return self.pages[url].encode("utf-8")


def test_find_urls_strips_fragments_and_punctuation() -> None:
    text = (
        "// Spec: https://dom.spec.whatwg.org/#interface-node.\n"
        "// See (https://w3c.github.io/uievents/), and https://dom.spec.whatwg.org/#x\n"
    )
    assert find_urls(text) == ["https://dom.spec.whatwg.org/", "https://w3c.github.io/uievents/"]


def test_scrape_urls_from_file_memoizes_on_content() -> None:
    memo = scrape_urls_from_file()

    async def scenario() -> list[list[str]]:
        return [
            await memo.run(SourceFile("a.idl", "https://a.test/x")),
            await memo.run(SourceFile("b.idl", "https://a.test/x")),
        ]

    assert asyncio.run(scenario()) == [["https://a.test/x"], ["https://a.test/x"]]
    assert memo.calls == 1


def test_filter_spec_urls_keeps_matches_canonicalized() -> None:
    memo = filter_spec_urls([r"^https?://[^/]*\.spec\.whatwg\.org/", r"^https?://w3c\.github\.io/"])
    urls = [
        "http://dom.spec.whatwg.org/",
        "https://dom.spec.whatwg.org/",
        "https://example.com/",
        "https://w3c.github.io/uievents/",
    ]
    assert asyncio.run(memo.run(urls)) == [
        "https://dom.spec.whatwg.org/",
        "https://w3c.github.io/uievents/",
    ]
    assert memo.fan_out


def test_scrape_html_for_webidl_returns_blocks_or_nothing() -> None:
    fetcher = FakeFetcher({"https://a.test/": spec_page(idl_text("A"), idl_text("B"))})
    memo = scrape_html_for_webidl(fetcher, ["pre.idl"])

    async def scenario() -> list[list[str]]:
        return [
            await memo.run("https://a.test/"),
            await memo.run("https://a.test/"),
            await memo.run("https://down.test/"),
        ]

    blocks, again, failed = asyncio.run(scenario())
    assert blocks == ["interface A {};", "interface B {};"]
    assert again == blocks
    assert failed == []
    assert fetcher.calls == ["https://a.test/", "https://down.test/"]


def test_parse_webidl_drops_non_idl() -> None:
    memo = parse_webidl(FakeGrammar())

    async def scenario() -> list[list[dict]]:
        return [await memo.run(idl_text("A", "B")), await memo.run("<script>")]

    parsed, rejected = asyncio.run(scenario())
    assert [fragment["name"] for fragment in parsed] == ["A", "B"]
    assert rejected == []


def test_scrape_html_for_webidl_degrades_unexpected_errors() -> None:
    class ExplodingFetcher:
        async def fetch(self, url: str) -> bytes:
            raise UnicodeError("bad host label")

    memo = scrape_html_for_webidl(ExplodingFetcher(), ["pre.idl"])
    assert asyncio.run(memo.run("https://a.test/")) == []
