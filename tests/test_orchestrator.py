from __future__ import annotations

import asyncio
import gc
import json
from pathlib import Path

import httpx
import pytest

from conftest import idl_text, make_record, spec_page
from idl_crawler.engine.dataset import DatasetStore
from idl_crawler.engine.fetcher import HttpFetcher
from idl_crawler.engine.reconcile import Resolution
from idl_crawler.errors import FetchFailure
from idl_crawler.orchestrator import (
    HttpImportRunner,
    IdlImportRunner,
    RunOptions,
    load_url_list,
    run_fatal,
)

SPEC = "https://a.test/spec/"
OTHER = "https://b.test/spec/"


class FakePool:
    def __init__(self, pass_config, pages: dict[str, str]) -> None:
        self.pass_config = pass_config
        self.pages = pages
        self.scraped: list[str] = []
        self.destroyed = 0

    async def scrape(self, url: str) -> bytes:
        self.scraped.append(url)
        if url not in self.pages:
            raise FetchFailure(url, "timed out")
        return self.pages[url].encode("utf-8")

    async def destroy(self) -> None:
        self.destroyed += 1


class PoolFactory:
    def __init__(self, *passes: dict[str, str]) -> None:
        self.passes = list(passes)
        self.pools: list[FakePool] = []

    def __call__(self, pass_config) -> FakePool:
        pool = FakePool(pass_config, self.passes[len(self.pools)])
        self.pools.append(pool)
        return pool


def _names(count: int) -> list[str]:
    return [f"I{i}" for i in range(count)]


def _http_runner(context, factory: PoolFactory, output: Path, urls: list[str]) -> HttpImportRunner:
    runner = HttpImportRunner(context, pool_factory=factory)
    runner.start()
    runner.configure(RunOptions(output=output, urls=urls))
    return runner


def test_first_run_without_history_scrapes_once(context, tmp_path: Path) -> None:
    output = tmp_path / "out.json"
    factory = PoolFactory(
        {SPEC: spec_page(idl_text("A", "B")), OTHER: spec_page(idl_text("C"))},
    )
    runner = _http_runner(context, factory, output, ["http://a.test/spec", SPEC, OTHER])

    records = run_fatal(runner.run(), context.logger)

    assert [(record.url, record.count) for record in records] == [(SPEC, 2), (OTHER, 1)]
    assert len(factory.pools) == 1
    assert factory.pools[0].destroyed == 1
    assert sorted(factory.pools[0].scraped) == [SPEC, OTHER]
    assert runner.summary.fragments == 3
    assert runner.summary.retried == []
    stored = json.loads(output.read_text(encoding="utf-8"))
    assert [item["url"] for item in stored] == [SPEC, OTHER]


def test_retry_pass_recovers_dropped_fragments(context, tmp_path: Path) -> None:
    output = tmp_path / "out.json"
    DatasetStore(output).write([make_record(SPEC, 3), make_record(OTHER, 1)])
    factory = PoolFactory(
        {SPEC: spec_page(idl_text(*_names(2))), OTHER: spec_page(idl_text("C"))},
        {SPEC: spec_page(idl_text(*_names(4)))},
    )
    runner = _http_runner(context, factory, output, [SPEC, OTHER])

    records = run_fatal(runner.run(), context.logger)

    counts = {record.url: record.count for record in records}
    assert counts == {SPEC: 4, OTHER: 1}
    assert len(factory.pools) == 2
    assert factory.pools[1].pass_config == context.config.retry_pass
    assert factory.pools[1].scraped == [SPEC]
    assert all(pool.destroyed == 1 for pool in factory.pools)
    assert runner.summary.retried == [SPEC]
    assert runner.summary.decisions[0].resolution is Resolution.ACCEPTED
    assert context.cache.get_record(SPEC).count == 4


def test_retry_below_history_keeps_history(context, tmp_path: Path) -> None:
    output = tmp_path / "out.json"
    DatasetStore(output).write([make_record(SPEC, 5)])
    factory = PoolFactory(
        {SPEC: spec_page(idl_text(*_names(2)))},
        {SPEC: spec_page(idl_text(*_names(3)))},
    )
    runner = _http_runner(context, factory, output, [SPEC])

    records = run_fatal(runner.run(), context.logger)

    assert records[0].count == 5
    assert records[0].parses == make_record(SPEC, 5).parses
    assert runner.summary.decisions[0].kept == "prior"


def test_failed_urls_are_reported_and_pool_still_destroyed(context, tmp_path: Path) -> None:
    factory = PoolFactory({SPEC: spec_page(idl_text("A"))})
    runner = _http_runner(context, factory, tmp_path / "out.json", [SPEC, OTHER])

    records = run_fatal(runner.run(), context.logger)

    assert [record.count for record in records] == [1, 0]
    assert runner.summary.failures == [OTHER]
    assert factory.pools[0].destroyed == 1


def test_malformed_url_aborts_run(context, tmp_path: Path) -> None:
    factory = PoolFactory({})
    runner = _http_runner(context, factory, tmp_path / "out.json", ["ftp://a.test/"])
    with pytest.raises(ValueError):
        run_fatal(runner.run(), context.logger)
    assert factory.pools == []


def test_run_requires_configure(context) -> None:
    runner = HttpImportRunner(context, pool_factory=PoolFactory())
    with pytest.raises(RuntimeError):
        run_fatal(runner.run(), context.logger)


def test_idl_import_writes_every_url(context, tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/dom.idl":
            return httpx.Response(200, text=idl_text("Node", "Element"))
        return httpx.Response(404)

    def fetcher_factory() -> HttpFetcher:
        return HttpFetcher(context.config.http, context.cache.raw, transport=httpx.MockTransport(handler))

    output = tmp_path / "idl.json"
    runner = IdlImportRunner(context, fetcher_factory=fetcher_factory)
    runner.start()
    runner.configure(
        RunOptions(output=output, urls=["https://x.test/gone.idl", "https://x.test/dom.idl", "https://x.test/dom.idl"])
    )

    records = run_fatal(runner.run(), context.logger)

    assert [(record.url, record.count) for record in records] == [
        ("https://x.test/dom.idl", 2),
        ("https://x.test/gone.idl", 0),
    ]
    assert runner.summary.failures == ["https://x.test/gone.idl"]
    assert DatasetStore(output).load() == records


def test_load_url_list(tmp_path: Path) -> None:
    text_file = tmp_path / "urls.txt"
    text_file.write_text("# specs\nhttps://a.test/\n\n  https://b.test/  \n", encoding="utf-8")
    assert load_url_list(text_file) == ["https://a.test/", "https://b.test/"]

    json_file = tmp_path / "urls.json"
    json_file.write_text('["https://a.test/"]', encoding="utf-8")
    assert load_url_list(json_file) == ["https://a.test/"]

    json_file.write_text('[1, 2]', encoding="utf-8")
    with pytest.raises(ValueError):
        load_url_list(json_file)


def test_run_fatal_returns_and_reraises(context) -> None:
    async def ok() -> int:
        return 7

    async def broken() -> None:
        raise LookupError("boom")

    assert run_fatal(ok(), context.logger) == 7
    with pytest.raises(LookupError):
        run_fatal(broken(), context.logger)


def test_run_fatal_reraises_unhandled_background_failure(context) -> None:
    async def leaks_failure() -> str:
        async def explode() -> None:
            raise KeyError("lost")

        asyncio.ensure_future(explode())
        await asyncio.sleep(0.01)
        gc.collect()
        await asyncio.sleep(0)
        return "done"

    with pytest.raises(KeyError):
        run_fatal(leaks_failure(), context.logger)
