"""Local-file driver: follow spec links found in ``*.idl`` files to their WebIDL."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .context import RunContext
from .engine.dataset import DatasetStore
from .engine.fetcher import HttpFetcher, read_local
from .engine.memo import FileMemoCache, Memo, PipelineResult, bind, content_key
from .engine.records import ParseRecord, total_fragments
from .engine.stages import (
    SourceFile,
    filter_spec_urls,
    parse_webidl,
    scrape_html_for_webidl,
    scrape_urls_from_file,
)
from .errors import FetchFailure, MalformedPipelineOutput
from .logging_conf import win
from .orchestrator import FetcherFactory, RunOptions, RunSummary, require_options


@dataclass(frozen=True, slots=True)
class RunAccumulator:
    """Which files reference each URL and the fragments parsed from it."""

    urls_to_files: dict[str, list[str]] = field(default_factory=dict)
    urls_to_parses: dict[str, list[Any]] = field(default_factory=dict)

    def to_records(self) -> list[ParseRecord]:
        return [
            ParseRecord(
                url=url,
                files=sorted(files),
                parses=list(self.urls_to_parses.get(url, [])),
            )
            for url, files in sorted(self.urls_to_files.items())
        ]


def gather(accumulator: RunAccumulator, file: str, result: PipelineResult) -> RunAccumulator:
    """Fold one file's pipeline result into a new accumulator."""

    fanned = result.first_fanned()
    if fanned is None:
        return accumulator
    urls = fanned.output
    if len(fanned.delegates) != len(urls):
        raise MalformedPipelineOutput(
            f"{file}: {len(urls)} URLs but {len(fanned.delegates)} delegate results"
        )

    urls_to_files = {url: list(files) for url, files in accumulator.urls_to_files.items()}
    urls_to_parses = dict(accumulator.urls_to_parses)
    for url, delegate in zip(urls, fanned.delegates):
        parses: list[Any] = []
        for leaf in delegate.leaves():
            if not isinstance(leaf, list):
                raise MalformedPipelineOutput(
                    f"{file}: expected fragment list for {url}, got {type(leaf).__name__}"
                )
            parses.extend(leaf)
        files = urls_to_files.setdefault(url, [])
        if file not in files:
            files.append(file)
        urls_to_parses[url] = parses
    return RunAccumulator(urls_to_files=urls_to_files, urls_to_parses=urls_to_parses)


class LinkedRunner:
    """Glob local IDL files and resolve the spec URLs they link to."""

    def __init__(self, context: RunContext, fetcher_factory: FetcherFactory | None = None) -> None:
        self.context = context
        self.logger = context.bind(runner="import_linked")
        self.fetcher_factory = fetcher_factory or self._default_fetcher
        self.options: RunOptions | None = None
        self.summary = RunSummary()
        self.running = False
        self._store: Memo | None = None

    def start(self) -> None:
        self.context.cache.prepare()

    def configure(self, options: RunOptions) -> None:
        if options.root is None:
            raise ValueError("LinkedRunner requires a root directory")
        self.options = options
        self._store = self._store_memo(DatasetStore(options.output, logger=self.logger))

    async def run(self) -> list[ParseRecord]:
        if self.running:
            raise RuntimeError("LinkedRunner already running")
        options = require_options(self.options)
        self.running = True
        config = self.context.config
        fetcher = self.fetcher_factory()
        binding = bind(
            scrape_urls_from_file(),
            filter_spec_urls(config.spec_url_patterns),
            scrape_html_for_webidl(fetcher, config.idl_selectors, logger=self.logger),
            parse_webidl(
                self.context.grammar,
                cache=FileMemoCache(self.context.locator.memo_cache_path("parse_webidl")),
                logger=self.logger,
            ),
        )
        try:
            root = options.root.resolve()
            paths = sorted(p for p in root.rglob(f"*{options.extension}") if p.is_file())
            self.logger.info("files_found", root=str(root), files=len(paths))
            results = await asyncio.gather(
                *(self._process_file(binding.run_all, root, path) for path in paths)
            )

            accumulator = RunAccumulator()
            for item in results:
                if item is not None:
                    accumulator = gather(accumulator, *item)

            self.logger.info("storing_data", urls=len(accumulator.urls_to_files))
            payload = await self._store.run(accumulator)
        finally:
            binding.unbind()
            await fetcher.close()
            self.running = False

        written = [ParseRecord.from_dict(item) for item in payload]
        count = total_fragments(written)
        win(self.logger, "wrote_fragments", fragments=count, urls=len(written), path=str(options.output))
        self.summary = RunSummary(urls=len(written), fragments=count)
        return written

    async def _process_file(self, run_all, root: Path, path: Path) -> tuple[str, PipelineResult] | None:
        relative = path.relative_to(root).as_posix()
        try:
            raw = await read_local(path)
        except FetchFailure as exc:
            self.logger.error("file_read_failed", file=relative, error=exc.reason)
            return None
        source = SourceFile(path=relative, text=raw.decode("utf-8", errors="replace"))
        return relative, await run_all(source)

    def _store_memo(self, store: DatasetStore) -> Memo:
        def _store(accumulator: RunAccumulator) -> list[dict[str, Any]]:
            return [record.to_dict() for record in store.write(accumulator.to_records())]

        return Memo(
            compute=_store,
            compute_key=lambda acc: content_key(
                str(store.path), acc.urls_to_files, acc.urls_to_parses
            ),
            name="store",
        )

    def _default_fetcher(self) -> HttpFetcher:
        return HttpFetcher(self.context.config.http, self.context.cache.raw, logger=self.logger)


__all__ = ["LinkedRunner", "RunAccumulator", "gather"]
