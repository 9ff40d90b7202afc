"""Memoized dataflow engine.

A ``Memo`` wraps a computation and a key function over its input. Running a
memo twice with inputs that produce the same key invokes the computation
once; a durable cache carries results across processes. ``bind`` chains
memos so each one's output feeds the next, letting different drivers share
identical fetch/filter/parse stages.
"""

from __future__ import annotations

import asyncio
import hashlib
import inspect
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator

import structlog

from ..errors import MalformedPipelineOutput
from .cache import atomic_write
from .canonical import filename_for

MISSING = object()


def content_key(*parts: Any) -> str:
    """Deterministic sha256 over the JSON form of ``parts``."""

    blob = json.dumps(parts, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


class FileMemoCache:
    """Durable memo cache: one JSON file per key."""

    def __init__(self, directory: Path, logger: structlog.BoundLogger | None = None) -> None:
        self.directory = directory
        self.logger = logger or structlog.get_logger("idl_crawler.memo")
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{filename_for(key)}.json"

    def get(self, key: str) -> Any:
        path = self._path(key)
        if not path.is_file():
            return MISSING
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            self.logger.warning("memo_cache_corrupt", key=key, error=str(exc))
            return MISSING

    def put(self, key: str, value: Any) -> None:
        body = json.dumps(value, sort_keys=True, ensure_ascii=False)
        atomic_write(self._path(key), body.encode("utf-8"))


@dataclass(slots=True)
class PipelineResult:
    """Output of one memo plus the results of the memos downstream of it."""

    output: Any
    delegates: list["PipelineResult"] = field(default_factory=list)
    fanned: bool = False

    def leaves(self) -> Iterator[Any]:
        if not self.delegates:
            yield self.output
            return
        for delegate in self.delegates:
            yield from delegate.leaves()

    def first_fanned(self) -> "PipelineResult | None":
        node: PipelineResult | None = self
        while node is not None:
            if node.fanned:
                return node
            node = node.delegates[0] if len(node.delegates) == 1 else None
        return None


class Memo:
    """A cached pipeline node."""

    def __init__(
        self,
        compute: Callable[[Any], Any],
        compute_key: Callable[[Any], str],
        cache: FileMemoCache | None = None,
        *,
        fan_out: bool = False,
        name: str | None = None,
    ) -> None:
        self.compute = compute
        self.compute_key = compute_key
        self.cache = cache
        self.fan_out = fan_out
        self.name = name or getattr(compute, "__name__", "memo")
        self.next: Memo | None = None
        self.binding: PipelineBinding | None = None
        self.calls = 0
        self._results: dict[str, Any] = {}
        self._pending: dict[str, asyncio.Future] = {}

    async def run(self, value: Any) -> Any:
        key = self.compute_key(value)
        if key in self._results:
            return self._results[key]
        # Waiters are shielded: cancelling one caller leaves the shared computation running.
        pending = self._pending.get(key)
        if pending is not None:
            return await asyncio.shield(pending)
        task = asyncio.ensure_future(self._compute(key, value))
        self._pending[key] = task
        task.add_done_callback(lambda _done: self._pending.pop(key, None))
        return await asyncio.shield(task)

    async def run_all(self, value: Any) -> PipelineResult:
        output = await self.run(value)
        if self.next is None:
            return PipelineResult(output=output)
        if not self.fan_out:
            return PipelineResult(output=output, delegates=[await self.next.run_all(output)])
        if not isinstance(output, (list, tuple)):
            raise MalformedPipelineOutput(
                f"Memo {self.name!r} fans out but produced {type(output).__name__}"
            )
        delegates = await asyncio.gather(*(self.next.run_all(item) for item in output))
        return PipelineResult(output=output, delegates=list(delegates), fanned=True)

    async def _compute(self, key: str, value: Any) -> Any:
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not MISSING:
                self._results[key] = cached
                return cached
        self.calls += 1
        result = self.compute(value)
        if inspect.isawaitable(result):
            result = await result
        if self.cache is not None:
            self.cache.put(key, result)
        self._results[key] = result
        return result


class PipelineBinding:
    """Chain of memos; ``head`` receives external input."""

    def __init__(self, memos: list[Memo]) -> None:
        if not memos:
            raise ValueError("Cannot bind an empty pipeline")
        for memo in memos:
            if memo.binding is not None:
                raise ValueError(f"Memo {memo.name!r} is already bound")
        for upstream, downstream in zip(memos, memos[1:]):
            upstream.next = downstream
        for memo in memos:
            memo.binding = self
        self.memos = memos
        self._bound = True

    @property
    def head(self) -> Memo:
        return self.memos[0]

    @property
    def bound(self) -> bool:
        return self._bound

    async def run_all(self, value: Any) -> PipelineResult:
        if not self._bound:
            raise RuntimeError("Pipeline binding has been detached")
        return await self.head.run_all(value)

    def unbind(self) -> None:
        if not self._bound:
            return
        for memo in self.memos:
            memo.next = None
            memo.binding = None
        self._bound = False


def bind(*memos: Memo) -> PipelineBinding:
    return PipelineBinding(list(memos))


__all__ = [
    "FileMemoCache",
    "MISSING",
    "Memo",
    "PipelineBinding",
    "PipelineResult",
    "bind",
    "content_key",
]
