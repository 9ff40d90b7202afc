from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from idl_crawler.engine.memo import (
    MISSING,
    FileMemoCache,
    Memo,
    PipelineResult,
    bind,
    content_key,
)
from idl_crawler.errors import MalformedPipelineOutput


def _upper() -> Memo:
    return Memo(compute=lambda text: text.upper(), compute_key=lambda text: text, name="upper")


def test_content_key_is_order_insensitive_for_mappings() -> None:
    assert content_key({"a": 1, "b": 2}) == content_key({"b": 2, "a": 1})
    assert content_key("x") != content_key("y")


def test_same_key_computes_once() -> None:
    memo = _upper()

    async def scenario() -> list[str]:
        return [await memo.run("a"), await memo.run("a"), await memo.run("b")]

    assert asyncio.run(scenario()) == ["A", "A", "B"]
    assert memo.calls == 2


def test_concurrent_runs_share_in_flight_computation() -> None:
    async def slow(value: str) -> str:
        await asyncio.sleep(0.01)
        return value * 2

    memo = Memo(compute=slow, compute_key=lambda value: value)

    async def scenario() -> list[str]:
        return list(await asyncio.gather(*(memo.run("x") for _ in range(5))))

    assert asyncio.run(scenario()) == ["xx"] * 5
    assert memo.calls == 1


def test_file_cache_survives_new_memo(tmp_path: Path) -> None:
    cache = FileMemoCache(tmp_path / "memo")
    first = Memo(compute=lambda n: [n, n + 1], compute_key=lambda n: content_key("pair", n), cache=cache)
    assert asyncio.run(first.run(3)) == [3, 4]

    second = Memo(compute=lambda n: pytest.fail("recomputed"), compute_key=lambda n: content_key("pair", n), cache=cache)
    assert asyncio.run(second.run(3)) == [3, 4]
    assert second.calls == 0


def test_corrupt_file_cache_entry_is_missing(tmp_path: Path) -> None:
    cache = FileMemoCache(tmp_path / "memo")
    cache.put("k", {"v": 1})
    assert cache.get("k") == {"v": 1}
    next(cache.directory.iterdir()).write_text("{broken", encoding="utf-8")
    assert cache.get("k") is MISSING
    assert cache.get("absent") is MISSING


def test_bound_pipeline_fans_out() -> None:
    split = Memo(compute=lambda text: text.split(), compute_key=lambda text: text, fan_out=True)
    upper = _upper()
    binding = bind(split, upper)

    result = asyncio.run(binding.run_all("a b a"))

    assert result.fanned
    assert result.output == ["a", "b", "a"]
    assert list(result.leaves()) == ["A", "B", "A"]
    assert upper.calls == 2
    assert result.first_fanned() is result


def test_first_fanned_walks_single_delegates() -> None:
    inner = PipelineResult(output=["u"], delegates=[PipelineResult(output=1)], fanned=True)
    outer = PipelineResult(output="text", delegates=[inner])
    assert outer.first_fanned() is inner
    assert PipelineResult(output="x").first_fanned() is None


def test_fan_out_requires_list_output() -> None:
    bad = Memo(compute=lambda value: value, compute_key=lambda value: str(value), fan_out=True)
    binding = bind(bad, _upper())
    with pytest.raises(MalformedPipelineOutput):
        asyncio.run(binding.run_all("not a list"))


def test_bind_rejects_bound_memo_and_unbind_is_idempotent() -> None:
    head, tail = _upper(), _upper()
    binding = bind(head, tail)
    with pytest.raises(ValueError):
        bind(tail)

    binding.unbind()
    binding.unbind()
    assert not binding.bound
    assert head.next is None and tail.binding is None
    with pytest.raises(RuntimeError):
        asyncio.run(binding.run_all("x"))

    rebound = bind(tail, head)
    assert rebound.head is tail
    assert asyncio.run(rebound.run_all("x")).output == "X"


def test_bind_requires_memos() -> None:
    with pytest.raises(ValueError):
        bind()


def test_cancelled_caller_does_not_cancel_shared_computation() -> None:
    async def scenario() -> tuple[str, Memo]:
        release = asyncio.Event()

        async def gated(value: str) -> str:
            await release.wait()
            return value.upper()

        memo = Memo(compute=gated, compute_key=lambda value: value)
        first = asyncio.ensure_future(memo.run("x"))
        await asyncio.sleep(0)
        second = asyncio.ensure_future(memo.run("x"))
        await asyncio.sleep(0)
        first.cancel()
        await asyncio.sleep(0)
        release.set()
        return await second, memo

    result, memo = asyncio.run(scenario())
    assert result == "X"
    assert memo.calls == 1
