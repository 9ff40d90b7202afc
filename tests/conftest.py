"""Pytest configuration providing shared fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from idl_crawler.config import ConfigLocator, GlobalConfig
from idl_crawler.config.loader import HOME_ENV_VAR
from idl_crawler.context import RunContext, build_context
from idl_crawler.engine.parser import GrammarResult
from idl_crawler.engine.records import ParseRecord


class FakeGrammar:
    """Accepts text made only of ``interface X ...`` lines; one fragment per line."""

    def __init__(self) -> None:
        self.calls = 0

    def parse(self, text: str) -> GrammarResult:
        self.calls += 1
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if not lines or not all(line.startswith("interface ") for line in lines):
            return GrammarResult(ok=False, messages=["not interface text"])
        fragments = [
            {"type": "interface", "name": line.split()[1], "idl": line} for line in lines
        ]
        return GrammarResult(ok=True, fragments=fragments)


def idl_text(*names: str) -> str:
    return "\n".join(f"interface {name} {{}};" for name in names)


def spec_page(*blocks: str) -> str:
    body = "".join(f'<pre class="idl">{block}</pre>' for block in blocks)
    return f"<html><body><p>intro</p>{body}</body></html>"


def make_record(url: str, count: int) -> ParseRecord:
    return ParseRecord(
        url=url,
        parses=[{"type": "interface", "name": f"I{i}", "idl": f"interface I{i} {{}};"} for i in range(count)],
    )


@pytest.fixture
def locator(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigLocator:
    monkeypatch.setenv(HOME_ENV_VAR, str(tmp_path))
    return ConfigLocator(project_root=tmp_path)


@pytest.fixture
def grammar() -> FakeGrammar:
    return FakeGrammar()


@pytest.fixture
def make_context(locator: ConfigLocator, grammar: FakeGrammar) -> Callable[..., RunContext]:
    def _builder(**overrides: Any) -> RunContext:
        config = GlobalConfig(**overrides) if overrides else None
        return build_context(locator, grammar=grammar, config=config)

    return _builder


@pytest.fixture
def context(make_context: Callable[..., RunContext]) -> RunContext:
    return make_context()
