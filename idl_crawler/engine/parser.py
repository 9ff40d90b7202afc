"""IDL candidate extraction and the WebIDL grammar adapter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, Sequence

import structlog
import widlparser
from selectolax.parser import HTMLParser


@dataclass(slots=True)
class GrammarResult:
    """Outcome of feeding one candidate text to the grammar parser."""

    ok: bool
    fragments: list[dict[str, Any]] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)


class GrammarParser(Protocol):
    def parse(self, text: str) -> GrammarResult:
        """Parse ``text``; ``ok`` is False when it is not WebIDL."""


class _CollectingUI:
    """widlparser UI sink that keeps warnings instead of printing them."""

    def __init__(self) -> None:
        self.warnings: list[str] = []
        self.notes: list[str] = []

    def warn(self, message: str) -> None:
        self.warnings.append(message.strip())

    def note(self, message: str) -> None:
        self.notes.append(message.strip())


class WidlGrammar:
    """GrammarParser backed by ``widlparser``."""

    def parse(self, text: str) -> GrammarResult:
        ui = _CollectingUI()
        parser = widlparser.Parser(text, ui)
        constructs = list(parser.constructs)
        if ui.warnings or not constructs:
            return GrammarResult(ok=False, messages=ui.warnings)
        fragments = [
            {
                "type": construct.idl_type,
                "name": construct.name,
                "idl": str(construct).strip(),
            }
            for construct in constructs
        ]
        return GrammarResult(ok=True, fragments=fragments, messages=ui.notes)


def extract_idl_blocks(html: str | bytes, selectors: Sequence[str]) -> list[str]:
    """Return the text of every IDL block in ``html``, in document order."""

    if isinstance(html, bytes):
        html = html.decode("utf-8", errors="replace")
    tree = HTMLParser(html)
    blocks: list[str] = []
    for node in tree.css(", ".join(selectors)):
        text = node.text(deep=True)
        if text and text.strip():
            blocks.append(text)
    return blocks


def whole_document(payload: str | bytes) -> list[str]:
    """Treat a raw IDL file as a single candidate."""

    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    return [payload] if payload.strip() else []


def parse_candidates(
    url: str,
    candidates: Iterable[str],
    grammar: GrammarParser,
    logger: structlog.BoundLogger,
) -> list[dict[str, Any]]:
    """Concatenate fragments from every candidate that parses."""

    parses: list[dict[str, Any]] = []
    for text in candidates:
        result = grammar.parse(text)
        if result.ok:
            logger.info("storing_parse", url=url, length=len(text), fragments=len(result.fragments), outcome="win")
            parses.extend(result.fragments)
        else:
            logger.warning("not_idl", url=url, length=len(text), messages=result.messages[:3])
    return parses


__all__ = [
    "GrammarParser",
    "GrammarResult",
    "WidlGrammar",
    "extract_idl_blocks",
    "parse_candidates",
    "whole_document",
]
