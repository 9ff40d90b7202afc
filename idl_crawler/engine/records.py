"""Per-URL parse records and helpers for keyed collections of them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping


@dataclass(slots=True)
class ParseRecord:
    """WebIDL fragments extracted from one canonical URL."""

    url: str
    parses: list[Any] = field(default_factory=list)
    files: list[str] | None = None

    @property
    def count(self) -> int:
        return len(self.parses)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"url": self.url, "parses": list(self.parses)}
        if self.files is not None:
            payload["files"] = list(self.files)
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ParseRecord":
        if not isinstance(payload, Mapping):
            raise ValueError(f"Parse record must be a mapping, got {type(payload).__name__}")
        url = payload.get("url")
        parses = payload.get("parses")
        if not isinstance(url, str) or not isinstance(parses, list):
            raise ValueError("Parse record requires string 'url' and list 'parses'")
        files = payload.get("files")
        if files is not None and not isinstance(files, list):
            raise ValueError("Parse record 'files' must be a list when present")
        return cls(url=url, parses=parses, files=files)


def index_by_url(records: Iterable[ParseRecord]) -> dict[str, ParseRecord]:
    """Map url -> record; later duplicates win."""

    return {record.url: record for record in records}


def sort_records(records: Iterable[ParseRecord]) -> list[ParseRecord]:
    return sorted(records, key=lambda record: record.url)


def total_fragments(records: Iterable[ParseRecord]) -> int:
    return sum(record.count for record in records)


__all__ = ["ParseRecord", "index_by_url", "sort_records", "total_fragments"]
