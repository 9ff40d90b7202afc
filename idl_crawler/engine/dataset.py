"""Durable dataset file: one JSON array of parse records sorted by URL."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

import structlog

from .cache import atomic_write
from .records import ParseRecord, sort_records, total_fragments


def dumps_records(records: Iterable[ParseRecord]) -> str:
    return json.dumps(
        [record.to_dict() for record in records],
        sort_keys=True,
        indent=2,
        ensure_ascii=False,
    )


class DatasetStore:
    """Load the previous dataset and atomically write the next one."""

    def __init__(self, path: Path, logger: structlog.BoundLogger | None = None) -> None:
        self.path = Path(path)
        self.logger = logger or structlog.get_logger("idl_crawler.dataset")

    def load(self) -> list[ParseRecord] | None:
        """Return the stored records, or ``None`` when absent or unreadable."""

        if not self.path.is_file():
            self.logger.warning("no_previous_data", path=str(self.path))
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(payload, list):
                raise ValueError("dataset must be a JSON array")
            return [ParseRecord.from_dict(item) for item in payload]
        except (UnicodeDecodeError, ValueError) as exc:
            self.logger.warning("previous_data_corrupt", path=str(self.path), error=str(exc))
            return None

    def write(self, records: Iterable[ParseRecord]) -> list[ParseRecord]:
        ordered = sort_records(records)
        seen: set[str] = set()
        for record in ordered:
            if record.url in seen:
                raise ValueError(f"Dataset may hold at most one record per URL: {record.url}")
            seen.add(record.url)
        atomic_write(self.path, dumps_records(ordered).encode("utf-8"))
        self.logger.info(
            "dataset_written",
            path=str(self.path),
            fragments=total_fragments(ordered),
            urls=len(ordered),
        )
        return ordered


__all__ = ["DatasetStore", "dumps_records"]
