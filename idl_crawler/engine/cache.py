"""Disk-backed content cache for raw page bytes and parse records."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

import structlog

from .canonical import filename_for
from .records import ParseRecord


def atomic_write(path: Path, payload: bytes) -> None:
    """Replace ``path`` with ``payload`` without exposing a partial file."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as stream:
            stream.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class CacheNamespace:
    """One directory of cache entries addressed by canonical URL."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, url: str) -> Path:
        return self.directory / filename_for(url)

    def get(self, url: str) -> bytes | None:
        path = self.path_for(url)
        if not path.is_file():
            return None
        return path.read_bytes()

    def put(self, url: str, payload: bytes) -> None:
        atomic_write(self.path_for(url), payload)

    def invalidate(self, url: str) -> None:
        self.path_for(url).unlink(missing_ok=True)

    def prepare(self) -> None:
        if self.directory.exists() and not self.directory.is_dir():
            raise NotADirectoryError(f"Cache path exists but is not a directory: {self.directory}")
        self.directory.mkdir(parents=True, exist_ok=True)


class ContentCache:
    """Pair of namespaces: fetched bytes and extracted parse records."""

    def __init__(
        self,
        raw_dir: Path,
        parses_dir: Path,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.raw = CacheNamespace(raw_dir)
        self.parses = CacheNamespace(parses_dir)
        self.logger = logger or structlog.get_logger("idl_crawler.cache")

    def prepare(self) -> None:
        self.raw.prepare()
        self.parses.prepare()

    def get_record(self, url: str) -> ParseRecord | None:
        payload = self.parses.get(url)
        if payload is None:
            return None
        try:
            return ParseRecord.from_dict(json.loads(payload.decode("utf-8")))
        except (UnicodeDecodeError, ValueError) as exc:
            self.logger.warning("cache_entry_corrupt", url=url, error=str(exc))
            return None

    def put_record(self, record: ParseRecord) -> None:
        body = json.dumps(record.to_dict(), sort_keys=True, ensure_ascii=False)
        self.parses.put(record.url, body.encode("utf-8"))

    def invalidate(self, url: str) -> None:
        self.raw.invalidate(url)
        self.parses.invalidate(url)


__all__ = ["CacheNamespace", "ContentCache", "atomic_write"]
