"""Exception taxonomy shared across the acquisition pipeline."""

from __future__ import annotations


class MalformedURL(ValueError):
    """Raw URL does not carry an http/https scheme."""

    def __init__(self, url: str) -> None:
        super().__init__(f"URL must start with http:// or https://: {url!r}")
        self.url = url


class FetchFailure(RuntimeError):
    """Network or browser automation failed for a single URL."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class NoIdlFound(RuntimeError):
    """Content was fetched but no candidate text parsed as WebIDL."""

    def __init__(self, url: str, candidates: int) -> None:
        super().__init__(f"Expected parse success from {url} ({candidates} candidates)")
        self.url = url
        self.candidates = candidates


class MalformedPipelineOutput(RuntimeError):
    """A pipeline result cannot be aligned with the expected cardinality."""


class WorkerCrashed(RuntimeError):
    """Browser session behind a scrape worker is gone."""


class PoolExhausted(RuntimeError):
    """Every worker in the scrape pool is dead."""


class PoolDestroyed(RuntimeError):
    """Scrape requested from a pool that was already torn down."""


__all__ = [
    "FetchFailure",
    "MalformedPipelineOutput",
    "MalformedURL",
    "NoIdlFound",
    "PoolDestroyed",
    "PoolExhausted",
    "WorkerCrashed",
]
