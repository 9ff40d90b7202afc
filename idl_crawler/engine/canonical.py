"""URL canonicalisation: collapse scheme and trailing-slash variants."""

from __future__ import annotations

import re
from typing import Iterable

from ..errors import MalformedURL

_SCHEME_PATTERN = re.compile(r"^(https?)://(.*)$")
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


def split_scheme(url: str) -> tuple[str, str]:
    match = _SCHEME_PATTERN.match(url)
    if not match:
        raise MalformedURL(url)
    return match.group(1), match.group(2)


def canonicalize(urls: Iterable[str]) -> list[str]:
    """Return one representative per set of scheme/trailing-slash variants.

    The slash-terminated form wins over the bare form, and ``https`` wins
    over ``http`` whenever both were observed for the same location.
    """

    schemes_by_rest: dict[str, set[str]] = {}
    for url in urls:
        scheme, rest = split_scheme(url.strip())
        schemes_by_rest.setdefault(rest, set()).add(scheme)

    for rest in list(schemes_by_rest):
        slashed = rest + "/"
        if rest.endswith("/") or slashed not in schemes_by_rest:
            continue
        schemes_by_rest[slashed] |= schemes_by_rest.pop(rest)

    # "https" sorts after "http".
    return sorted(
        f"{sorted(schemes)[-1]}://{rest}" for rest, schemes in schemes_by_rest.items()
    )


def filename_for(url: str) -> str:
    """Filesystem-safe cache key for a canonical URL."""

    return _UNSAFE_CHARS.sub("_", url)


__all__ = ["canonicalize", "filename_for", "split_scheme"]
