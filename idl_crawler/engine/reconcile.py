"""Decide which per-URL record is authoritative across scrape passes.

Scraping dynamic pages is flaky: a page may render only part of its IDL
before the snapshot is taken. A lower fragment count than the stored
dataset is therefore treated as suspect and retried once with more
patience. The stored record is never replaced by a smaller one unless the
caller opts into accepting confirmed regressions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

import structlog

from .records import ParseRecord, index_by_url, sort_records


class Resolution(str, Enum):
    NO_SECOND_PASS_DATA = "no_second_pass_data"
    NEW_DATA = "new_data"
    SECOND_PASS_LOWER = "second_pass_lower"
    CONFIRMED = "confirmed"
    BELOW_PRIOR = "below_prior"
    ACCEPTED = "accepted"


@dataclass(slots=True)
class RetryDecision:
    url: str
    resolution: Resolution
    kept: str  # "first", "second" or "prior"
    first_count: int | None
    second_count: int | None
    prior_count: int | None


def plan_retries(
    first_pass: Iterable[ParseRecord],
    prior: Iterable[ParseRecord] | None,
    logger: structlog.BoundLogger | None = None,
) -> list[str]:
    """URLs whose first-pass data is missing or smaller than the prior dataset."""

    log = logger or structlog.get_logger("idl_crawler.reconcile")
    if prior is None:
        return []
    current = index_by_url(first_pass)
    retry: list[str] = []
    for prior_record in prior:
        record = current.get(prior_record.url)
        if record is None:
            if prior_record.count > 0:
                log.warning("previously_known_url_missing", url=prior_record.url)
                retry.append(prior_record.url)
        elif record.count < prior_record.count:
            log.warning(
                "parse_count_decreased",
                url=prior_record.url,
                previous=prior_record.count,
                current=record.count,
            )
            retry.append(prior_record.url)
    return retry


def _choose(
    url: str,
    first: ParseRecord | None,
    second: ParseRecord | None,
    prior: ParseRecord | None,
    log: structlog.BoundLogger,
) -> tuple[Resolution, str]:
    if second is None or second.count == 0:
        log.warning("no_second_pass_data", url=url)
        return Resolution.NO_SECOND_PASS_DATA, "first"
    if first is None:
        return Resolution.NEW_DATA, "second"
    if second.count < first.count:
        log.warning("second_pass_decreased", url=url, first=first.count, second=second.count)
        return Resolution.SECOND_PASS_LOWER, "first"
    if second.count == first.count:
        log.info("decrease_confirmed", url=url, count=first.count, outcome="win")
        return Resolution.CONFIRMED, "first"
    if prior is not None and second.count < prior.count:
        log.warning(
            "second_pass_below_prior", url=url, prior=prior.count, second=second.count
        )
        return Resolution.BELOW_PRIOR, "first"
    log.info(
        "second_pass_accepted",
        url=url,
        prior=prior.count if prior else None,
        second=second.count,
        outcome="win",
    )
    return Resolution.ACCEPTED, "second"


def resolve_retries(
    first_pass: Sequence[ParseRecord],
    second_pass: Sequence[ParseRecord],
    prior: Sequence[ParseRecord] | None,
    retry_urls: Iterable[str],
    *,
    accept_confirmed_regressions: bool = False,
    logger: structlog.BoundLogger | None = None,
) -> tuple[list[ParseRecord], list[RetryDecision]]:
    """Merge second-pass results into a copy of the first pass.

    Returns the merged records sorted by URL plus one decision per retry URL.
    The first-pass collection itself is never mutated.
    """

    log = logger or structlog.get_logger("idl_crawler.reconcile")
    firsts = index_by_url(first_pass)
    merged = dict(firsts)
    seconds = index_by_url(second_pass)
    priors = index_by_url(prior or [])
    decisions: list[RetryDecision] = []

    for url in retry_urls:
        first = firsts.get(url)
        second = seconds.get(url)
        prior_record = priors.get(url)
        resolution, kept = _choose(url, first, second, prior_record, log)
        chosen = second if kept == "second" else first

        chosen_count = chosen.count if chosen is not None else 0
        if prior_record is not None and chosen_count < prior_record.count:
            confirmed = resolution is Resolution.CONFIRMED and accept_confirmed_regressions
            if not confirmed:
                log.warning(
                    "parse_count_regression_kept_prior",
                    url=url,
                    prior=prior_record.count,
                    candidate=chosen_count,
                )
                chosen, kept = prior_record, "prior"

        if chosen is not None:
            merged[url] = chosen
        decisions.append(
            RetryDecision(
                url=url,
                resolution=resolution,
                kept=kept,
                first_count=first.count if first else None,
                second_count=second.count if second else None,
                prior_count=prior_record.count if prior_record else None,
            )
        )

    return sort_records(merged.values()), decisions


__all__ = ["Resolution", "RetryDecision", "plan_retries", "resolve_retries"]
