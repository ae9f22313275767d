"""Continuation-token pagination shared by every crawled listing."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from ..config import Settings
from .cache import CacheEntry, ItemKey, record_id
from .innertube import UpstreamError

logger = logging.getLogger(__name__)

Page = dict[str, Any]


class CrawlOutcome(str, Enum):
    EXHAUSTED = "exhausted"
    STALLED = "stalled"
    PAGE_LIMIT = "page_limit"
    TARGET_REACHED = "target_reached"
    ERROR = "error"


@dataclass(slots=True)
class CrawlLimits:
    """Stop conditions and pacing for one crawl."""

    max_pages: int
    stall_threshold: int = 5
    rate_limit_every: int = 20
    rate_limit_delay: float = 0.3
    target_items: int | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        max_pages: int,
        *,
        target_items: int | None = None,
        rate_limit_every: int | None = None,
    ) -> "CrawlLimits":
        return cls(
            max_pages=max_pages,
            stall_threshold=settings.crawl_stall_threshold,
            rate_limit_every=(
                settings.crawl_rate_limit_every
                if rate_limit_every is None
                else rate_limit_every
            ),
            rate_limit_delay=settings.crawl_rate_limit_delay_seconds,
            target_items=target_items,
        )


@dataclass(slots=True)
class CrawlReport:
    label: str
    outcome: CrawlOutcome
    pages: int = 0
    admitted: int = 0
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "pages": self.pages,
            "admitted": self.admitted,
            "error": self.error,
        }


async def crawl(
    seed: Page,
    *,
    entry: CacheEntry[Any],
    extract_items: Callable[[Page], Iterable[Any]],
    extract_token: Callable[[Page], str | None],
    fetch_page: Callable[[str], Awaitable[Page]],
    limits: CrawlLimits,
    item_key: ItemKey = record_id,
    label: str = "crawl",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> CrawlReport:
    """Merge ``seed`` and every following page into ``entry``.

    The crawl stops when no continuation is left, after ``stall_threshold``
    consecutive pages admit nothing new, at the page ceiling, at the target
    item count, or when an upstream call fails. Gathered items are kept in
    every case. The entry is not marked complete here; that is the owning
    job's decision.
    """

    page = seed
    pages = 0
    admitted_total = 0
    empty_streak = 0
    error: str | None = None

    while True:
        admitted = entry.merge(extract_items(page), item_key)
        pages += 1
        admitted_total += admitted
        empty_streak = 0 if admitted else empty_streak + 1
        token = extract_token(page)
        entry.continuation = token

        if not token:
            outcome = CrawlOutcome.EXHAUSTED
            break
        if limits.target_items is not None and len(entry.items) >= limits.target_items:
            outcome = CrawlOutcome.TARGET_REACHED
            break
        if empty_streak >= limits.stall_threshold:
            outcome = CrawlOutcome.STALLED
            break
        if pages >= limits.max_pages:
            outcome = CrawlOutcome.PAGE_LIMIT
            break

        if limits.rate_limit_every and pages % limits.rate_limit_every == 0:
            await sleep(limits.rate_limit_delay)

        try:
            page = await fetch_page(token)
        except UpstreamError as exc:
            logger.warning("%s stopped after %s pages: %s", label, pages, exc)
            outcome = CrawlOutcome.ERROR
            error = str(exc)
            break

    report = CrawlReport(
        label=label,
        outcome=outcome,
        pages=pages,
        admitted=admitted_total,
        error=error,
    )
    entry.strategies[label] = report
    logger.info(
        "%s finished (%s): %s pages, %s new items, %s cached",
        label,
        outcome.value,
        pages,
        admitted_total,
        len(entry.items),
    )
    return report
