"""Pagination crawler termination and merging."""

from __future__ import annotations

from typing import Any

import pytest

from app.services.cache import CacheEntry
from app.services.crawler import CrawlLimits, CrawlOutcome, crawl
from app.services.innertube import UpstreamError


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


class Record:
    def __init__(self, record_id: str) -> None:
        self.id = record_id


def page(ids: list[str], token: str | None) -> dict[str, Any]:
    return {"ids": ids, "token": token}


def items(payload: dict[str, Any]) -> list[Record]:
    return [Record(record_id) for record_id in payload["ids"]]


def token(payload: dict[str, Any]) -> str | None:
    return payload["token"]


class Pages:
    def __init__(self, pages: dict[str, Any]) -> None:
        self.pages = pages
        self.requested: list[str] = []

    async def __call__(self, next_token: str) -> dict[str, Any]:
        self.requested.append(next_token)
        value = self.pages[next_token]
        if isinstance(value, Exception):
            raise value
        return value


async def no_sleep(_: float) -> None:
    return None


@pytest.mark.anyio("asyncio")
async def test_crawl_runs_until_exhausted() -> None:
    entry: CacheEntry[Record] = CacheEntry(key="k")
    fetch = Pages({"t2": page(["c", "d"], "t3"), "t3": page(["e"], None)})

    report = await crawl(
        page(["a", "b"], "t2"),
        entry=entry,
        extract_items=items,
        extract_token=token,
        fetch_page=fetch,
        limits=CrawlLimits(max_pages=10),
        sleep=no_sleep,
    )

    assert report.outcome is CrawlOutcome.EXHAUSTED
    assert report.pages == 3
    assert [item.id for item in entry.items] == ["a", "b", "c", "d", "e"]
    assert entry.continuation is None
    assert not entry.is_complete


@pytest.mark.anyio("asyncio")
async def test_crawl_stops_after_stalled_pages() -> None:
    entry: CacheEntry[Record] = CacheEntry(key="k")
    endless = {f"t{n}": page(["a"], f"t{n + 1}") for n in range(1, 100)}

    report = await crawl(
        page(["a"], "t1"),
        entry=entry,
        extract_items=items,
        extract_token=token,
        fetch_page=Pages(endless),
        limits=CrawlLimits(max_pages=50, stall_threshold=3),
        sleep=no_sleep,
    )

    assert report.outcome is CrawlOutcome.STALLED
    assert report.pages == 4
    assert len(entry.items) == 1


@pytest.mark.anyio("asyncio")
async def test_crawl_respects_page_ceiling_and_rate_limit() -> None:
    entry: CacheEntry[Record] = CacheEntry(key="k")
    endless = {f"t{n}": page([f"id{n}"], f"t{n + 1}") for n in range(1, 100)}
    pauses: list[float] = []

    async def record_sleep(delay: float) -> None:
        pauses.append(delay)

    report = await crawl(
        page(["id0"], "t1"),
        entry=entry,
        extract_items=items,
        extract_token=token,
        fetch_page=Pages(endless),
        limits=CrawlLimits(max_pages=7, rate_limit_every=3, rate_limit_delay=0.3),
        sleep=record_sleep,
    )

    assert report.outcome is CrawlOutcome.PAGE_LIMIT
    assert report.pages == 7
    assert len(entry.items) == 7
    assert pauses == [0.3, 0.3]
    assert entry.continuation == "t7"


@pytest.mark.anyio("asyncio")
async def test_crawl_keeps_items_when_a_page_fails() -> None:
    entry: CacheEntry[Record] = CacheEntry(key="k")
    fetch = Pages({"t2": page(["c"], "t3"), "t3": UpstreamError("connection reset")})

    report = await crawl(
        page(["a", "b"], "t2"),
        entry=entry,
        extract_items=items,
        extract_token=token,
        fetch_page=fetch,
        limits=CrawlLimits(max_pages=10),
        sleep=no_sleep,
    )

    assert report.outcome is CrawlOutcome.ERROR
    assert report.error == "connection reset"
    assert [item.id for item in entry.items] == ["a", "b", "c"]
    assert entry.strategies["crawl"] is report


@pytest.mark.anyio("asyncio")
async def test_crawl_stops_at_target_and_keeps_continuation() -> None:
    entry: CacheEntry[Record] = CacheEntry(key="k")
    fetch = Pages({"t2": page(["c", "d"], "t3")})

    report = await crawl(
        page(["a", "b"], "t2"),
        entry=entry,
        extract_items=items,
        extract_token=token,
        fetch_page=fetch,
        limits=CrawlLimits(max_pages=10, target_items=3),
        sleep=no_sleep,
    )

    assert report.outcome is CrawlOutcome.TARGET_REACHED
    assert entry.continuation == "t3"
    assert len(entry.items) == 4
