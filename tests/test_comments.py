"""Scenario tests for comment crawling."""

from __future__ import annotations

import asyncio

import pytest

from app.services.cache import CacheManager
from app.services.comments import (
    DISABLED_MESSAGE,
    CommentService,
    comment_cache_key,
    normalize_sort,
)
from app.services.fetcher import BackgroundFetcher
from app.services.innertube import UpstreamError
from app.services.session import SessionManager

from innertube_fakes import FakeInnerTube, comment_page, video_id, watch_next_with_comments

VIDEO = video_id(7)


def comment_ids(first: int, last: int) -> list[str]:
    return [f"comment-{n}" for n in range(first, last + 1)]


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def fake() -> FakeInnerTube:
    fake = FakeInnerTube()
    fake.watch_next[VIDEO] = watch_next_with_comments("comments-1")
    fake.continuations["comments-1"] = comment_page(comment_ids(1, 20), "comments-2")
    fake.continuations["comments-2"] = comment_page(comment_ids(21, 40), "comments-3")
    return fake


@pytest.fixture
def services(make_settings, fake):
    settings = make_settings(COMMENT_WAIT=5)
    sessions = SessionManager(settings, client_factory=lambda _: fake)
    fetcher = BackgroundFetcher(settings.wait_poll_interval_seconds)
    caches = CacheManager(settings, fetcher)
    return CommentService(settings, sessions, caches, fetcher), caches, fetcher


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, "top"), ("TOP", "top"), ("newest", "newest"), (" latest ", "newest"), ("x", "top")],
)
def test_normalize_sort(value, expected) -> None:
    assert normalize_sort(value) == expected


@pytest.mark.anyio("asyncio")
async def test_failure_mid_crawl_keeps_gathered_pages(services, fake) -> None:
    service, caches, fetcher = services
    fake.continuations["comments-3"] = UpstreamError("rate limited", status_code=429)

    result = await service.get_comments(VIDEO, 1, 100)

    assert result["success"] is True
    assert result["isComplete"] is True
    assert result["hasMore"] is False
    assert result["totalFetched"] == 40
    assert [comment["id"] for comment in result["comments"]] == comment_ids(1, 40)
    entry = caches.comments.get(comment_cache_key(VIDEO, "top"))
    assert entry is not None
    assert entry.error == "rate limited"
    await fetcher.stop()


@pytest.mark.anyio("asyncio")
async def test_later_window_resumes_from_stored_continuation(services, fake) -> None:
    service, _, fetcher = services

    first = await service.get_comments(VIDEO, 1, 20)
    assert first["totalFetched"] == 20
    assert first["isComplete"] is False
    assert first["hasMore"] is True

    second = await service.get_comments(VIDEO, 21, 40)
    assert [comment["id"] for comment in second["comments"]] == comment_ids(21, 40)
    assert fake.count("next") == 1
    assert fake.calls.count(("next_continuation", "comments-1")) == 1
    await fetcher.stop()


@pytest.mark.anyio("asyncio")
async def test_overlapping_windows_both_get_their_comments(services, fake) -> None:
    service, _, fetcher = services

    first, second = await asyncio.gather(
        service.get_comments(VIDEO, 1, 20), service.get_comments(VIDEO, 21, 40)
    )

    assert [comment["id"] for comment in first["comments"]] == comment_ids(1, 20)
    assert [comment["id"] for comment in second["comments"]] == comment_ids(21, 40)
    assert fake.count("next") == 1
    assert fake.calls.count(("next_continuation", "comments-2")) == 1
    await fetcher.stop()


@pytest.mark.anyio("asyncio")
async def test_disabled_comments_report_a_message(services, fake) -> None:
    service, _, fetcher = services
    fake.watch_next[VIDEO] = {"contents": {}}

    result = await service.get_comments(VIDEO)

    assert result["comments"] == []
    assert result["isComplete"] is True
    assert result["message"] == DISABLED_MESSAGE
    await fetcher.stop()


@pytest.mark.anyio("asyncio")
async def test_unreachable_video_raises(services, fake) -> None:
    service, caches, fetcher = services
    fake.watch_next.clear()

    with pytest.raises(UpstreamError):
        await service.get_comments(VIDEO)

    assert len(caches.comments) == 0
    await fetcher.stop()


@pytest.mark.anyio("asyncio")
async def test_status_and_clear(services) -> None:
    service, _, fetcher = services
    await service.get_comments(VIDEO, 1, 10)

    status = service.cache_status(VIDEO)
    assert status["exists"] is True
    assert status["itemCount"] == 20

    assert service.clear_cache(VIDEO)["cleared"] == 1
    assert service.cache_status(VIDEO)["exists"] is False
    await fetcher.stop()
