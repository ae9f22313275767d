"""Scenario tests for background-crawled channel video listings."""

from __future__ import annotations

import asyncio

import pytest

from app.services.cache import CacheManager
from app.services.channels import (
    PLAYLISTS_TAB_PARAMS,
    SHORTS_TAB_PARAMS,
    VIDEOS_TAB_PARAMS,
    ChannelNotFoundError,
    ChannelService,
    uploads_playlist_id,
)
from app.services.fetcher import BackgroundFetcher
from app.services.innertube import UpstreamError
from app.services.resolver import ChannelResolver
from app.services.session import SessionManager

from innertube_fakes import CHANNEL_ID, FakeInnerTube, video_id, video_page

HANDLE_URL = "https://www.youtube.com/@ExampleChannel"


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def fake() -> FakeInnerTube:
    fake = FakeInnerTube()
    fake.resolved[HANDLE_URL] = {"endpoint": {"browseEndpoint": {"browseId": CHANNEL_ID}}}
    fake.browses[(CHANNEL_ID, VIDEOS_TAB_PARAMS)] = video_page(list(range(1, 31)), "videos-2")
    fake.continuations["videos-2"] = video_page(list(range(31, 41)))
    fake.browses[(CHANNEL_ID, SHORTS_TAB_PARAMS)] = video_page([101, 102])
    fake.browses[(f"VL{uploads_playlist_id(CHANNEL_ID)}", None)] = video_page(
        list(range(35, 46))
    )
    return fake


def build_service(settings, fake):
    sessions = SessionManager(settings, client_factory=lambda _: fake)
    fetcher = BackgroundFetcher(settings.wait_poll_interval_seconds)
    caches = CacheManager(settings, fetcher)
    service = ChannelService(settings, sessions, ChannelResolver(sessions), caches, fetcher)
    return service, caches, fetcher


def test_uploads_playlist_id() -> None:
    assert uploads_playlist_id("UCabc") == "UUabc"


@pytest.mark.anyio("asyncio")
async def test_first_request_returns_while_crawl_continues(make_settings, fake) -> None:
    settings = make_settings(CHANNEL_WAIT=0)
    service, caches, fetcher = build_service(settings, fake)

    first = await service.get_videos("@ExampleChannel", 1, 20)

    assert first["success"] is True
    assert first["cacheStatus"] == "fetching"
    assert first["isComplete"] is False
    assert first["hasMore"] is True
    assert first["range"] == {"start": 1, "end": 20}
    assert first["channel"]["id"] == CHANNEL_ID

    await service.get_videos("@ExampleChannel", 1, 20)
    assert await fetcher.wait_for(caches.channels, CHANNEL_ID, None, 5) is True
    assert fake.calls.count(("browse", (CHANNEL_ID, VIDEOS_TAB_PARAMS))) == 1

    done = await service.get_videos("@ExampleChannel", 1, 20)
    assert done["cacheStatus"] == "complete"
    assert done["totalCached"] == 47
    assert done["totalVideos"] == 20
    assert done["hasMore"] is True
    assert [video["id"] for video in done["videos"]] == [video_id(n) for n in range(1, 21)]

    everything = await service.get_videos("@ExampleChannel", all_videos=True)
    ids = [video["id"] for video in everything["videos"]]
    assert len(ids) == len(set(ids)) == 47
    assert everything["range"] is None
    assert everything["hasMore"] is False

    await fetcher.stop()


@pytest.mark.anyio("asyncio")
async def test_window_waits_for_enough_items(make_settings, fake) -> None:
    service, _, fetcher = build_service(make_settings(CHANNEL_WAIT=5), fake)

    result = await service.get_videos(CHANNEL_ID, 21, 35)

    assert [video["id"] for video in result["videos"]] == [
        video_id(n) for n in range(21, 36)
    ]
    assert result["totalVideos"] == 15
    await fetcher.stop()


@pytest.mark.anyio("asyncio")
async def test_concurrent_first_requests_share_one_crawl(make_settings, fake) -> None:
    service, caches, fetcher = build_service(make_settings(CHANNEL_WAIT=5), fake)

    results = await asyncio.gather(
        *(service.get_videos("@ExampleChannel", 1, 10) for _ in range(3))
    )

    assert fake.calls.count(("browse", (CHANNEL_ID, VIDEOS_TAB_PARAMS))) == 1
    for result in results:
        assert [video["id"] for video in result["videos"]] == [
            video_id(n) for n in range(1, 11)
        ]
    assert len(caches.channels) == 1
    await fetcher.stop()


@pytest.mark.anyio("asyncio")
async def test_unknown_channel_raises_lookup_error(make_settings) -> None:
    service, _, _ = build_service(make_settings(), FakeInnerTube())

    with pytest.raises(ChannelNotFoundError):
        await service.get_videos("@missing", 1, 20)


@pytest.mark.anyio("asyncio")
async def test_crawl_with_nothing_cached_is_an_upstream_error(make_settings) -> None:
    service, caches, fetcher = build_service(make_settings(CHANNEL_WAIT=5), FakeInnerTube())

    with pytest.raises(UpstreamError):
        await service.get_videos(CHANNEL_ID, 1, 20)

    assert CHANNEL_ID not in caches.channels
    await fetcher.stop()


@pytest.mark.anyio("asyncio")
async def test_prefetch_status_and_clear(make_settings, fake) -> None:
    service, caches, fetcher = build_service(make_settings(), fake)

    started = await service.prefetch(CHANNEL_ID)
    assert started["started"] is True
    assert started["cacheStatus"] == "fetching"
    again = await service.prefetch(CHANNEL_ID)
    assert again["started"] is False

    await fetcher.wait_for(caches.channels, CHANNEL_ID, None, 5)
    status = await service.cache_status(CHANNEL_ID)
    assert status["exists"] is True
    assert status["itemCount"] == 47
    assert status["strategies"]["videos"]["outcome"] == "exhausted"
    assert status["strategies"]["live"]["outcome"] == "error"

    cleared = await service.clear_cache(CHANNEL_ID)
    assert cleared["cleared"] == 1
    assert (await service.cache_status(CHANNEL_ID))["exists"] is False


@pytest.mark.anyio("asyncio")
async def test_few_playlists_trigger_fresh_session_fallback(make_settings, fake) -> None:
    fake.browses[(CHANNEL_ID, None)] = {}
    fake.browses[(CHANNEL_ID, PLAYLISTS_TAB_PARAMS)] = {
        "contents": [
            {"gridPlaylistRenderer": {"playlistId": "PL1"}},
            {"gridPlaylistRenderer": {"playlistId": "PL2"}},
        ]
    }
    service, _, _ = build_service(make_settings(), fake)

    result = await service.get_with_playlists("@ExampleChannel")

    assert result["channel"]["id"] == CHANNEL_ID
    assert result["playlists"] == ["PL1", "PL2"]
    assert result["totalPlaylists"] == 2
    assert fake.calls.count(("browse", (CHANNEL_ID, PLAYLISTS_TAB_PARAMS))) == 2
