"""Tests for playlist crawling."""

from __future__ import annotations

import pytest

from app.services.cache import CacheManager
from app.services.fetcher import BackgroundFetcher
from app.services.innertube import UpstreamError
from app.services.playlists import PlaylistService, normalize_playlist_id
from app.services.session import SessionManager

from innertube_fakes import FakeInnerTube, video_id, video_page


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("PL123", "PL123"),
        ("VLPL123", "PL123"),
        ("https://www.youtube.com/playlist?list=PL123&si=abc", "PL123"),
        ("  ", ""),
    ],
)
def test_normalize_playlist_id(value, expected) -> None:
    assert normalize_playlist_id(value) == expected


def build_service(settings, fake):
    sessions = SessionManager(settings, client_factory=lambda _: fake)
    fetcher = BackgroundFetcher(settings.wait_poll_interval_seconds)
    return PlaylistService(settings, sessions, CacheManager(settings, fetcher), fetcher), fetcher


@pytest.mark.anyio("asyncio")
async def test_playlist_follows_continuations(make_settings) -> None:
    fake = FakeInnerTube()
    fake.browses[("VLPL123", None)] = video_page([1, 2, 3, 4, 5], "playlist-2")
    fake.continuations["playlist-2"] = video_page([5, 6, 7, 8])
    service, fetcher = build_service(make_settings(PLAYLIST_WAIT=5), fake)

    result = await service.get_playlist("https://www.youtube.com/playlist?list=PL123", 1, 20)

    assert result["playlist"]["id"] == "PL123"
    assert result["isComplete"] is True
    assert result["totalCached"] == 8
    assert [video["id"] for video in result["videos"]] == [video_id(n) for n in range(1, 9)]
    await fetcher.stop()


@pytest.mark.anyio("asyncio")
async def test_missing_playlist_raises(make_settings) -> None:
    service, fetcher = build_service(make_settings(PLAYLIST_WAIT=5), FakeInnerTube())

    with pytest.raises(UpstreamError):
        await service.get_playlist("PL404")
    with pytest.raises(ValueError):
        await service.get_playlist("   ")
    await fetcher.stop()
