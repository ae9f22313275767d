"""Tests for video detail lookups."""

from __future__ import annotations

import pytest

from app.services.cache import CacheManager
from app.services.comments import CommentService
from app.services.fetcher import BackgroundFetcher
from app.services.session import SessionManager
from app.services.video_info import VideoInfoService, VideoNotFoundError, build_video_detail

from innertube_fakes import CHANNEL_ID, FakeInnerTube, video_id

VIDEO = video_id(3)


def player_payload() -> dict:
    return {
        "playabilityStatus": {"status": "OK"},
        "videoDetails": {
            "title": "Night Lights | Example Artist",
            "shortDescription": "Singer: Jane Doe\nEnjoy the ride #synthwave",
            "author": "Example Channel",
            "channelId": CHANNEL_ID,
            "viewCount": "1500",
            "keywords": ["synthwave", "night drive"],
        },
        "microformat": {
            "playerMicroformatRenderer": {"category": "Music", "uploadDate": "2024-01-02"}
        },
    }


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def populated_fake() -> FakeInnerTube:
    fake = FakeInnerTube()
    fake.players[VIDEO] = player_payload()
    fake.watch_next[VIDEO] = {}
    fake.watch_pages[VIDEO] = '<script>var x = {"lengthSeconds":"215"};</script>'
    return fake


def build_service(settings, *fakes: FakeInnerTube):
    pending = list(fakes)
    sessions = SessionManager(settings, client_factory=lambda _: pending.pop(0))
    fetcher = BackgroundFetcher(settings.wait_poll_interval_seconds)
    caches = CacheManager(settings, fetcher)
    comments = CommentService(settings, sessions, caches, fetcher)
    return VideoInfoService(settings, sessions, caches, comments), fetcher


def test_build_video_detail_defaults() -> None:
    detail = build_video_detail("abc", {})

    assert detail.title == "Unknown"
    assert detail.duration == "N/A"
    assert detail.thumbnail == "https://i.ytimg.com/vi/abc/maxresdefault.jpg"
    assert detail.url == "https://www.youtube.com/watch?v=abc"
    assert detail.is_family_safe is True


@pytest.mark.anyio("asyncio")
async def test_video_info_merges_player_watch_page_and_comments(make_settings) -> None:
    fake = populated_fake()
    service, fetcher = build_service(make_settings(COMMENT_WAIT=5), fake)

    result = await service.get_video_info(VIDEO)

    video = result["video"]
    assert result["success"] is True
    assert video["title"] == "Night Lights | Example Artist"
    assert video["durationSeconds"] == 215
    assert video["duration"] == "3:35"
    assert video["artists"][:2] == ["Jane Doe", "Example Artist"]
    assert video["hashtags"] == ["#synthwave"]
    assert video["category"] == "Music"
    assert video["channel"]["id"] == CHANNEL_ID
    assert video["channel"]["url"] == f"https://www.youtube.com/channel/{CHANNEL_ID}"
    assert video["comments"]["items"] == []
    assert video["comments"]["isComplete"] is True

    await service.get_detail(VIDEO)
    assert fake.count("player") == 1
    await fetcher.stop()


@pytest.mark.anyio("asyncio")
async def test_failed_lookup_retries_on_fresh_session(make_settings) -> None:
    broken = FakeInnerTube()
    service, _ = build_service(make_settings(), broken, populated_fake())

    detail = await service.get_detail(VIDEO)

    assert detail.title == "Night Lights | Example Artist"
    assert broken.count("player") == 1


@pytest.mark.anyio("asyncio")
async def test_unplayable_video_is_not_found(make_settings) -> None:
    fake = FakeInnerTube()
    fake.players[VIDEO] = {"playabilityStatus": {"status": "ERROR"}}
    fake.watch_next[VIDEO] = {}
    service, _ = build_service(make_settings(), fake)

    with pytest.raises(VideoNotFoundError):
        await service.get_detail(VIDEO)


@pytest.mark.anyio("asyncio")
async def test_tags_are_empty_when_lookup_fails(make_settings) -> None:
    service, _ = build_service(make_settings(), FakeInnerTube(), FakeInnerTube())

    tags = await service.get_tags(VIDEO)

    assert tags == {"tags": [], "keywords": [], "category": None, "hashtags": []}
