"""Tests for payload normalization."""

from __future__ import annotations

from app.extraction import (
    extract_videos,
    find_comment_section_token,
    find_continuation_token,
    parse_comments,
    parse_search_results,
    parse_suggestions,
    parse_video_detail_fields,
    video_detail_root,
    visit,
)
from app.models import ChannelResultRecord, VideoRecord

from innertube_fakes import (
    CHANNEL_ID,
    channel_result,
    comment_page,
    continuation_item,
    video_id,
    video_page,
    video_renderer,
    watch_next_with_comments,
)


def test_extract_videos_from_renderers() -> None:
    videos = extract_videos(video_page([1, 2], token="next"))

    assert [video.id for video in videos] == [video_id(1), video_id(2)]
    first = videos[0]
    assert first.title == "Video 1"
    assert first.duration == "3:25"
    assert first.duration_seconds == 205
    assert first.view_count == 1234
    assert first.channel.id == CHANNEL_ID
    assert first.channel.handle == "@ExampleChannel"
    assert first.url == f"https://www.youtube.com/watch?v={video_id(1)}"
    assert first.thumbnail == f"https://i.ytimg.com/vi/{video_id(1)}/hqdefault.jpg"


def test_missing_fields_degrade_to_defaults() -> None:
    videos = extract_videos({"items": [{"videoRenderer": {"videoId": video_id(7)}}]})

    assert len(videos) == 1
    record = videos[0]
    assert record.title == "Unknown"
    assert record.views == "N/A"
    assert record.view_count == 0
    assert record.duration == "N/A"
    assert record.channel.name == "Unknown"


def test_generic_scan_recovers_unknown_renderers() -> None:
    payload = {"mysteryRenderer": {"inner": {"videoId": video_id(9), "title": {"simpleText": "Odd"}}}}

    videos = extract_videos(payload)

    assert [video.title for video in videos] == ["Odd"]


def test_shorts_lockups_are_flagged() -> None:
    payload = {
        "richItemRenderer": {
            "content": {
                "shortsLockupViewModel": {
                    "entityId": f"shorts-shelf-item-{video_id(3)}",
                    "overlayMetadata": {
                        "primaryText": {"content": "Short clip"},
                        "secondaryText": {"content": "12K views"},
                    },
                }
            }
        }
    }

    [short] = extract_videos(payload)

    assert short.id == video_id(3)
    assert short.metadata.is_short
    assert short.view_count == 12_000


def test_visitor_is_bounded_and_cycle_safe() -> None:
    cyclic: dict = {"videoRenderer": video_renderer(1)}
    cyclic["self"] = cyclic
    assert [video.id for video in extract_videos(cyclic)] == [video_id(1)]

    deep: dict = {"videoRenderer": video_renderer(2)}
    for _ in range(40):
        deep = {"wrapper": deep}
    assert list(visit(deep, lambda key, _node: key == "videoRenderer", max_depth=10)) == []


def test_continuation_token_ignores_reply_threads() -> None:
    page = comment_page(["a", "b"])
    page["onResponseReceivedEndpoints"][0]["reloadContinuationItemsCommand"][
        "continuationItems"
    ][0]["commentThreadRenderer"]["replies"] = continuation_item("replies-token")

    assert find_continuation_token(page) is None
    assert find_continuation_token(video_page([1], token="page-2")) == "page-2"


def test_parse_search_results_mixes_types_and_skips_shelves() -> None:
    payload = {
        "contents": [
            {"videoRenderer": video_renderer(1)},
            channel_result(CHANNEL_ID),
            {"shelfRenderer": {"content": {"items": [{"videoRenderer": video_renderer(2)}]}}},
            {"playlistRenderer": {"playlistId": "PL123", "title": {"simpleText": "Mix"}, "videoCount": "12"}},
        ]
    }

    results = parse_search_results(payload)

    assert [result.type for result in results] == ["video", "channel", "playlist"]
    assert isinstance(results[0], VideoRecord)
    channel = results[1]
    assert isinstance(channel, ChannelResultRecord)
    assert channel.subscriber_count == "1.2M subscribers"
    assert results[2].video_count == "12 videos"


def test_parse_suggestions_decodes_jsonp() -> None:
    body = 'window.google.ac.h(["lofi",[["lofi hip hop",0],["lofi girl",0]],{"k":1}])'

    assert parse_suggestions(body) == ["lofi hip hop", "lofi girl"]
    assert parse_suggestions("garbage") == []


def test_parse_comments_legacy_renderer() -> None:
    [comment] = parse_comments(comment_page(["c1"]))

    assert comment.id == "c1"
    assert comment.text == "Nice video"
    assert comment.author.name == "@viewer"
    assert comment.likes == "1.5K"
    assert comment.likes_count == 1500
    assert comment.reply_count == 3


def test_parse_comments_view_model_with_mutations() -> None:
    payload = {
        "continuationItems": [
            {
                "commentThreadRenderer": {
                    "commentViewModel": {
                        "commentViewModel": {
                            "commentKey": "entity-1",
                            "toolbarStateKey": "toolbar-1",
                            "commentId": "c2",
                            "pinnedText": {"content": "Pinned"},
                        }
                    }
                }
            }
        ],
        "frameworkUpdates": {
            "entityBatchUpdate": {
                "mutations": [
                    {
                        "entityKey": "entity-1",
                        "payload": {
                            "commentEntityPayload": {
                                "properties": {
                                    "commentId": "c2",
                                    "content": {"content": "Modern comment"},
                                    "publishedTime": "3 hours ago",
                                },
                                "author": {"displayName": "@fan", "isCreator": True},
                                "toolbar": {"likeCountNotliked": "42", "replyCount": "2"},
                            }
                        },
                    },
                    {
                        "entityKey": "toolbar-1",
                        "payload": {
                            "engagementToolbarStateEntityPayload": {
                                "heartState": "TOOLBAR_HEART_STATE_HEARTED"
                            }
                        },
                    },
                ]
            }
        },
    }

    [comment] = parse_comments(payload)

    assert comment.text == "Modern comment"
    assert comment.author.name == "@fan"
    assert comment.author.is_channel_owner
    assert comment.likes_count == 42
    assert comment.reply_count == 2
    assert comment.is_pinned
    assert comment.is_hearted


def test_find_comment_section_token() -> None:
    assert find_comment_section_token(watch_next_with_comments("open")) == "open"
    assert find_comment_section_token({"contents": {}}) is None


def test_video_detail_prefers_player_fields_with_fallbacks() -> None:
    player = {
        "videoDetails": {
            "title": "Song Title",
            "author": "Singer",
            "channelId": CHANNEL_ID,
            "lengthSeconds": "0",
            "viewCount": "2500",
            "keywords": ["lofi", "beats"],
        },
        "streamingData": {"formats": [{"approxDurationMs": "185000"}]},
        "microformat": {"playerMicroformatRenderer": {"category": "Music", "uploadDate": "2024-01-01"}},
    }

    fields = parse_video_detail_fields(video_detail_root(player, {}))

    assert fields["title"] == "Song Title"
    assert fields["duration_seconds"] == 185
    assert fields["view_count"] == 2500
    assert fields["views"] == "2.5K views"
    assert fields["category"] == "Music"
    assert fields["tags"] == ["lofi", "beats"]
