"""In-memory stand-ins for the InnerTube client and payload builders."""

from __future__ import annotations

import asyncio
from typing import Any

from app.services.innertube import InnerTubeSession, UpstreamError

CHANNEL_ID = "UC123xxxxxxxxxxxxxxxxxxx"


def video_id(number: int) -> str:
    return f"vid{number:08d}"


def video_renderer(number: int, *, title: str | None = None, **extra: Any) -> dict[str, Any]:
    renderer: dict[str, Any] = {
        "videoId": video_id(number),
        "title": {"runs": [{"text": title or f"Video {number}"}]},
        "lengthText": {"simpleText": "3:25"},
        "viewCountText": {"simpleText": "1,234 views"},
        "publishedTimeText": {"simpleText": "2 days ago"},
        "ownerText": {
            "runs": [
                {
                    "text": "Example Channel",
                    "navigationEndpoint": {
                        "browseEndpoint": {
                            "browseId": CHANNEL_ID,
                            "canonicalBaseUrl": "/@ExampleChannel",
                        }
                    },
                }
            ]
        },
    }
    renderer.update(extra)
    return renderer


def continuation_item(token: str) -> dict[str, Any]:
    return {
        "continuationItemRenderer": {
            "continuationEndpoint": {"continuationCommand": {"token": token}}
        }
    }


def video_page(numbers: list[int], token: str | None = None) -> dict[str, Any]:
    items: list[dict[str, Any]] = [{"videoRenderer": video_renderer(n)} for n in numbers]
    if token:
        items.append(continuation_item(token))
    return {"contents": {"sectionListRenderer": {"contents": items}}}


def channel_result(channel_id: str, name: str = "Example Channel") -> dict[str, Any]:
    return {
        "channelRenderer": {
            "channelId": channel_id,
            "title": {"simpleText": name},
            "navigationEndpoint": {
                "browseEndpoint": {"browseId": channel_id, "canonicalBaseUrl": "/@ExampleChannel"}
            },
            "videoCountText": {"simpleText": "1.2M subscribers"},
        }
    }


def comment_thread(comment_id: str, text: str = "Nice video") -> dict[str, Any]:
    return {
        "commentThreadRenderer": {
            "comment": {
                "commentRenderer": {
                    "commentId": comment_id,
                    "contentText": {"runs": [{"text": text}]},
                    "authorText": {"simpleText": "@viewer"},
                    "voteCount": {"simpleText": "1.5K"},
                    "publishedTimeText": {"runs": [{"text": "1 day ago"}]},
                    "replyCount": 3,
                }
            }
        }
    }


def comment_page(ids: list[str], token: str | None = None) -> dict[str, Any]:
    items: list[dict[str, Any]] = [comment_thread(comment_id) for comment_id in ids]
    if token:
        items.append(continuation_item(token))
    return {
        "onResponseReceivedEndpoints": [
            {"reloadContinuationItemsCommand": {"continuationItems": items}}
        ]
    }


def watch_next_with_comments(token: str) -> dict[str, Any]:
    return {
        "contents": {
            "twoColumnWatchNextResults": {
                "results": {
                    "results": {
                        "contents": [
                            {
                                "itemSectionRenderer": {
                                    "sectionIdentifier": "comment-item-section",
                                    "contents": [continuation_item(token)],
                                }
                            }
                        ]
                    }
                }
            }
        }
    }


class FakeInnerTube:
    """Serves canned payloads keyed by request; unknown requests fail with 404.

    A value that is an exception instance is raised instead of returned.
    """

    def __init__(self) -> None:
        self.session = InnerTubeSession("WEB", "2.0", "en", "US")
        self.resolved: dict[str, Any] = {}
        self.searches: dict[tuple[str, str | None], Any] = {}
        self.browses: dict[tuple[str, str | None], Any] = {}
        self.continuations: dict[str, Any] = {}
        self.watch_next: dict[str, Any] = {}
        self.players: dict[str, Any] = {}
        self.watch_pages: dict[str, Any] = {}
        self.suggest_body = ""
        self.calls: list[tuple[str, Any]] = []

    async def _answer(self, kind: str, table: dict[Any, Any], key: Any) -> Any:
        self.calls.append((kind, key))
        await asyncio.sleep(0)
        if key not in table:
            raise UpstreamError(f"{kind} {key!r} returned HTTP 404", status_code=404)
        value = table[key]
        if isinstance(value, BaseException):
            raise value
        return value

    def count(self, kind: str) -> int:
        return sum(1 for call_kind, _ in self.calls if call_kind == kind)

    async def resolve_url(self, url: str) -> Any:
        return await self._answer("resolve_url", self.resolved, url)

    async def search(self, query: str, params: str | None = None) -> Any:
        return await self._answer("search", self.searches, (query, params))

    async def search_continuation(self, token: str) -> Any:
        return await self._answer("search_continuation", self.continuations, token)

    async def browse(self, browse_id: str, params: str | None = None) -> Any:
        return await self._answer("browse", self.browses, (browse_id, params))

    async def browse_continuation(self, token: str) -> Any:
        return await self._answer("browse_continuation", self.continuations, token)

    async def next(self, video_id: str) -> Any:
        return await self._answer("next", self.watch_next, video_id)

    async def next_continuation(self, token: str) -> Any:
        return await self._answer("next_continuation", self.continuations, token)

    async def player(self, video_id: str) -> Any:
        return await self._answer("player", self.players, video_id)

    async def suggestions(self, query: str) -> str:
        self.calls.append(("suggestions", query))
        return self.suggest_body

    async def watch_page(self, video_id: str) -> Any:
        return await self._answer("watch_page", self.watch_pages, video_id)
