"""Single-video detail lookups enriched with tag heuristics."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..config import Settings
from ..extraction import parse_video_detail_fields, video_detail_root
from ..models import ChannelRef, SearchTags, VideoDetail
from ..tags import (
    clean_tags,
    extract_artist_names,
    extract_credits,
    extract_hashtags,
    extract_meaningful_keywords,
    unique,
)
from ..utils import format_count, format_duration, parse_count
from .cache import CacheManager
from .comments import CommentService
from .innertube import InnerTubeClient, UpstreamError, length_seconds_from_html
from .session import SessionManager

logger = logging.getLogger(__name__)

UNPLAYABLE_STATUSES = {"ERROR"}


class VideoNotFoundError(LookupError):
    """Raised when the upstream reports that a video does not exist."""


class VideoInfoService:
    """Video detail, tags and the optional comments window."""

    def __init__(
        self,
        settings: Settings,
        sessions: SessionManager,
        caches: CacheManager,
        comments: CommentService,
    ):
        self._settings = settings
        self._sessions = sessions
        self._details = caches.video_details
        self._tags = caches.tags
        self._comments = comments

    async def _fetch_payloads(
        self, client: InnerTubeClient, video_id: str
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        player, watch_next = await asyncio.gather(
            client.player(video_id), client.next(video_id)
        )
        return player, watch_next

    async def _watch_page_seconds(self, client: InnerTubeClient, video_id: str) -> int:
        try:
            html = await client.watch_page(video_id)
        except UpstreamError as exc:
            logger.warning("Watch page duration lookup for %s failed: %s", video_id, exc)
            return 0
        return length_seconds_from_html(html)

    async def get_detail(self, video_id: str) -> VideoDetail:
        """Return the cached or freshly fetched detail for ``video_id``.

        A failed upstream call is retried once on a fresh session.
        """

        cached = self._details.get(video_id)
        if cached is not None:
            return cached

        client = await self._sessions.get()
        try:
            player, watch_next = await self._fetch_payloads(client, video_id)
        except UpstreamError as exc:
            logger.info("Video %s lookup failed (%s), retrying with a fresh session", video_id, exc)
            client = await self._sessions.get(force_new=True, stale=client)
            player, watch_next = await self._fetch_payloads(client, video_id)

        fields = parse_video_detail_fields(video_detail_root(player, watch_next))
        if fields.get("playability") in UNPLAYABLE_STATUSES and not fields.get("title"):
            raise VideoNotFoundError(f"Video not found: {video_id}")

        if not fields.get("duration_seconds"):
            seconds = await self._watch_page_seconds(client, video_id)
            if seconds:
                fields["duration_seconds"] = seconds

        detail = build_video_detail(video_id, fields)
        self._details.set(video_id, detail)
        return detail

    async def get_video_info(
        self,
        video_id: str,
        *,
        include_comments: bool = True,
        comment_start: int | None = None,
        comment_end: int | None = None,
        comment_sort: str | None = "top",
    ) -> dict[str, Any]:
        detail = await self.get_detail(video_id)
        video = detail.to_payload()
        if include_comments:
            video["comments"] = await self._comments_window(
                video_id, comment_start, comment_end, comment_sort
            )
        return {"success": True, "video": video}

    async def _comments_window(
        self,
        video_id: str,
        start: int | None,
        end: int | None,
        sort: str | None,
    ) -> dict[str, Any]:
        try:
            result = await self._comments.get_comments(video_id, start, end, sort)
        except UpstreamError as exc:
            logger.warning("Comments for %s unavailable: %s", video_id, exc)
            return {
                "count": None,
                "fetched": 0,
                "isComplete": True,
                "hasMore": False,
                "sortBy": sort or "top",
                "items": [],
                "error": str(exc),
            }
        return {
            "count": result["commentCount"],
            "fetched": result["totalFetched"],
            "isComplete": result["isComplete"],
            "hasMore": result["hasMore"],
            "sortBy": result["sortBy"],
            "items": result["comments"],
        }

    async def get_tags(self, video_id: str) -> dict[str, Any]:
        """Tag summary for one video; empty lists when the lookup fails."""

        cached = self._tags.get(video_id)
        if cached is not None:
            return cached
        try:
            detail = await self.get_detail(video_id)
        except (UpstreamError, VideoNotFoundError) as exc:
            logger.warning("Could not fetch tags for %s: %s", video_id, exc)
            return {"tags": [], "keywords": [], "category": None, "hashtags": []}
        tags = {
            "tags": detail.tags,
            "keywords": detail.keywords,
            "category": detail.category,
            "hashtags": detail.hashtags,
        }
        self._tags.set(video_id, tags)
        return tags


def build_video_detail(video_id: str, fields: dict[str, Any]) -> VideoDetail:
    """Compose a :class:`VideoDetail` from extracted fields and tag heuristics."""

    title = fields.get("title") or "Unknown"
    description = fields.get("description") or ""
    seconds = fields.get("duration_seconds") or 0
    view_count = fields.get("view_count") or 0
    likes = fields.get("likes")
    like_count = fields.get("like_count") or parse_count(likes)

    tags = clean_tags(fields.get("tags") or [])
    keywords = clean_tags(fields.get("keywords") or [])
    category = fields.get("category")
    credits = extract_credits(description)

    super_title = fields.get("super_title") or ""
    hashtags = unique(
        extract_hashtags(title, description)
        + [word for word in super_title.split() if word.startswith("#") and len(word) > 1]
    )
    artists = unique(extract_artist_names(title) + credits.starring)
    if credits.singer and credits.singer not in artists:
        artists.insert(0, credits.singer)
    meaningful = extract_meaningful_keywords(keywords)
    related_topics = clean_tags(
        value for value in (credits.song, credits.singer, credits.music) if value
    )
    all_tags = unique(
        tags
        + keywords
        + [tag.lstrip("#") for tag in hashtags]
        + artists
        + ([category] if category else [])
    )

    channel_id = fields.get("channel_id")
    channel_handle = fields.get("channel_handle")
    owner_styles = set(fields.get("owner_styles") or [])
    channel_url = fields.get("channel_url")
    if not channel_url and channel_id:
        channel_url = f"https://www.youtube.com/channel/{channel_id}"

    return VideoDetail(
        id=video_id,
        title=title,
        description=description,
        thumbnail=fields.get("thumbnail") or f"https://i.ytimg.com/vi/{video_id}/maxresdefault.jpg",
        duration=format_duration(seconds) if seconds else "N/A",
        duration_seconds=seconds,
        views=fields.get("views") or (f"{format_count(view_count)} views" if view_count else "N/A"),
        view_count=view_count,
        likes=likes or (format_count(like_count) if like_count else "N/A"),
        like_count=like_count,
        published=fields.get("published") or "N/A",
        upload_date=fields.get("upload_date"),
        channel=ChannelRef(
            name=fields.get("channel_name") or "Unknown",
            id=channel_id,
            url=channel_url,
            handle=channel_handle,
            thumbnail=fields.get("channel_thumbnail"),
            is_verified=bool(
                owner_styles
                & {"BADGE_STYLE_TYPE_VERIFIED", "BADGE_STYLE_TYPE_VERIFIED_ARTIST"}
            ),
            is_artist="BADGE_STYLE_TYPE_VERIFIED_ARTIST" in owner_styles,
        ),
        subscriber_count=fields.get("subscriber_count") or "N/A",
        category=category,
        tags=tags,
        keywords=keywords,
        hashtags=hashtags,
        artists=artists,
        meaningful_keywords=meaningful,
        related_topics=related_topics,
        all_tags=all_tags,
        search_tags=SearchTags(
            primary=hashtags[:3],
            artists=artists[:3],
            topics=meaningful[:5],
            category=[category] if category else [],
        ),
        credits=credits,
        is_live=bool(fields.get("is_live")),
        is_private=bool(fields.get("is_private")),
        is_family_safe=fields.get("is_family_safe") is not False,
    )
