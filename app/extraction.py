"""Normalization of raw InnerTube payloads into flat records.

Every entity is described by a field table: an ordered tuple of
:class:`FieldRule` candidates per output field. The first rule whose path
resolves to a usable value wins, and missing fields fall back to the record
defaults. When no known renderer is found at all, a bounded visitor scans the
tree for anything that looks like a video.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping, Sequence

from .models import (
    ChannelInfo,
    ChannelRef,
    ChannelResultMetadata,
    ChannelResultRecord,
    CommentAuthor,
    CommentRecord,
    PlaylistHeader,
    PlaylistResultRecord,
    SearchResultRecord,
    VideoMetadata,
    VideoRecord,
)
from .utils import (
    PathKey,
    best_thumbnail,
    extract_handle,
    extract_text,
    format_count,
    format_duration,
    get_path,
    is_video_id,
    normalize_url,
    parse_count,
    parse_duration,
    split_path,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 24

VIDEO_RENDERER_KEYS = frozenset(
    {
        "videoRenderer",
        "gridVideoRenderer",
        "compactVideoRenderer",
        "playlistVideoRenderer",
        "playlistPanelVideoRenderer",
        "videoWithContextRenderer",
        "movieRenderer",
        "reelItemRenderer",
        "shortsLockupViewModel",
        "lockupViewModel",
    }
)
SHORT_RENDERER_KEYS = frozenset({"reelItemRenderer", "shortsLockupViewModel"})
SEARCH_RESULT_KEYS = VIDEO_RENDERER_KEYS | {"channelRenderer", "playlistRenderer"}
SEARCH_SKIP_KEYS = frozenset(
    {
        "shelfRenderer",
        "reelShelfRenderer",
        "horizontalCardListRenderer",
        "richShelfRenderer",
        "secondarySearchContainerRenderer",
    }
)
CONTINUATION_SKIP_KEYS = frozenset(
    {"commentThreadRenderer", "chipCloudChipRenderer", "feedFilterChipBarRenderer"}
)
PLAYLIST_RENDERER_KEYS = frozenset(
    {"gridPlaylistRenderer", "playlistRenderer", "lockupViewModel"}
)
VIDEO_LOCKUP_TYPES = frozenset({"LOCKUP_CONTENT_TYPE_VIDEO"})
PLAYLIST_LOCKUP_TYPES = frozenset(
    {"LOCKUP_CONTENT_TYPE_PLAYLIST", "LOCKUP_CONTENT_TYPE_PODCAST"}
)
COMMENT_SECTION_ID = "comment-item-section"
COMMENT_PANEL_ID = "engagement-panel-comments-section"


# ---------------------------------------------------------------------------
# Field tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FieldRule:
    """One candidate location for a field, with an optional value parser."""

    path: tuple[PathKey, ...]
    parser: Callable[[Any], Any] | None = None

    def apply(self, root: Any) -> Any:
        raw = get_path(root, self.path)
        if raw is None:
            return None
        value = self.parser(raw) if self.parser else raw
        if value is None or value == "" or value == [] or value == {}:
            return None
        return value


def rule(path: str, parser: Callable[[Any], Any] | None = None) -> FieldRule:
    return FieldRule(split_path(path), parser)


FieldTable = Mapping[str, Sequence[FieldRule]]


def first_present(root: Any, rules: Sequence[FieldRule], default: Any = None) -> Any:
    for candidate in rules:
        value = candidate.apply(root)
        if value is not None:
            return value
    return default


def extract_fields(root: Any, table: FieldTable) -> dict[str, Any]:
    """Resolve every field of ``table`` against ``root`` (``None`` when missing)."""

    return {name: first_present(root, rules) for name, rules in table.items()}


# Value parsers ---------------------------------------------------------------


def text(value: Any) -> str | None:
    resolved = extract_text(value)
    if resolved is None:
        return None
    resolved = resolved.strip()
    return resolved or None


def positive_count(value: Any) -> int | None:
    return parse_count(value) or None


def positive_seconds(value: Any) -> int | None:
    return parse_duration(value) or None


def thumbnail(value: Any) -> str | None:
    if isinstance(value, str):
        return normalize_url(value)
    return best_thumbnail(value)


def flag(value: Any) -> bool | None:
    """True when the value is set; ``None`` lets later rules or defaults apply."""

    if isinstance(value, bool):
        return True if value else None
    if isinstance(value, str):
        return True if value.strip().lower() in {"true", "1", "yes"} else None
    return True if value else None


def present(value: Any) -> bool | None:
    return True if value is not None else None


def handle(value: Any) -> str | None:
    return extract_handle(value)


def string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def string_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return items or None


def badge_labels(value: Any) -> list[str] | None:
    """Collect labels from ``metadataBadgeRenderer`` and badge view models."""

    if not isinstance(value, list):
        return None
    labels: list[str] = []
    for badge in value:
        label = (
            get_path(badge, "metadataBadgeRenderer.label")
            or get_path(badge, "metadataBadgeRenderer.tooltip")
            or get_path(badge, "badgeViewModel.badgeText")
            or get_path(badge, "thumbnailBadgeViewModel.text")
        )
        if isinstance(label, str) and label.strip() and label.strip() not in labels:
            labels.append(label.strip())
    return labels or None


def badge_styles(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    styles = [
        style
        for badge in value
        if isinstance(style := get_path(badge, "metadataBadgeRenderer.style"), str)
    ]
    return styles or None


def overlay_time_text(value: Any) -> str | None:
    """Duration text from a ``thumbnailOverlays`` list."""

    if not isinstance(value, list):
        return None
    for overlay in value:
        label = text(get_path(overlay, "thumbnailOverlayTimeStatusRenderer.text"))
        if label:
            return label
    return None


def overlay_badge_text(value: Any) -> str | None:
    """Badge text from lockup thumbnail overlays (durations, video counts)."""

    if not isinstance(value, list):
        return None
    for overlay in value:
        for badges_path in (
            "thumbnailOverlayBadgeViewModel.thumbnailBadges",
            "thumbnailBottomOverlayViewModel.badges",
        ):
            for badge in get_path(overlay, badges_path) or []:
                label = text(get_path(badge, "thumbnailBadgeViewModel.text"))
                if label:
                    return label
    return None


def metadata_row_part(*keywords: str) -> Callable[[Any], str | None]:
    """Build a parser that picks the metadata-row part mentioning a keyword."""

    lowered = tuple(keyword.lower() for keyword in keywords)

    def parse(rows: Any) -> str | None:
        if not isinstance(rows, list):
            return None
        for row in rows:
            for part in get_path(row, "metadataParts") or []:
                value = text(get_path(part, "text"))
                if value and any(keyword in value.lower() for keyword in lowered):
                    return value
        return None

    return parse


def metadata_row_first(rows: Any) -> str | None:
    if not isinstance(rows, list):
        return None
    for row in rows:
        for part in get_path(row, "metadataParts") or []:
            value = text(get_path(part, "text"))
            if value:
                return value
    return None


def approx_duration(value: Any) -> int | None:
    """Seconds from the first streaming format carrying ``approxDurationMs``."""

    if not isinstance(value, list):
        return None
    for fmt in value:
        millis = get_path(fmt, "approxDurationMs")
        if isinstance(millis, (str, int)) and str(millis).isdigit() and int(millis) > 0:
            return int(millis) // 1000
    return None


def shorts_entity_id(value: Any) -> str | None:
    if isinstance(value, str) and value.startswith("shorts-shelf-item-"):
        return value.removeprefix("shorts-shelf-item-")
    return None


LOCKUP_ROWS = "metadata.lockupMetadataViewModel.metadata.contentMetadataViewModel.metadataRows"
OWNER_RUN = "ownerText.runs.0.navigationEndpoint.browseEndpoint"
LONG_BYLINE_RUN = "longBylineText.runs.0.navigationEndpoint.browseEndpoint"
SHORT_BYLINE_RUN = "shortBylineText.runs.0.navigationEndpoint.browseEndpoint"
CHANNEL_THUMB_LINK = "channelThumbnailSupportedRenderers.channelThumbnailWithLinkRenderer"

VIDEO_FIELDS: FieldTable = {
    "id": (
        rule("videoId", string),
        rule("contentId", string),
        rule("onTap.innertubeCommand.reelWatchEndpoint.videoId", string),
        rule("navigationEndpoint.watchEndpoint.videoId", string),
        rule("entityId", shorts_entity_id),
    ),
    "title": (
        rule("title", text),
        rule("headline", text),
        rule("overlayMetadata.primaryText", text),
        rule("metadata.lockupMetadataViewModel.title", text),
        rule("accessibilityText", string),
    ),
    "thumbnail": (
        rule("thumbnail.thumbnails", thumbnail),
        rule("thumbnail.sources", thumbnail),
        rule("contentImage.thumbnailViewModel.image.sources", thumbnail),
    ),
    "duration": (
        rule("lengthText", text),
        rule("thumbnailOverlays", overlay_time_text),
        rule("contentImage.thumbnailViewModel.overlays", overlay_badge_text),
    ),
    "duration_seconds": (
        rule("lengthSeconds", positive_seconds),
        rule("lengthText", positive_seconds),
        rule("thumbnailOverlays", lambda raw: positive_seconds(overlay_time_text(raw))),
        rule(
            "contentImage.thumbnailViewModel.overlays",
            lambda raw: positive_seconds(overlay_badge_text(raw)),
        ),
    ),
    "views": (
        rule("viewCountText", text),
        rule("shortViewCountText", text),
        rule("overlayMetadata.secondaryText", text),
        rule(LOCKUP_ROWS, metadata_row_part("view", "watching")),
    ),
    "published": (
        rule("publishedTimeText", text),
        rule("videoInfo.runs.2.text", string),
        rule(LOCKUP_ROWS, metadata_row_part("ago", "streamed", "premiere")),
    ),
    "description": (
        rule("detailedMetadataSnippets.0.snippetText", text),
        rule("descriptionSnippet", text),
        rule("descriptionText", text),
    ),
    "channel_name": (
        rule("ownerText", text),
        rule("longBylineText", text),
        rule("shortBylineText", text),
        rule(LOCKUP_ROWS, metadata_row_first),
    ),
    "channel_id": (
        rule(f"{OWNER_RUN}.browseId", string),
        rule(f"{LONG_BYLINE_RUN}.browseId", string),
        rule(f"{SHORT_BYLINE_RUN}.browseId", string),
        rule(f"{CHANNEL_THUMB_LINK}.navigationEndpoint.browseEndpoint.browseId", string),
    ),
    "channel_handle": (
        rule(f"{OWNER_RUN}.canonicalBaseUrl", handle),
        rule(f"{LONG_BYLINE_RUN}.canonicalBaseUrl", handle),
        rule(f"{SHORT_BYLINE_RUN}.canonicalBaseUrl", handle),
    ),
    "channel_thumbnail": (
        rule(f"{CHANNEL_THUMB_LINK}.thumbnail.thumbnails", thumbnail),
        rule("channelThumbnail.thumbnails", thumbnail),
        rule(
            "metadata.lockupMetadataViewModel.image.decoratedAvatarViewModel.avatar.avatarViewModel.image.sources",
            thumbnail,
        ),
    ),
    "badges": (rule("badges", badge_labels),),
    "badge_styles": (rule("badges", badge_styles),),
    "owner_styles": (rule("ownerBadges", badge_styles),),
    "upcoming": (rule("upcomingEventData", present),),
    "reel_endpoint": (rule("navigationEndpoint.reelWatchEndpoint", present),),
}

CHANNEL_RESULT_FIELDS: FieldTable = {
    "id": (
        rule("channelId", string),
        rule("navigationEndpoint.browseEndpoint.browseId", string),
    ),
    "name": (rule("title", text), rule("shortBylineText", text)),
    "handle": (
        rule("navigationEndpoint.browseEndpoint.canonicalBaseUrl", handle),
        rule("subscriberCountText", lambda raw: handle(text(raw))),
    ),
    "thumbnail": (rule("thumbnail.thumbnails", thumbnail),),
    "subscriber_count": (
        rule("videoCountText", lambda raw: _if_mentions(text(raw), "subscriber")),
        rule("subscriberCountText", lambda raw: _if_mentions(text(raw), "subscriber")),
    ),
    "video_count": (
        rule("videoCountText", lambda raw: _if_mentions(text(raw), "video")),
    ),
    "description": (rule("descriptionSnippet", text),),
    "badges": (rule("ownerBadges", badge_labels), rule("badges", badge_labels)),
    "owner_styles": (rule("ownerBadges", badge_styles),),
}

PLAYLIST_RESULT_FIELDS: FieldTable = {
    "id": (rule("playlistId", string), rule("contentId", string)),
    "title": (rule("title", text), rule("metadata.lockupMetadataViewModel.title", text)),
    "thumbnail": (
        rule("thumbnails.0.thumbnails", thumbnail),
        rule("thumbnail.thumbnails", thumbnail),
        rule(
            "contentImage.collectionThumbnailViewModel.primaryThumbnail.thumbnailViewModel.image.sources",
            thumbnail,
        ),
    ),
    "video_count": (
        rule("videoCountText", text),
        rule("videoCount", lambda raw: f"{raw} videos" if str(raw).isdigit() else text(raw)),
        rule(
            "contentImage.collectionThumbnailViewModel.primaryThumbnail.thumbnailViewModel.overlays",
            overlay_badge_text,
        ),
    ),
    "channel_name": (
        rule("shortBylineText", text),
        rule("longBylineText", text),
        rule(LOCKUP_ROWS, metadata_row_first),
    ),
    "channel_id": (
        rule(f"{SHORT_BYLINE_RUN}.browseId", string),
        rule(f"{LONG_BYLINE_RUN}.browseId", string),
    ),
    "badges": (rule("ownerBadges", badge_labels),),
}

PLAYLIST_HEADER_FIELDS: FieldTable = {
    "title": (
        rule("metadata.playlistMetadataRenderer.title", string),
        rule("header.playlistHeaderRenderer.title", text),
        rule("header.pageHeaderRenderer.pageTitle", string),
        rule("microformat.microformatDataRenderer.title", string),
    ),
    "description": (
        rule("metadata.playlistMetadataRenderer.description", string),
        rule("header.playlistHeaderRenderer.descriptionText", text),
        rule("microformat.microformatDataRenderer.description", string),
    ),
    "author": (
        rule("header.playlistHeaderRenderer.ownerText", text),
        rule(
            "sidebar.playlistSidebarRenderer.items.1.playlistSidebarSecondaryInfoRenderer.videoOwner.videoOwnerRenderer.title",
            text,
        ),
        rule(
            "header.pageHeaderRenderer.content.pageHeaderViewModel.metadata.contentMetadataViewModel.metadataRows.0.metadataParts.0.avatarStack.avatarStackViewModel.text",
            text,
        ),
    ),
    "video_count": (
        rule("header.playlistHeaderRenderer.numVideosText", text),
        rule(
            "sidebar.playlistSidebarRenderer.items.0.playlistSidebarPrimaryInfoRenderer.stats.0",
            text,
        ),
        rule(
            "header.pageHeaderRenderer.content.pageHeaderViewModel.metadata.contentMetadataViewModel.metadataRows",
            metadata_row_part("video"),
        ),
    ),
    "thumbnail": (
        rule(
            "header.playlistHeaderRenderer.playlistHeaderBanner.heroPlaylistThumbnailRenderer.thumbnail.thumbnails",
            thumbnail,
        ),
        rule("microformat.microformatDataRenderer.thumbnail.thumbnails", thumbnail),
    ),
}

C4_HEADER = "header.c4TabbedHeaderRenderer"
PAGE_HEADER = "header.pageHeaderRenderer.content.pageHeaderViewModel"
CHANNEL_METADATA = "metadata.channelMetadataRenderer"

CHANNEL_INFO_FIELDS: FieldTable = {
    "name": (
        rule(f"{CHANNEL_METADATA}.title", string),
        rule(f"{C4_HEADER}.title", text),
        rule("header.pageHeaderRenderer.pageTitle", string),
        rule("microformat.microformatDataRenderer.title", string),
    ),
    "id": (
        rule(f"{CHANNEL_METADATA}.externalId", string),
        rule(f"{C4_HEADER}.channelId", string),
    ),
    "url": (
        rule(f"{CHANNEL_METADATA}.vanityChannelUrl", string),
        rule(f"{CHANNEL_METADATA}.channelUrl", string),
    ),
    "handle": (
        rule(f"{CHANNEL_METADATA}.vanityChannelUrl", handle),
        rule(f"{C4_HEADER}.channelHandleText", lambda raw: handle(text(raw))),
        rule(f"{PAGE_HEADER}.metadata.contentMetadataViewModel.metadataRows", metadata_row_part("@")),
    ),
    "description": (
        rule(f"{CHANNEL_METADATA}.description", string),
        rule("microformat.microformatDataRenderer.description", string),
    ),
    "avatar": (
        rule(f"{CHANNEL_METADATA}.avatar.thumbnails", thumbnail),
        rule(f"{C4_HEADER}.avatar.thumbnails", thumbnail),
        rule(f"{PAGE_HEADER}.image.decoratedAvatarViewModel.avatar.avatarViewModel.image.sources", thumbnail),
    ),
    "banner": (
        rule(f"{C4_HEADER}.banner.thumbnails", thumbnail),
        rule(f"{PAGE_HEADER}.banner.imageBannerViewModel.image.sources", thumbnail),
    ),
    "mobile_banner": (rule(f"{C4_HEADER}.mobileBanner.thumbnails", thumbnail),),
    "tv_banner": (rule(f"{C4_HEADER}.tvBanner.thumbnails", thumbnail),),
    "subscriber_count_text": (
        rule(f"{C4_HEADER}.subscriberCountText", text),
        rule(f"{PAGE_HEADER}.metadata.contentMetadataViewModel.metadataRows", metadata_row_part("subscriber")),
    ),
    "video_count_text": (
        rule(f"{C4_HEADER}.videosCountText", text),
        rule(f"{PAGE_HEADER}.metadata.contentMetadataViewModel.metadataRows", metadata_row_part("video")),
    ),
    "owner_styles": (rule(f"{C4_HEADER}.badges", badge_styles),),
}

CHANNEL_ABOUT_FIELDS: FieldTable = {
    "description": (rule("description", string),),
    "subscriber_count_text": (rule("subscriberCountText", text),),
    "video_count_text": (rule("videoCountText", text),),
    "view_count_text": (rule("viewCountText", text),),
    "country": (rule("country", text),),
    "joined": (rule("joinedDateText", text),),
    "url": (rule("canonicalChannelUrl", string),),
}

COMMENT_FIELDS: FieldTable = {
    "id": (
        rule("renderer.commentId", string),
        rule("view.commentId", string),
        rule("entity.properties.commentId", string),
        rule("entity.properties.comment_id", string),
    ),
    "text": (
        rule("renderer.contentText", text),
        rule("entity.properties.content", text),
        rule("renderer.content_text", text),
    ),
    "author_name": (
        rule("renderer.authorText", text),
        rule("entity.author.displayName", string),
        rule("entity.author.display_name", string),
    ),
    "author_id": (
        rule("renderer.authorEndpoint.browseEndpoint.browseId", string),
        rule("entity.author.channelId", string),
        rule("entity.author.channel_id", string),
    ),
    "author_thumbnail": (
        rule("renderer.authorThumbnail.thumbnails", thumbnail),
        rule("entity.author.avatarThumbnailUrl", thumbnail),
        rule("entity.avatar.image.sources", thumbnail),
    ),
    "author_verified": (
        rule("renderer.authorCommentBadge.authorCommentBadgeRenderer", present),
        rule("entity.author.isVerified", flag),
        rule("entity.author.is_verified", flag),
    ),
    "author_is_owner": (
        rule("renderer.authorIsChannelOwner", flag),
        rule("entity.author.isCreator", flag),
        rule("entity.author.is_creator", flag),
    ),
    "likes": (
        rule("renderer.voteCount", text),
        rule("entity.toolbar.likeCountNotliked", string),
        rule("entity.toolbar.like_count", text),
    ),
    "published": (
        rule("renderer.publishedTimeText", text),
        rule("entity.properties.publishedTime", string),
        rule("entity.properties.published_time", string),
    ),
    "reply_count": (
        rule("renderer.replyCount", positive_count),
        rule("entity.toolbar.replyCount", positive_count),
        rule("thread.replies.commentRepliesRenderer.viewReplies.buttonRenderer.text", positive_count),
    ),
    "hearted": (
        rule(
            "renderer.actionButtons.commentActionButtonsRenderer.creatorHeart.creatorHeartRenderer.isHearted",
            flag,
        ),
        rule("toolbar.heartState", lambda raw: True if raw == "TOOLBAR_HEART_STATE_HEARTED" else None),
    ),
    "pinned": (
        rule("renderer.pinnedCommentBadge", present),
        rule("view.pinnedText", present),
    ),
    "reply_level": (
        rule("entity.properties.replyLevel", positive_count),
        rule("entity.properties.reply_level", positive_count),
    ),
}

PLAYER = "player"
PRIMARY = "primary"
SECONDARY_OWNER = "secondary.owner.videoOwnerRenderer"
MICROFORMAT = "player.microformat.playerMicroformatRenderer"
LIKE_BUTTON = (
    "primary.videoActions.menuRenderer.topLevelButtons.0.segmentedLikeDislikeButtonViewModel"
    ".likeButtonViewModel.likeButtonViewModel.toggleButtonViewModel.toggleButtonViewModel"
    ".defaultButtonViewModel.buttonViewModel"
)

VIDEO_DETAIL_FIELDS: FieldTable = {
    "title": (
        rule(f"{PLAYER}.videoDetails.title", string),
        rule(f"{PRIMARY}.title", text),
        rule(f"{MICROFORMAT}.title", text),
    ),
    "description": (
        rule(f"{PLAYER}.videoDetails.shortDescription", string),
        rule(f"{MICROFORMAT}.description", text),
        rule("secondary.attributedDescription.content", string),
        rule("secondary.description", text),
    ),
    "channel_name": (
        rule(f"{PLAYER}.videoDetails.author", string),
        rule(f"{SECONDARY_OWNER}.title", text),
        rule(f"{MICROFORMAT}.ownerChannelName", string),
    ),
    "channel_id": (
        rule(f"{PLAYER}.videoDetails.channelId", string),
        rule(f"{MICROFORMAT}.externalChannelId", string),
        rule(f"{SECONDARY_OWNER}.navigationEndpoint.browseEndpoint.browseId", string),
    ),
    "channel_handle": (
        rule(f"{SECONDARY_OWNER}.navigationEndpoint.browseEndpoint.canonicalBaseUrl", handle),
        rule(f"{MICROFORMAT}.ownerProfileUrl", handle),
        rule(f"{SECONDARY_OWNER}.navigationEndpoint.commandMetadata.webCommandMetadata.url", handle),
    ),
    "channel_url": (
        rule(f"{MICROFORMAT}.ownerProfileUrl", string),
    ),
    "channel_thumbnail": (rule(f"{SECONDARY_OWNER}.thumbnail.thumbnails", thumbnail),),
    "subscriber_count": (rule(f"{SECONDARY_OWNER}.subscriberCountText", text),),
    "owner_styles": (rule(f"{SECONDARY_OWNER}.badges", badge_styles),),
    "duration_seconds": (
        rule(f"{PLAYER}.videoDetails.lengthSeconds", positive_seconds),
        rule(f"{PLAYER}.streamingData.formats", approx_duration),
        rule(f"{PLAYER}.streamingData.adaptiveFormats", approx_duration),
        rule(f"{MICROFORMAT}.lengthSeconds", positive_seconds),
        rule("watch_page_seconds", positive_seconds),
    ),
    "views": (
        rule(f"{PRIMARY}.viewCount.videoViewCountRenderer.viewCount", text),
        rule(f"{PRIMARY}.viewCount.videoViewCountRenderer.shortViewCount", text),
    ),
    "view_count": (
        rule(f"{PLAYER}.videoDetails.viewCount", positive_count),
        rule(f"{MICROFORMAT}.viewCount", positive_count),
        rule(f"{PRIMARY}.viewCount.videoViewCountRenderer.viewCount", positive_count),
    ),
    "likes": (
        rule(f"{LIKE_BUTTON}.title", string),
        rule(f"{PRIMARY}.videoActions.menuRenderer.topLevelButtons.0.toggleButtonRenderer.defaultText", text),
    ),
    "like_count": (
        rule(f"{LIKE_BUTTON}.accessibilityText", positive_count),
        rule(f"{LIKE_BUTTON}.title", positive_count),
        rule(f"{PRIMARY}.videoActions.menuRenderer.topLevelButtons.0.toggleButtonRenderer.defaultText", positive_count),
    ),
    "published": (
        rule(f"{PRIMARY}.relativeDateText", text),
        rule(f"{PRIMARY}.dateText", text),
        rule(f"{MICROFORMAT}.publishDate", string),
    ),
    "upload_date": (
        rule(f"{MICROFORMAT}.uploadDate", string),
        rule(f"{MICROFORMAT}.publishDate", string),
    ),
    "category": (rule(f"{MICROFORMAT}.category", string),),
    "tags": (
        rule(f"{MICROFORMAT}.tags", string_list),
        rule(f"{PLAYER}.videoDetails.keywords", string_list),
    ),
    "keywords": (rule(f"{PLAYER}.videoDetails.keywords", string_list),),
    "super_title": (rule(f"{PRIMARY}.superTitleLink", text),),
    "thumbnail": (
        rule(f"{PLAYER}.videoDetails.thumbnail.thumbnails", thumbnail),
        rule(f"{MICROFORMAT}.thumbnail.thumbnails", thumbnail),
    ),
    "is_live": (
        rule(f"{PLAYER}.videoDetails.isLive", flag),
        rule(f"{MICROFORMAT}.liveBroadcastDetails.isLiveNow", flag),
    ),
    "is_private": (
        rule(f"{PLAYER}.videoDetails.isPrivate", flag),
    ),
    "is_family_safe": (rule(f"{MICROFORMAT}.isFamilySafe", lambda raw: raw if isinstance(raw, bool) else None),),
    "playability": (rule(f"{PLAYER}.playabilityStatus.status", string),),
}


def _if_mentions(value: str | None, keyword: str) -> str | None:
    if value and keyword in value.lower():
        return value
    return None


# ---------------------------------------------------------------------------
# Bounded visitor
# ---------------------------------------------------------------------------


def visit(
    payload: Any,
    stop_at: Callable[[str | None, dict[str, Any]], bool],
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    skip_keys: frozenset[str] = frozenset(),
) -> Iterator[tuple[str | None, dict[str, Any]]]:
    """Yield ``(key, node)`` for dicts accepted by ``stop_at`` in document order.

    Accepted nodes are not descended into. Subtrees under ``skip_keys`` are
    ignored, nothing deeper than ``max_depth`` is inspected and every
    container is visited at most once.
    """

    seen: set[int] = set()
    stack: list[tuple[str | None, Any, int]] = [(None, payload, 0)]
    while stack:
        key, node, depth = stack.pop()
        if depth > max_depth or id(node) in seen:
            continue
        seen.add(id(node))
        if isinstance(node, dict):
            if stop_at(key, node):
                yield key, node
                continue
            children = [
                (child_key, child)
                for child_key, child in node.items()
                if child_key not in skip_keys and isinstance(child, (dict, list))
            ]
        elif isinstance(node, list):
            children = [(key, child) for child in node if isinstance(child, (dict, list))]
        else:
            continue
        stack.extend((child_key, child, depth + 1) for child_key, child in reversed(children))


def find_renderers(
    payload: Any,
    keys: frozenset[str] | set[str],
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    skip_keys: frozenset[str] = frozenset(),
) -> Iterator[tuple[str, dict[str, Any]]]:
    """Yield ``(renderer_key, renderer)`` for every renderer named in ``keys``."""

    for key, node in visit(
        payload,
        lambda key, _node: key in keys,
        max_depth=max_depth,
        skip_keys=skip_keys,
    ):
        yield key or "", node


def find_first(payload: Any, key: str, **kwargs: Any) -> dict[str, Any] | None:
    for _, node in find_renderers(payload, frozenset({key}), **kwargs):
        return node
    return None


def _looks_like_video(_key: str | None, node: dict[str, Any]) -> bool:
    return is_video_id(node.get("videoId")) and any(
        field in node for field in ("title", "headline", "thumbnail")
    )


def scan_video_like(payload: Any, *, max_depth: int = DEFAULT_MAX_DEPTH) -> Iterator[dict[str, Any]]:
    """Last resort: dicts carrying an 11-character ``videoId`` plus a title or thumbnail."""

    for _, node in visit(payload, _looks_like_video, max_depth=max_depth):
        yield node


# ---------------------------------------------------------------------------
# Videos
# ---------------------------------------------------------------------------


def _video_flags(fields: Mapping[str, Any], kind: str) -> VideoMetadata:
    badges: list[str] = fields.get("badges") or []
    styles = set(fields.get("badge_styles") or [])
    lowered = {badge.lower() for badge in badges}
    duration_text = (fields.get("duration") or "").upper()
    is_short = (
        kind in SHORT_RENDERER_KEYS
        or bool(fields.get("reel_endpoint"))
        or duration_text == "SHORTS"
    )
    return VideoMetadata(
        badges=badges,
        is_live=(
            "BADGE_STYLE_TYPE_LIVE_NOW" in styles
            or "live" in lowered
            or duration_text == "LIVE"
        ),
        is_upcoming=bool(fields.get("upcoming")),
        is_short=is_short,
        is_premium="premium" in lowered or "members only" in lowered,
        is_4k="4k" in lowered,
        is_hdr="hdr" in lowered,
        has_cc="cc" in lowered,
    )


def _channel_ref(fields: Mapping[str, Any]) -> ChannelRef:
    owner_styles = set(fields.get("owner_styles") or [])
    channel_id = fields.get("channel_id")
    channel_handle = fields.get("channel_handle")
    url = None
    if channel_handle:
        url = f"https://www.youtube.com/{channel_handle}"
    elif channel_id:
        url = f"https://www.youtube.com/channel/{channel_id}"
    return ChannelRef(
        name=fields.get("channel_name") or "Unknown",
        id=channel_id,
        url=url,
        handle=channel_handle,
        thumbnail=fields.get("channel_thumbnail"),
        is_verified=bool(
            owner_styles
            & {"BADGE_STYLE_TYPE_VERIFIED", "BADGE_STYLE_TYPE_VERIFIED_ARTIST"}
        ),
        is_artist="BADGE_STYLE_TYPE_VERIFIED_ARTIST" in owner_styles,
    )


def video_from_renderer(kind: str, renderer: Mapping[str, Any]) -> VideoRecord | None:
    """Project one video-like renderer into a :class:`VideoRecord`."""

    if kind == "lockupViewModel" and renderer.get("contentType") not in VIDEO_LOCKUP_TYPES:
        return None
    fields = extract_fields(renderer, VIDEO_FIELDS)
    video_id = fields["id"]
    if not is_video_id(video_id):
        return None

    seconds = fields.get("duration_seconds") or 0
    duration = fields.get("duration")
    if not duration:
        duration = format_duration(seconds) if seconds else "N/A"
    views = fields.get("views")
    return VideoRecord(
        id=video_id,
        title=fields.get("title") or "Unknown",
        thumbnail=fields.get("thumbnail"),
        duration=duration,
        duration_seconds=seconds,
        views=views or "N/A",
        view_count=parse_count(views),
        published=fields.get("published") or "N/A",
        description=fields.get("description") or "",
        channel=_channel_ref(fields),
        metadata=_video_flags(fields, kind),
    )


def extract_videos(payload: Any, *, max_depth: int = DEFAULT_MAX_DEPTH) -> list[VideoRecord]:
    """Return every video found in a browse/search/continuation payload.

    Known renderers are tried first; only when none matched does the generic
    scan run. Duplicate ids within one payload are dropped.
    """

    videos: list[VideoRecord] = []
    seen: set[str] = set()
    for kind, renderer in find_renderers(payload, VIDEO_RENDERER_KEYS, max_depth=max_depth):
        record = video_from_renderer(kind, renderer)
        if record and record.id not in seen:
            seen.add(record.id)
            videos.append(record)
    if videos:
        return videos

    for node in scan_video_like(payload, max_depth=max_depth):
        record = video_from_renderer("videoRenderer", node)
        if record and record.id not in seen:
            seen.add(record.id)
            videos.append(record)
    if videos:
        logger.debug("Generic scan recovered %s videos", len(videos))
    return videos


# ---------------------------------------------------------------------------
# Continuations
# ---------------------------------------------------------------------------

CONTINUATION_TOKEN_RULES: Sequence[FieldRule] = (
    rule("continuationEndpoint.continuationCommand.token", string),
    rule("button.buttonRenderer.command.continuationCommand.token", string),
    rule(
        "continuationEndpoint.commandExecutorCommand.commands",
        lambda commands: next(
            (
                token
                for command in commands
                if isinstance(token := get_path(command, "continuationCommand.token"), str)
            ),
            None,
        )
        if isinstance(commands, list)
        else None,
    ),
)


def find_continuation_token(payload: Any, *, max_depth: int = DEFAULT_MAX_DEPTH) -> str | None:
    """Return the next-page token, or ``None`` when the listing is exhausted.

    Reply threads and filter chips carry their own continuations, so those
    subtrees are skipped.
    """

    for _, renderer in find_renderers(
        payload,
        frozenset({"continuationItemRenderer"}),
        max_depth=max_depth,
        skip_keys=CONTINUATION_SKIP_KEYS,
    ):
        token = first_present(renderer, CONTINUATION_TOKEN_RULES)
        if token:
            return token

    for _, data in find_renderers(
        payload,
        frozenset({"nextContinuationData"}),
        max_depth=max_depth,
        skip_keys=CONTINUATION_SKIP_KEYS,
    ):
        token = data.get("continuation")
        if isinstance(token, str) and token:
            return token
    return None


# ---------------------------------------------------------------------------
# Search results
# ---------------------------------------------------------------------------


def channel_from_renderer(renderer: Mapping[str, Any]) -> ChannelResultRecord | None:
    fields = extract_fields(renderer, CHANNEL_RESULT_FIELDS)
    channel_id = fields["id"]
    if not channel_id:
        return None
    styles = set(fields.get("owner_styles") or [])
    channel_handle = fields.get("handle")
    return ChannelResultRecord(
        id=channel_id,
        name=fields.get("name") or "Unknown",
        handle=channel_handle,
        thumbnail=fields.get("thumbnail"),
        subscriber_count=fields.get("subscriber_count") or "N/A",
        video_count=fields.get("video_count") or "N/A",
        description=fields.get("description") or "",
        url=f"https://www.youtube.com/{channel_handle}" if channel_handle else "",
        metadata=ChannelResultMetadata(
            badges=fields.get("badges") or [],
            is_verified=bool(
                styles & {"BADGE_STYLE_TYPE_VERIFIED", "BADGE_STYLE_TYPE_VERIFIED_ARTIST"}
            ),
            is_artist="BADGE_STYLE_TYPE_VERIFIED_ARTIST" in styles,
        ),
    )


def playlist_from_renderer(kind: str, renderer: Mapping[str, Any]) -> PlaylistResultRecord | None:
    if kind == "lockupViewModel" and renderer.get("contentType") not in PLAYLIST_LOCKUP_TYPES:
        return None
    fields = extract_fields(renderer, PLAYLIST_RESULT_FIELDS)
    playlist_id = fields["id"]
    if not playlist_id:
        return None
    return PlaylistResultRecord(
        id=playlist_id,
        title=fields.get("title") or "Unknown",
        thumbnail=fields.get("thumbnail"),
        video_count=fields.get("video_count") or "N/A",
        channel=ChannelRef(
            name=fields.get("channel_name") or "Unknown",
            id=fields.get("channel_id"),
            url=(
                f"https://www.youtube.com/channel/{fields['channel_id']}"
                if fields.get("channel_id")
                else None
            ),
        ),
        badges=fields.get("badges") or [],
    )


def search_result_from_renderer(kind: str, renderer: Mapping[str, Any]) -> SearchResultRecord | None:
    if kind == "channelRenderer":
        return channel_from_renderer(renderer)
    if kind == "playlistRenderer":
        return playlist_from_renderer(kind, renderer)
    if kind == "lockupViewModel" and renderer.get("contentType") in PLAYLIST_LOCKUP_TYPES:
        return playlist_from_renderer(kind, renderer)
    return video_from_renderer(kind, renderer)


def parse_search_results(payload: Any) -> list[SearchResultRecord]:
    """Videos, channels and playlists of one search page, in page order."""

    results: list[SearchResultRecord] = []
    for kind, renderer in find_renderers(payload, SEARCH_RESULT_KEYS, skip_keys=SEARCH_SKIP_KEYS):
        record = search_result_from_renderer(kind, renderer)
        if record is not None:
            results.append(record)
    return results


def parse_suggestions(body: str) -> list[str]:
    """Decode the JSONP autocomplete body (``window.google.ac.h([...])``)."""

    start = body.find("(")
    end = body.rfind(")")
    raw = body[start + 1 : end] if start != -1 and end > start else body
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Could not decode suggestions payload")
        return []
    entries = data[1] if isinstance(data, list) and len(data) > 1 else []
    suggestions: list[str] = []
    for entry in entries if isinstance(entries, list) else []:
        value = entry[0] if isinstance(entry, list) and entry else entry
        if isinstance(value, str) and value not in suggestions:
            suggestions.append(value)
    return suggestions


# ---------------------------------------------------------------------------
# Channels and playlists
# ---------------------------------------------------------------------------


def parse_channel_info(payload: Any, channel_id: str) -> ChannelInfo:
    fields = extract_fields(payload, CHANNEL_INFO_FIELDS)
    about = find_first(payload, "aboutChannelViewModel")
    about_fields = extract_fields(about, CHANNEL_ABOUT_FIELDS) if about else {}
    subscriber_text = about_fields.get("subscriber_count_text") or fields.get(
        "subscriber_count_text"
    )
    video_text = about_fields.get("video_count_text") or fields.get("video_count_text")
    styles = set(fields.get("owner_styles") or [])
    url = fields.get("url") or about_fields.get("url") or ""
    return ChannelInfo(
        id=fields.get("id") or channel_id,
        name=fields.get("name") or "Unknown",
        handle=fields.get("handle") or extract_handle(url),
        url=url,
        description=about_fields.get("description") or fields.get("description") or "",
        avatar=fields.get("avatar"),
        banner=fields.get("banner"),
        mobile_banner=fields.get("mobile_banner"),
        tv_banner=fields.get("tv_banner"),
        subscriber_count=parse_count(subscriber_text),
        subscriber_count_text=subscriber_text or "N/A",
        video_count=parse_count(video_text),
        video_count_text=video_text or "N/A",
        view_count_text=about_fields.get("view_count_text"),
        country=about_fields.get("country"),
        joined=about_fields.get("joined"),
        is_verified=bool(
            styles & {"BADGE_STYLE_TYPE_VERIFIED", "BADGE_STYLE_TYPE_VERIFIED_ARTIST"}
        ),
    )


def find_playlist_ids(payload: Any) -> list[str]:
    """Playlist ids of a channel playlists tab (lockups, grid and list renderers)."""

    ids: list[str] = []
    for kind, renderer in find_renderers(payload, PLAYLIST_RENDERER_KEYS):
        if kind == "lockupViewModel":
            if renderer.get("contentType") not in PLAYLIST_LOCKUP_TYPES:
                continue
            candidate = renderer.get("contentId")
        else:
            candidate = renderer.get("playlistId")
        if isinstance(candidate, str) and candidate and candidate not in ids:
            ids.append(candidate)
    if ids:
        return ids

    for _, node in visit(
        payload,
        lambda _key, node: isinstance(node.get("playlistId"), str)
        and node["playlistId"].startswith("PL"),
    ):
        if node["playlistId"] not in ids:
            ids.append(node["playlistId"])
    return ids


def parse_playlist_header(payload: Any, playlist_id: str) -> PlaylistHeader:
    fields = extract_fields(payload, PLAYLIST_HEADER_FIELDS)
    return PlaylistHeader(
        id=playlist_id,
        title=fields.get("title") or "Unknown",
        description=fields.get("description") or "",
        author=fields.get("author") or "Unknown",
        video_count=fields.get("video_count") or "N/A",
        thumbnail=fields.get("thumbnail"),
    )


def resolved_browse_id(payload: Any) -> str | None:
    """Channel id from a ``navigation/resolve_url`` response."""

    return first_present(
        payload,
        (
            rule("endpoint.browseEndpoint.browseId", string),
            rule("endpoint.urlEndpoint.url", lambda raw: _channel_id_from_url(raw)),
        ),
    )


def _channel_id_from_url(url: Any) -> str | None:
    if isinstance(url, str) and "/channel/" in url:
        candidate = url.split("/channel/", 1)[1].split("/", 1)[0].split("?", 1)[0]
        return candidate if candidate.startswith("UC") else None
    return None


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


def _index_mutations(payload: Any) -> dict[str, dict[str, Any]]:
    entities: dict[str, dict[str, Any]] = {}
    mutations = get_path(payload, "frameworkUpdates.entityBatchUpdate.mutations") or []
    for mutation in mutations:
        key = get_path(mutation, "entityKey")
        body = get_path(mutation, "payload")
        if not isinstance(key, str) or not isinstance(body, dict) or not body:
            continue
        entity = next(iter(body.values()))
        if isinstance(entity, dict):
            entities[key] = entity
    return entities


def _comment_root(
    thread: Mapping[str, Any], entities: Mapping[str, dict[str, Any]]
) -> dict[str, Any]:
    renderer = get_path(thread, "comment.commentRenderer") or thread.get("commentRenderer")
    view = get_path(thread, "commentViewModel.commentViewModel") or thread.get(
        "commentViewModel"
    )
    entity = entities.get(get_path(view, "commentKey") or "")
    toolbar = entities.get(get_path(view, "toolbarStateKey") or "")
    return {
        "thread": thread,
        "renderer": renderer,
        "view": view,
        "entity": entity,
        "toolbar": toolbar,
    }


def comment_from_root(root: Mapping[str, Any]) -> CommentRecord | None:
    fields = extract_fields(root, COMMENT_FIELDS)
    comment_id = fields["id"]
    if not comment_id:
        return None
    likes_text = fields.get("likes") or "0"
    return CommentRecord(
        id=comment_id,
        text=fields.get("text") or "",
        author=CommentAuthor(
            name=fields.get("author_name") or "Unknown",
            id=fields.get("author_id"),
            thumbnail=fields.get("author_thumbnail"),
            is_verified=bool(fields.get("author_verified")),
            is_channel_owner=bool(fields.get("author_is_owner")),
        ),
        likes=likes_text,
        likes_count=parse_count(likes_text),
        published=fields.get("published") or "N/A",
        reply_count=fields.get("reply_count") or 0,
        is_hearted=bool(fields.get("hearted")),
        is_pinned=bool(fields.get("pinned")),
        is_reply=bool(fields.get("reply_level")),
    )


def parse_comments(payload: Any) -> list[CommentRecord]:
    """Top-level comments of one comment page, in both renderer generations."""

    entities = _index_mutations(payload)
    comments: list[CommentRecord] = []
    threads = [node for _, node in find_renderers(payload, frozenset({"commentThreadRenderer"}))]
    if not threads:
        threads = [
            {kind: node}
            for kind, node in find_renderers(
                payload, frozenset({"commentRenderer", "commentViewModel"})
            )
        ]
    for thread in threads:
        record = comment_from_root(_comment_root(thread, entities))
        if record is not None:
            comments.append(record)
    return comments


def find_comment_section_token(next_payload: Any) -> str | None:
    """Continuation that opens the comment section of a watch-next payload."""

    for _, section in find_renderers(next_payload, frozenset({"itemSectionRenderer"})):
        if section.get("sectionIdentifier") == COMMENT_SECTION_ID:
            token = find_continuation_token(section.get("contents"))
            if token:
                return token

    for _, panel in find_renderers(
        next_payload, frozenset({"engagementPanelSectionListRenderer"})
    ):
        if panel.get("panelIdentifier") == COMMENT_PANEL_ID:
            token = find_continuation_token(panel.get("content"))
            if token:
                return token
    return None


def find_comment_sort_token(payload: Any, sort: str) -> str | None:
    """Token switching the comment listing to ``top`` (index 0) or ``newest`` (1)."""

    menu = find_first(payload, "sortFilterSubMenuRenderer")
    if not menu:
        return None
    index = 1 if sort == "newest" else 0
    return get_path(menu, ("subMenuItems", index, "serviceEndpoint", "continuationCommand", "token"))


def comment_count_text(payload: Any) -> str | None:
    header = find_first(payload, "commentsHeaderRenderer")
    if not header:
        return None
    return text(header.get("countText")) or text(header.get("commentsCount"))


# ---------------------------------------------------------------------------
# Video detail
# ---------------------------------------------------------------------------


def video_detail_root(
    player: Any, next_payload: Any, watch_page_seconds: int | None = None
) -> dict[str, Any]:
    """Combine player and watch-next payloads into one root for the detail table."""

    return {
        "player": player,
        "primary": find_first(next_payload, "videoPrimaryInfoRenderer"),
        "secondary": find_first(next_payload, "videoSecondaryInfoRenderer"),
        "watch_page_seconds": watch_page_seconds,
    }


def parse_video_detail_fields(root: Mapping[str, Any]) -> dict[str, Any]:
    fields = extract_fields(root, VIDEO_DETAIL_FIELDS)
    view_count = fields.get("view_count") or 0
    if not fields.get("views") and view_count:
        fields["views"] = f"{format_count(view_count)} views"
    return fields
