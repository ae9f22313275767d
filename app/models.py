"""Pydantic models describing the normalized records served by the API."""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CommentSort = Literal["top", "newest"]


class CamelModel(BaseModel):
    """Base model that serializes field names in camelCase."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ChannelRef(CamelModel):
    """Channel that owns a video, playlist or comment."""

    name: str = "Unknown"
    id: str | None = None
    url: str | None = None
    handle: str | None = None
    thumbnail: str | None = None
    is_verified: bool = False
    is_artist: bool = False


class VideoMetadata(CamelModel):
    badges: list[str] = Field(default_factory=list)
    hashtags: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    category: str | None = None
    all_tags: list[str] = Field(default_factory=list)
    has_full_tags: bool = False
    is_live: bool = False
    is_upcoming: bool = False
    is_short: bool = False
    is_premium: bool = False
    is_4k: bool = Field(default=False, alias="is4K")
    is_hdr: bool = Field(default=False, alias="isHDR")
    has_cc: bool = Field(default=False, alias="hasCC")


class RelatedVia(CamelModel):
    query: str
    type: str
    weight: int = 0


class VideoRecord(CamelModel):
    """Flattened projection of any video-like renderer."""

    type: Literal["video"] = "video"
    id: str
    title: str = "Unknown"
    thumbnail: str | None = None
    duration: str = "N/A"
    duration_seconds: int = 0
    views: str = "N/A"
    view_count: int = 0
    published: str = "N/A"
    url: str = ""
    description: str = ""
    channel: ChannelRef = Field(default_factory=ChannelRef)
    metadata: VideoMetadata = Field(default_factory=VideoMetadata)
    related_via: RelatedVia | None = None

    def model_post_init(self, __context: Any) -> None:
        if not self.url:
            self.url = f"https://www.youtube.com/watch?v={self.id}"
        if not self.thumbnail:
            self.thumbnail = f"https://i.ytimg.com/vi/{self.id}/hqdefault.jpg"


class ChannelResultMetadata(CamelModel):
    badges: list[str] = Field(default_factory=list)
    is_verified: bool = False
    is_artist: bool = False


class ChannelResultRecord(CamelModel):
    type: Literal["channel"] = "channel"
    id: str
    name: str = "Unknown"
    handle: str | None = None
    thumbnail: str | None = None
    subscriber_count: str = "N/A"
    video_count: str = "N/A"
    description: str = ""
    url: str = ""
    metadata: ChannelResultMetadata = Field(default_factory=ChannelResultMetadata)

    def model_post_init(self, __context: Any) -> None:
        if not self.url:
            self.url = f"https://www.youtube.com/channel/{self.id}"


class PlaylistResultRecord(CamelModel):
    type: Literal["playlist"] = "playlist"
    id: str
    title: str = "Unknown"
    thumbnail: str | None = None
    video_count: str = "N/A"
    url: str = ""
    channel: ChannelRef = Field(default_factory=ChannelRef)
    badges: list[str] = Field(default_factory=list)

    def model_post_init(self, __context: Any) -> None:
        if not self.url:
            self.url = f"https://www.youtube.com/playlist?list={self.id}"


SearchResultRecord = Union[VideoRecord, ChannelResultRecord, PlaylistResultRecord]


class CommentAuthor(CamelModel):
    name: str = "Unknown"
    id: str | None = None
    thumbnail: str | None = None
    is_verified: bool = False
    is_channel_owner: bool = False


class CommentRecord(CamelModel):
    """A single top-level comment (or reply) from a video's comment thread."""

    id: str
    text: str = ""
    author: CommentAuthor = Field(default_factory=CommentAuthor)
    likes: str = "0"
    likes_count: int = 0
    published: str = "N/A"
    reply_count: int = 0
    is_hearted: bool = False
    is_pinned: bool = False
    is_reply: bool = False


class PlaylistHeader(CamelModel):
    id: str
    title: str = "Unknown"
    description: str = ""
    author: str = "Unknown"
    video_count: str = "N/A"
    thumbnail: str | None = None
    url: str = ""

    def model_post_init(self, __context: Any) -> None:
        if not self.url:
            self.url = f"https://www.youtube.com/playlist?list={self.id}"


class ChannelInfo(CamelModel):
    """Channel page metadata with counts parsed into integers."""

    id: str
    name: str = "Unknown"
    handle: str | None = None
    url: str = ""
    description: str = ""
    avatar: str | None = None
    banner: str | None = None
    mobile_banner: str | None = None
    tv_banner: str | None = None
    subscriber_count: int = 0
    subscriber_count_text: str = "N/A"
    video_count: int = 0
    video_count_text: str = "N/A"
    view_count_text: str | None = None
    country: str | None = None
    joined: str | None = None
    is_verified: bool = False

    def model_post_init(self, __context: Any) -> None:
        if not self.url:
            self.url = f"https://www.youtube.com/channel/{self.id}"

    def as_ref(self) -> ChannelRef:
        return ChannelRef(
            name=self.name,
            id=self.id,
            url=self.url,
            handle=self.handle,
            thumbnail=self.avatar,
            is_verified=self.is_verified,
        )


class Credits(CamelModel):
    """Credits parsed out of a video description."""

    song: str | None = None
    singer: str | None = None
    starring: list[str] = Field(default_factory=list)
    music: str | None = None
    lyrics: str | None = None
    director: str | None = None
    label: str | None = None


class SearchTags(CamelModel):
    primary: list[str] = Field(default_factory=list)
    artists: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    category: list[str] = Field(default_factory=list)


class VideoDetail(CamelModel):
    """Full detail view of a single video."""

    id: str
    title: str = "Unknown"
    description: str = ""
    thumbnail: str | None = None
    duration: str = "N/A"
    duration_seconds: int = 0
    views: str = "N/A"
    view_count: int = 0
    likes: str = "N/A"
    like_count: int = 0
    published: str = "N/A"
    upload_date: str | None = None
    url: str = ""
    channel: ChannelRef = Field(default_factory=ChannelRef)
    subscriber_count: str = "N/A"
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    hashtags: list[str] = Field(default_factory=list)
    artists: list[str] = Field(default_factory=list)
    meaningful_keywords: list[str] = Field(default_factory=list)
    related_topics: list[str] = Field(default_factory=list)
    all_tags: list[str] = Field(default_factory=list)
    search_tags: SearchTags = Field(default_factory=SearchTags)
    credits: Credits = Field(default_factory=Credits)
    is_live: bool = False
    is_private: bool = False
    is_family_safe: bool = True

    def model_post_init(self, __context: Any) -> None:
        if not self.url:
            self.url = f"https://www.youtube.com/watch?v={self.id}"
