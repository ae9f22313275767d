"""Application configuration models."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="tubecrawl", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")
    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    innertube_url: HttpUrl = Field(
        default="https://www.youtube.com/youtubei/v1", alias="INNERTUBE_URL"
    )
    innertube_client_name: str = Field(default="WEB", alias="INNERTUBE_CLIENT_NAME")
    innertube_client_version: str = Field(
        default="2.20240726.00.00", alias="INNERTUBE_CLIENT_VERSION"
    )
    innertube_language: str = Field(default="en", alias="INNERTUBE_LANGUAGE")
    innertube_region: str = Field(default="US", alias="INNERTUBE_REGION")
    suggest_url: HttpUrl = Field(
        default="https://suggestqueries-clients6.youtube.com/complete/search",
        alias="SUGGEST_URL",
    )
    watch_url: HttpUrl = Field(
        default="https://www.youtube.com/watch", alias="WATCH_URL"
    )
    upstream_timeout_seconds: float = Field(
        default=20.0, alias="UPSTREAM_TIMEOUT", gt=0, le=120
    )

    crawl_stall_threshold: int = Field(
        default=5, alias="CRAWL_STALL_THRESHOLD", ge=1, le=100
    )
    crawl_rate_limit_every: int = Field(
        default=20, alias="CRAWL_RATE_LIMIT_EVERY", ge=0, le=1_000
    )
    crawl_rate_limit_delay_seconds: float = Field(
        default=0.3, alias="CRAWL_RATE_LIMIT_DELAY", ge=0, le=10
    )
    wait_poll_interval_seconds: float = Field(
        default=0.1, alias="WAIT_POLL_INTERVAL", gt=0, le=5
    )

    channel_browse_max_pages: int = Field(
        default=1_000, alias="CHANNEL_BROWSE_MAX_PAGES", ge=1
    )
    channel_shorts_max_pages: int = Field(
        default=200, alias="CHANNEL_SHORTS_MAX_PAGES", ge=1
    )
    channel_live_max_pages: int = Field(
        default=100, alias="CHANNEL_LIVE_MAX_PAGES", ge=1
    )
    channel_uploads_max_pages: int = Field(
        default=500, alias="CHANNEL_UPLOADS_MAX_PAGES", ge=1
    )
    channel_playlists_max_pages: int = Field(
        default=100, alias="CHANNEL_PLAYLISTS_MAX_PAGES", ge=1
    )
    channel_playlists_min_results: int = Field(
        default=5, alias="CHANNEL_PLAYLISTS_MIN_RESULTS", ge=0
    )
    playlist_max_pages: int = Field(default=200, alias="PLAYLIST_MAX_PAGES", ge=1)
    search_max_pages: int = Field(default=100, alias="SEARCH_MAX_PAGES", ge=1)
    search_max_results: int = Field(
        default=500, alias="SEARCH_MAX_RESULTS", ge=1, le=10_000
    )
    search_rate_limit_every: int = Field(
        default=10, alias="SEARCH_RATE_LIMIT_EVERY", ge=0, le=1_000
    )
    comment_rate_limit_every: int = Field(
        default=10, alias="COMMENT_RATE_LIMIT_EVERY", ge=0, le=1_000
    )
    comment_max_pages: int = Field(default=50, alias="COMMENT_MAX_PAGES", ge=1)
    comment_max_count: int = Field(
        default=500, alias="COMMENT_MAX_COUNT", ge=1, le=10_000
    )

    channel_cache_seconds: int = Field(default=1_800, alias="CHANNEL_CACHE_TTL", ge=1)
    search_cache_seconds: int = Field(default=300, alias="SEARCH_CACHE_TTL", ge=1)
    comment_cache_seconds: int = Field(default=600, alias="COMMENT_CACHE_TTL", ge=1)
    playlist_cache_seconds: int = Field(
        default=1_800, alias="PLAYLIST_CACHE_TTL", ge=1
    )
    video_details_cache_seconds: int = Field(
        default=1_800, alias="VIDEO_DETAILS_CACHE_TTL", ge=1
    )

    channel_wait_seconds: float = Field(default=60.0, alias="CHANNEL_WAIT", ge=0)
    channel_full_wait_seconds: float = Field(
        default=120.0, alias="CHANNEL_FULL_WAIT", ge=0
    )
    search_wait_seconds: float = Field(default=15.0, alias="SEARCH_WAIT", ge=0)
    playlist_wait_seconds: float = Field(default=30.0, alias="PLAYLIST_WAIT", ge=0)
    comment_wait_seconds: float = Field(default=20.0, alias="COMMENT_WAIT", ge=0)

    default_page_size: int = Field(default=20, alias="DEFAULT_PAGE_SIZE", ge=1, le=500)
    tag_fetch_concurrency: int = Field(
        default=3, alias="TAG_FETCH_CONCURRENCY", ge=1, le=20
    )
    related_max_queries: int = Field(default=4, alias="RELATED_MAX_QUERIES", ge=1, le=10)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> str:
        """Accept level names in any case and fall back to INFO."""

        if value is None:
            return "INFO"
        candidate = str(value).strip().upper()
        if not candidate:
            return "INFO"
        if not isinstance(logging.getLevelName(candidate), int):
            raise ValueError("LOG_LEVEL must be a standard logging level name")
        return candidate

    @field_validator("innertube_language", "innertube_region", mode="before")
    @classmethod
    def _strip_locale(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @model_validator(mode="after")
    def _check_wait_windows(self) -> "Settings":
        """Full-channel waits must never be shorter than ranged waits."""

        if self.channel_full_wait_seconds < self.channel_wait_seconds:
            raise ValueError(
                "CHANNEL_FULL_WAIT must be greater than or equal to CHANNEL_WAIT"
            )
        return self

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
