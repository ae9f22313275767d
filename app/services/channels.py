"""Channel video listings, channel metadata and playlists."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..config import Settings
from ..extraction import (
    extract_videos,
    find_continuation_token,
    find_playlist_ids,
    parse_channel_info,
)
from ..models import ChannelInfo
from .assembler import slice_entry
from .cache import CacheEntry, CacheManager
from .crawler import CrawlLimits, CrawlOutcome, CrawlReport, crawl
from .fetcher import BackgroundFetcher
from .innertube import InnerTubeClient, UpstreamError
from .resolver import ChannelResolution, ChannelResolver
from .session import SessionManager

logger = logging.getLogger(__name__)

VIDEOS_TAB_PARAMS = "EgZ2aWRlb3PyBgQKAjoA"
SHORTS_TAB_PARAMS = "EgZzaG9ydHPyBgUKA5oBAA=="
STREAMS_TAB_PARAMS = "EgdzdHJlYW1z8gYECgJ6AA=="
PLAYLISTS_TAB_PARAMS = "EglwbGF5bGlzdHPyBgQKAkIA"
PLAYLISTS_FALLBACK_MAX_PAGES = 50


class ChannelNotFoundError(LookupError):
    """Raised when a channel identifier cannot be resolved."""


@dataclass(frozen=True, slots=True)
class ChannelStrategy:
    """One upstream surface enumerating a channel's videos."""

    name: str
    browse_id: str
    params: str | None
    max_pages: int
    channel_tab: bool = True


def uploads_playlist_id(channel_id: str) -> str:
    return f"UU{channel_id[2:]}"


class ChannelService:
    """Serve channel videos from the background-crawled cache."""

    def __init__(
        self,
        settings: Settings,
        sessions: SessionManager,
        resolver: ChannelResolver,
        caches: CacheManager,
        fetcher: BackgroundFetcher,
    ):
        self._settings = settings
        self._sessions = sessions
        self._resolver = resolver
        self._store = caches.channels
        self._fetcher = fetcher

    def strategies(self, channel_id: str) -> list[ChannelStrategy]:
        settings = self._settings
        return [
            ChannelStrategy("videos", channel_id, VIDEOS_TAB_PARAMS, settings.channel_browse_max_pages),
            ChannelStrategy("shorts", channel_id, SHORTS_TAB_PARAMS, settings.channel_shorts_max_pages),
            ChannelStrategy("live", channel_id, STREAMS_TAB_PARAMS, settings.channel_live_max_pages),
            ChannelStrategy(
                "uploads",
                f"VL{uploads_playlist_id(channel_id)}",
                None,
                settings.channel_uploads_max_pages,
                channel_tab=False,
            ),
        ]

    async def _resolve(self, identifier: str) -> ChannelResolution:
        resolution = await self._resolver.resolve(identifier)
        if resolution is None:
            raise ChannelNotFoundError(f"Channel not found: {identifier}")
        return resolution

    def _job_key(self, channel_id: str) -> str:
        return self._fetcher.job_key(self._store.name, channel_id)

    def _start_crawl(self, channel_id: str, entry: CacheEntry[Any]) -> bool:
        started = self._fetcher.ensure_fetching(
            self._job_key(channel_id),
            entry,
            lambda: self._crawl_channel(channel_id, entry),
        )
        if started:
            logger.info("Started background crawl for channel %s", channel_id)
        return started

    async def _crawl_channel(self, channel_id: str, entry: CacheEntry[Any]) -> None:
        client = await self._sessions.get()
        errors: list[str] = []
        for strategy in self.strategies(channel_id):
            error = await self._run_strategy(client, strategy, channel_id, entry)
            if error:
                errors.append(error)
        entry.complete(error=errors[-1] if errors else None)
        logger.info(
            "Channel %s crawl complete: %s videos", channel_id, len(entry.items)
        )

    async def _run_strategy(
        self,
        client: InnerTubeClient,
        strategy: ChannelStrategy,
        channel_id: str,
        entry: CacheEntry[Any],
    ) -> str | None:
        try:
            seed = await client.browse(strategy.browse_id, strategy.params)
        except UpstreamError as exc:
            logger.warning(
                "Channel %s %s strategy unavailable: %s", channel_id, strategy.name, exc
            )
            entry.strategies[strategy.name] = CrawlReport(
                label=strategy.name, outcome=CrawlOutcome.ERROR, error=str(exc)
            )
            return str(exc)

        if strategy.channel_tab and "channel" not in entry.context:
            entry.context["channel"] = parse_channel_info(seed, channel_id)

        report = await crawl(
            seed,
            entry=entry,
            extract_items=extract_videos,
            extract_token=find_continuation_token,
            fetch_page=client.browse_continuation,
            limits=CrawlLimits.from_settings(self._settings, strategy.max_pages),
            label=strategy.name,
        )
        return report.error

    def _channel_payload(
        self, resolution: ChannelResolution, entry: CacheEntry[Any]
    ) -> dict[str, Any]:
        info: ChannelInfo | None = entry.context.get("channel")
        channel_id = resolution.channel_id
        if info is None:
            return {
                "name": "Unknown",
                "id": channel_id,
                "url": f"https://www.youtube.com/channel/{channel_id}",
                "handle": resolution.handle,
                "thumbnail": None,
                "subscriberCount": "N/A",
            }
        return {
            "name": info.name,
            "id": channel_id,
            "url": f"https://www.youtube.com/channel/{channel_id}",
            "handle": info.handle or resolution.handle,
            "thumbnail": info.avatar,
            "subscriberCount": info.subscriber_count_text,
        }

    async def get_videos(
        self,
        identifier: str,
        start: int | None = None,
        end: int | None = None,
        *,
        all_videos: bool = False,
    ) -> dict[str, Any]:
        """Return a window of the channel's videos, crawling in the background.

        ``all_videos`` waits (bounded) for the whole crawl and returns every
        cached video instead of a window.
        """

        resolution = await self._resolve(identifier)
        channel_id = resolution.channel_id
        entry, created = self._store.get_or_create(channel_id)
        if created:
            logger.info("Created channel cache entry for %s", channel_id)
        self._start_crawl(channel_id, entry)

        if all_videos:
            if not entry.is_complete:
                await self._fetcher.wait_for(
                    self._store,
                    channel_id,
                    min_count=None,
                    max_wait=self._settings.channel_full_wait_seconds,
                )
            window = slice_entry(entry, 1, max(len(entry.items), 1))
            range_payload = None
        else:
            window = slice_entry(
                entry, start, end, default_size=self._settings.default_page_size
            )
            if len(entry.items) < window.end and not entry.is_complete:
                await self._fetcher.wait_for(
                    self._store,
                    channel_id,
                    min_count=window.end,
                    max_wait=self._settings.channel_wait_seconds,
                )
                window = slice_entry(
                    entry, start, end, default_size=self._settings.default_page_size
                )
            range_payload = window.range_payload()

        if entry.is_complete and not entry.items and entry.error:
            self._store.evict(channel_id)
            raise UpstreamError(entry.error)

        return {
            "success": True,
            "channel": self._channel_payload(resolution, entry),
            "range": range_payload,
            "totalVideos": window.total_returned,
            "totalCached": window.total_cached,
            "cacheStatus": window.status,
            "isComplete": window.is_complete,
            "hasMore": window.has_more,
            "videos": window.serialized_items(),
        }

    async def prefetch(self, identifier: str) -> dict[str, Any]:
        resolution = await self._resolve(identifier)
        entry, _ = self._store.get_or_create(resolution.channel_id)
        started = self._start_crawl(resolution.channel_id, entry)
        return {
            "success": True,
            "channelId": resolution.channel_id,
            "started": started,
            "cacheStatus": entry.status,
        }

    async def cache_status(self, identifier: str) -> dict[str, Any]:
        resolution = await self._resolve(identifier)
        return {
            "success": True,
            "channelId": resolution.channel_id,
            **self._store.status(resolution.channel_id),
        }

    async def clear_cache(self, identifier: str | None = None) -> dict[str, Any]:
        if not identifier:
            cleared = self._store.clear()
            logger.info("Cleared %s channel cache entries", cleared)
            return {"success": True, "cleared": cleared}
        resolution = await self._resolve(identifier)
        removed = self._store.evict(resolution.channel_id)
        return {
            "success": True,
            "channelId": resolution.channel_id,
            "cleared": int(removed),
        }

    async def get_info(self, identifier: str) -> ChannelInfo:
        resolution = await self._resolve(identifier)
        client = await self._sessions.get()
        payload = await client.browse(resolution.channel_id)
        info = parse_channel_info(payload, resolution.channel_id)
        if not info.handle and resolution.handle:
            info.handle = resolution.handle
        return info

    async def get_with_playlists(self, identifier: str) -> dict[str, Any]:
        """Channel info plus every playlist id from the channel's playlists tab."""

        info = await self.get_info(identifier)
        entry: CacheEntry[str] = CacheEntry(key=f"playlists:{info.id}")
        client = await self._sessions.get()
        await self._crawl_playlists(client, info.id, entry, self._settings.channel_playlists_max_pages)

        if len(entry.items) < self._settings.channel_playlists_min_results:
            logger.info(
                "Only %s playlists found for %s, retrying with a fresh session",
                len(entry.items),
                info.id,
            )
            client = await self._sessions.get(force_new=True, stale=client)
            await self._crawl_playlists(client, info.id, entry, PLAYLISTS_FALLBACK_MAX_PAGES)

        return {
            "success": True,
            "channel": info.to_payload(),
            "playlists": list(entry.items),
            "totalPlaylists": len(entry.items),
            "error": entry.error,
        }

    async def _crawl_playlists(
        self,
        client: InnerTubeClient,
        channel_id: str,
        entry: CacheEntry[str],
        max_pages: int,
    ) -> None:
        try:
            seed = await client.browse(channel_id, PLAYLISTS_TAB_PARAMS)
        except UpstreamError as exc:
            logger.warning("Playlists tab for %s unavailable: %s", channel_id, exc)
            entry.error = str(exc)
            return
        report = await crawl(
            seed,
            entry=entry,
            extract_items=find_playlist_ids,
            extract_token=find_continuation_token,
            fetch_page=client.browse_continuation,
            limits=CrawlLimits.from_settings(self._settings, max_pages),
            item_key=lambda playlist_id: playlist_id,
            label="playlists",
        )
        entry.error = report.error
