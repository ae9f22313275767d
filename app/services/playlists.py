"""Playlist videos crawled through browse continuations."""

from __future__ import annotations

import logging
from typing import Any

from ..config import Settings
from ..extraction import extract_videos, find_continuation_token, parse_playlist_header
from ..models import PlaylistHeader
from .assembler import slice_entry
from .cache import CacheEntry, CacheManager
from .crawler import CrawlLimits, crawl
from .fetcher import BackgroundFetcher
from .innertube import UpstreamError
from .session import SessionManager

logger = logging.getLogger(__name__)


def normalize_playlist_id(value: str) -> str:
    """Accept a bare id, a ``VL`` browse id or a URL carrying ``list=``."""

    candidate = (value or "").strip()
    if "list=" in candidate:
        candidate = candidate.split("list=", 1)[1].split("&", 1)[0]
    if candidate.startswith("VL"):
        candidate = candidate[2:]
    return candidate


class PlaylistService:
    def __init__(
        self,
        settings: Settings,
        sessions: SessionManager,
        caches: CacheManager,
        fetcher: BackgroundFetcher,
    ):
        self._settings = settings
        self._sessions = sessions
        self._store = caches.playlists
        self._fetcher = fetcher

    async def _crawl(self, entry: CacheEntry[Any], playlist_id: str) -> None:
        client = await self._sessions.get()
        try:
            seed = await client.browse(f"VL{playlist_id}")
        except UpstreamError as exc:
            logger.warning("Playlist %s unavailable: %s", playlist_id, exc)
            entry.complete(error=str(exc))
            return

        entry.context["header"] = parse_playlist_header(seed, playlist_id)
        report = await crawl(
            seed,
            entry=entry,
            extract_items=extract_videos,
            extract_token=find_continuation_token,
            fetch_page=client.browse_continuation,
            limits=CrawlLimits.from_settings(self._settings, self._settings.playlist_max_pages),
            label="playlist",
        )
        entry.complete(error=report.error)

    async def get_playlist(
        self, playlist_id: str, start: int | None = None, end: int | None = None
    ) -> dict[str, Any]:
        playlist_id = normalize_playlist_id(playlist_id)
        if not playlist_id:
            raise ValueError("Playlist id is required")

        entry, created = self._store.get_or_create(playlist_id)
        if created:
            logger.info("Fetching playlist %s", playlist_id)
        window = slice_entry(entry, start, end, default_size=self._settings.default_page_size)
        if len(entry.items) < window.end and not entry.is_complete:
            self._fetcher.ensure_fetching(
                self._fetcher.job_key(self._store.name, playlist_id),
                entry,
                lambda: self._crawl(entry, playlist_id),
            )
            await self._fetcher.wait_for(
                self._store,
                playlist_id,
                min_count=window.end,
                max_wait=self._settings.playlist_wait_seconds,
            )
            window = slice_entry(entry, start, end, default_size=self._settings.default_page_size)

        if entry.is_complete and not entry.items and entry.error:
            self._store.evict(playlist_id)
            raise UpstreamError(entry.error)

        header: PlaylistHeader = entry.context.get("header") or PlaylistHeader(id=playlist_id)
        return {
            "success": True,
            "playlist": header.to_payload(),
            **window.payload("videos"),
        }
