"""Comment threads crawled through the watch-next continuation chain."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..config import Settings
from ..extraction import (
    comment_count_text,
    find_comment_section_token,
    find_comment_sort_token,
    find_continuation_token,
    parse_comments,
)
from ..models import CommentSort
from .assembler import resolve_range, slice_entry
from .cache import CacheEntry, CacheManager
from .crawler import CrawlLimits, CrawlOutcome, crawl
from .fetcher import BackgroundFetcher
from .innertube import InnerTubeClient, UpstreamError
from .session import SessionManager

logger = logging.getLogger(__name__)

DISABLED_MESSAGE = "No comments found or comments are disabled"


def normalize_sort(value: str | None) -> CommentSort:
    if value and value.strip().lower() in {"newest", "new", "time", "latest"}:
        return "newest"
    return "top"


def comment_cache_key(video_id: str, sort: CommentSort) -> str:
    return f"{video_id}|{sort}"


class CommentService:
    """Serve comment windows, resuming the crawl when a request asks for more."""

    def __init__(
        self,
        settings: Settings,
        sessions: SessionManager,
        caches: CacheManager,
        fetcher: BackgroundFetcher,
    ):
        self._settings = settings
        self._sessions = sessions
        self._store = caches.comments
        self._fetcher = fetcher

    async def get_comments(
        self,
        video_id: str,
        start: int | None = None,
        end: int | None = None,
        sort: str | None = "top",
    ) -> dict[str, Any]:
        sort_order = normalize_sort(sort)
        key = comment_cache_key(video_id, sort_order)
        resolved_start, resolved_end = resolve_range(
            start, end, self._settings.default_page_size
        )
        target = min(resolved_end, self._settings.comment_max_count)

        entry, created = self._store.get_or_create(
            key, context={"videoId": video_id, "sort": sort_order}
        )
        if created:
            logger.info("Fetching comments for %s (sort: %s)", video_id, sort_order)
        await self._fill(entry, key, video_id=video_id, sort=sort_order, target=target)

        if entry.is_complete and not entry.items and entry.error:
            self._store.evict(key)
            raise UpstreamError(entry.error)

        window = slice_entry(entry, resolved_start, resolved_end)
        payload: dict[str, Any] = {
            "success": True,
            "videoId": video_id,
            "sortBy": sort_order,
            "commentCount": entry.context.get("commentCount"),
            "totalFetched": window.total_cached,
            **window.payload("comments"),
        }
        if entry.context.get("disabled"):
            payload["message"] = DISABLED_MESSAGE
        return payload

    async def _fill(
        self,
        entry: CacheEntry[Any],
        key: str,
        *,
        video_id: str,
        sort: CommentSort,
        target: int,
    ) -> None:
        """Wait until ``entry`` holds ``target`` comments, is complete, or time runs out.

        A crawl started by a smaller window stops at its own target; when it
        ends short of ``target`` the crawl is resumed for this request.
        """

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.comment_wait_seconds
        while len(entry.items) < target and not entry.is_complete:
            self._fetcher.ensure_fetching(
                self._fetcher.job_key(self._store.name, key),
                entry,
                lambda: self._crawl(entry, video_id=video_id, sort=sort, target=target),
            )
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            reached = await self._fetcher.wait_for(
                self._store, key, min_count=target, max_wait=remaining
            )
            if reached or self._store.get(key) is not entry:
                return

    async def _open(
        self, client: InnerTubeClient, video_id: str, sort: CommentSort, entry: CacheEntry[Any]
    ) -> dict[str, Any] | None:
        """Return the first comment page, or ``None`` when the video has no comment section."""

        watch_next = await client.next(video_id)
        token = find_comment_section_token(watch_next)
        if not token:
            return None
        page = await client.next_continuation(token)
        entry.context["commentCount"] = comment_count_text(page)
        if sort == "newest":
            sort_token = find_comment_sort_token(page, "newest")
            if sort_token:
                page = await client.next_continuation(sort_token)
            else:
                logger.info("No sort menu for %s comments, keeping top order", video_id)
        return page

    async def _crawl(
        self,
        entry: CacheEntry[Any],
        *,
        video_id: str,
        sort: CommentSort,
        target: int,
    ) -> None:
        client = await self._sessions.get()
        remaining_pages = self._settings.comment_max_pages - entry.pages_fetched
        if remaining_pages <= 0:
            entry.complete()
            return

        try:
            if entry.continuation:
                seed = await client.next_continuation(entry.continuation)
            else:
                seed = await self._open(client, video_id, sort, entry)
        except UpstreamError as exc:
            logger.warning("Could not load comments for %s: %s", video_id, exc)
            entry.complete(error=str(exc))
            return

        if seed is None:
            logger.info("Comments unavailable for %s", video_id)
            entry.context["disabled"] = True
            entry.complete()
            return

        report = await crawl(
            seed,
            entry=entry,
            extract_items=parse_comments,
            extract_token=find_continuation_token,
            fetch_page=client.next_continuation,
            limits=CrawlLimits.from_settings(
                self._settings,
                remaining_pages,
                target_items=target,
                rate_limit_every=self._settings.comment_rate_limit_every,
            ),
            label="comments",
        )
        resumable = (
            report.outcome is CrawlOutcome.TARGET_REACHED
            and len(entry.items) < self._settings.comment_max_count
        )
        if not resumable:
            entry.complete(error=report.error)

    def cache_status(self, video_id: str, sort: str | None = "top") -> dict[str, Any]:
        sort_order = normalize_sort(sort)
        return {
            "success": True,
            "videoId": video_id,
            "sortBy": sort_order,
            **self._store.status(comment_cache_key(video_id, sort_order)),
        }

    def clear_cache(self, video_id: str | None = None) -> dict[str, Any]:
        if video_id:
            cleared = self._store.evict_prefix(f"{video_id}|")
        else:
            cleared = self._store.clear()
        logger.info("Cleared %s comment cache entries", cleared)
        return {"success": True, "cleared": cleared}
