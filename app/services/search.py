"""Search listings, suggestions, trending and related-video discovery."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Sequence

from ..config import Settings
from ..extraction import (
    extract_videos,
    find_continuation_token,
    parse_search_results,
    parse_suggestions,
)
from ..models import (
    ChannelResultRecord,
    PlaylistResultRecord,
    RelatedVia,
    SearchResultRecord,
    VideoRecord,
)
from ..tags import build_related_queries, clean_tags, fallback_related_queries, unique
from ..utils import encode_search_params
from .assembler import slice_entry
from .cache import CacheEntry, CacheManager
from .crawler import CrawlLimits, crawl
from .fetcher import BackgroundFetcher
from .innertube import UpstreamError
from .session import SessionManager
from .video_info import VideoInfoService

logger = logging.getLogger(__name__)

TRENDING_BROWSE_ID = "FEtrending"
TAG_BATCH_PAUSE_SECONDS = 0.1
RESULT_TYPES = {"video": VideoRecord, "channel": ChannelResultRecord, "playlist": PlaylistResultRecord}


@dataclass(frozen=True, slots=True)
class SearchFilters:
    """Normalized search filters; also the cache key signature."""

    type: str = "all"
    sort: str = "relevance"
    duration: str | None = None
    upload_date: str | None = None

    @classmethod
    def build(
        cls,
        type: str | None = None,
        sort: str | None = None,
        duration: str | None = None,
        upload_date: str | None = None,
    ) -> "SearchFilters":
        return cls(
            type=(type or "all").strip().lower() or "all",
            sort=(sort or "relevance").strip().lower() or "relevance",
            duration=(duration or "").strip().lower() or None,
            upload_date=(upload_date or "").strip().lower() or None,
        )

    def params(self) -> str | None:
        return encode_search_params(
            sort=self.sort,
            content_type=None if self.type == "all" else self.type,
            duration=self.duration,
            upload_date=self.upload_date,
        )

    def accepts(self, record: SearchResultRecord) -> bool:
        wanted = RESULT_TYPES.get(self.type)
        if wanted is None:
            return self.type != "movie" or isinstance(record, VideoRecord)
        return isinstance(record, wanted)

    def payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "sort": self.sort,
            "duration": self.duration,
            "uploadDate": self.upload_date,
        }


def search_cache_key(query: str, filters: SearchFilters) -> str:
    return "|".join(
        [
            query.lower().strip(),
            filters.type,
            filters.sort,
            filters.duration or "",
            filters.upload_date or "",
        ]
    )


def result_key(record: SearchResultRecord) -> str | None:
    return f"{record.type}:{record.id}" if record.id else None


class SearchService:
    """Serve search windows from background-crawled result caches."""

    def __init__(
        self,
        settings: Settings,
        sessions: SessionManager,
        caches: CacheManager,
        fetcher: BackgroundFetcher,
        video_info: VideoInfoService,
    ):
        self._settings = settings
        self._sessions = sessions
        self._store = caches.searches
        self._fetcher = fetcher
        self._video_info = video_info

    def _start_crawl(self, key: str, query: str, filters: SearchFilters, entry: CacheEntry[Any]) -> bool:
        return self._fetcher.ensure_fetching(
            self._fetcher.job_key(self._store.name, key),
            entry,
            lambda: self._crawl(entry, query, filters),
        )

    async def _crawl(self, entry: CacheEntry[Any], query: str, filters: SearchFilters) -> None:
        client = await self._sessions.get()
        try:
            seed = await client.search(query, filters.params())
        except UpstreamError as exc:
            logger.warning("Search for %r failed: %s", query, exc)
            entry.complete(error=str(exc))
            return

        def extract(payload: Any) -> list[SearchResultRecord]:
            return [record for record in parse_search_results(payload) if filters.accepts(record)]

        report = await crawl(
            seed,
            entry=entry,
            extract_items=extract,
            extract_token=find_continuation_token,
            fetch_page=client.search_continuation,
            limits=CrawlLimits.from_settings(
                self._settings,
                self._settings.search_max_pages,
                target_items=self._settings.search_max_results,
                rate_limit_every=self._settings.search_rate_limit_every,
            ),
            item_key=result_key,
            label="search",
        )
        entry.complete(error=report.error)
        logger.info(
            "Search %r finished (%s): %s results", query, report.outcome.value, len(entry.items)
        )

    async def search(
        self,
        query: str,
        *,
        type: str | None = None,
        sort: str | None = None,
        duration: str | None = None,
        upload_date: str | None = None,
        start: int | None = None,
        end: int | None = None,
        fetch_tags: bool = False,
    ) -> dict[str, Any]:
        query = query.strip()
        if not query:
            raise ValueError('Query parameter "q" or "query" is required')
        filters = SearchFilters.build(type, sort, duration, upload_date)
        key = search_cache_key(query, filters)

        entry, created = self._store.get_or_create(key, context={"query": query})
        if created:
            logger.info("Searching %r (%s)", query, key)
        window = slice_entry(entry, start, end, default_size=self._settings.default_page_size)
        if len(entry.items) < window.end and not entry.is_complete:
            self._start_crawl(key, query, filters, entry)
            await self._fetcher.wait_for(
                self._store,
                key,
                min_count=window.end,
                max_wait=self._settings.search_wait_seconds,
            )
            window = slice_entry(entry, start, end, default_size=self._settings.default_page_size)

        if entry.is_complete and not entry.items and entry.error:
            self._store.evict(key)
            raise UpstreamError(entry.error)

        results: list[SearchResultRecord] = list(window.items)
        if fetch_tags:
            results = await self._with_tags(results)

        videos = [record for record in results if isinstance(record, VideoRecord)]
        channels = [record for record in results if isinstance(record, ChannelResultRecord)]
        playlists = [record for record in results if isinstance(record, PlaylistResultRecord)]
        return {
            "success": True,
            "query": query,
            "filters": filters.payload(),
            "range": window.range_payload(),
            "totalResults": window.total_returned,
            "totalCached": window.total_cached,
            "cacheStatus": window.status,
            "isComplete": window.is_complete,
            "hasMore": window.has_more,
            "tagsIncluded": fetch_tags,
            "results": [record.to_payload() for record in results],
            "summary": {
                "videos": len(videos),
                "channels": len(channels),
                "playlists": len(playlists),
            },
            "videos": [record.to_payload() for record in videos],
            "channels": [record.to_payload() for record in channels],
            "playlists": [record.to_payload() for record in playlists],
        }

    async def _with_tags(self, results: Sequence[SearchResultRecord]) -> list[SearchResultRecord]:
        """Return copies of ``results`` with full tags merged into video metadata."""

        ids = [
            record.id
            for record in results
            if isinstance(record, VideoRecord) and not record.metadata.has_full_tags
        ]
        tags_by_id: dict[str, dict[str, Any]] = {}
        batch_size = self._settings.tag_fetch_concurrency
        for offset in range(0, len(ids), batch_size):
            batch = ids[offset : offset + batch_size]
            fetched = await asyncio.gather(*(self._video_info.get_tags(video_id) for video_id in batch))
            tags_by_id.update(zip(batch, fetched))
            if offset + batch_size < len(ids):
                await asyncio.sleep(TAG_BATCH_PAUSE_SECONDS)

        enriched: list[SearchResultRecord] = []
        for record in results:
            tags = tags_by_id.get(record.id) if isinstance(record, VideoRecord) else None
            if tags is None:
                enriched.append(record)
                continue
            metadata = record.metadata.model_copy(
                update={
                    "tags": tags["tags"],
                    "keywords": tags["keywords"],
                    "category": tags["category"],
                    "all_tags": unique(
                        clean_tags(
                            record.metadata.badges
                            + record.metadata.hashtags
                            + tags["tags"]
                            + tags["keywords"][:10]
                        )
                    ),
                    "has_full_tags": True,
                }
            )
            enriched.append(record.model_copy(update={"metadata": metadata}))
        return enriched

    async def search_videos(self, query: str, **options: Any) -> dict[str, Any]:
        return await self.search(query, type="video", **options)

    async def search_channels(self, query: str, **options: Any) -> dict[str, Any]:
        return await self.search(query, type="channel", **options)

    async def search_playlists(self, query: str, **options: Any) -> dict[str, Any]:
        return await self.search(query, type="playlist", **options)

    async def search_by_tag(self, tag: str, **options: Any) -> dict[str, Any]:
        cleaned = tag.strip().lstrip("#").strip()
        if not cleaned:
            raise ValueError('Tag parameter "q" or "query" is required')
        result = await self.search(f"#{cleaned}", type="video", **options)
        result["tag"] = cleaned
        return result

    async def suggestions(self, query: str) -> dict[str, Any]:
        client = await self._sessions.get()
        body = await client.suggestions(query)
        return {"success": True, "query": query, "suggestions": parse_suggestions(body)}

    async def trending(self, region: str | None = None) -> dict[str, Any]:
        """Trending videos from the trending feed, falling back to a search."""

        client = await self._sessions.get()
        videos: list[VideoRecord] = []
        try:
            videos = extract_videos(await client.browse(TRENDING_BROWSE_ID))
        except UpstreamError as exc:
            logger.warning("Trending feed unavailable: %s", exc)
        if not videos:
            logger.info("Trending feed empty, falling back to search")
            payload = await client.search("trending", encode_search_params(content_type="video"))
            videos = [record for record in parse_search_results(payload) if isinstance(record, VideoRecord)]
        return {
            "success": True,
            "region": region or self._settings.innertube_region,
            "totalResults": len(videos),
            "results": [video.to_payload() for video in videos],
        }

    async def find_related(
        self, video_id: str, start: int | None = None, limit: int | None = None
    ) -> dict[str, Any]:
        """Videos related to ``video_id`` through weighted tag and title queries."""

        start = max(1, start or 1)
        if limit is None:
            limit = self._settings.default_page_size
        detail = await self._video_info.get_detail(video_id)

        queries = build_related_queries(
            title=detail.title if detail.title != "Unknown" else "",
            channel_name=detail.channel.name,
            hashtags=detail.hashtags,
            artists=detail.artists,
            meaningful_keywords=detail.meaningful_keywords,
            category=detail.category,
            singer=detail.credits.singer,
        ) or fallback_related_queries(
            title=detail.title if detail.title != "Unknown" else "",
            channel_name=detail.channel.name,
        )
        to_run = queries[: self._settings.related_max_queries]
        per_query = math.ceil(max(limit, 0) / len(to_run)) + 5

        async def run(query: str) -> list[dict[str, Any]]:
            try:
                result = await self.search(query, type="video", start=1, end=per_query)
            except (UpstreamError, ValueError) as exc:
                logger.warning("Related query %r failed: %s", query, exc)
                return []
            return result["videos"]

        batches = await asyncio.gather(*(run(related.query) for related in to_run))

        seen = {video_id}
        found: list[dict[str, Any]] = []
        queries_used: list[dict[str, Any]] = []
        for related, videos in zip(to_run, batches):
            if not videos:
                continue
            queries_used.append(
                {"query": related.query, "type": related.type, "resultCount": len(videos)}
            )
            for video in videos:
                if video["id"] in seen:
                    continue
                seen.add(video["id"])
                via = RelatedVia(query=related.query, type=related.type, weight=related.weight)
                found.append({**video, "relatedVia": via.to_payload()})

        found.sort(
            key=lambda video: (
                -video["relatedVia"]["weight"],
                not video["channel"]["isVerified"],
                video["metadata"]["isShort"],
            )
        )
        page = found[start - 1 : start - 1 + limit] if limit > 0 else []
        return {
            "success": True,
            "originalVideo": {
                "id": detail.id,
                "title": detail.title,
                "channel": detail.channel.name,
            },
            "searchStrategy": {
                "queriesUsed": queries_used,
                "totalQueries": len(queries),
                "queriesExecuted": len(to_run),
            },
            "basedOn": {
                "hashtags": detail.hashtags,
                "artists": detail.artists,
                "singer": detail.credits.singer,
                "category": detail.category,
                "keywords": detail.meaningful_keywords[:5],
            },
            "range": {"start": start, "end": start + limit - 1},
            "totalResults": len(page),
            "totalFound": len(found),
            "results": page,
            "videos": page,
        }

    async def prefetch(self, query: str, **filters: Any) -> dict[str, Any]:
        search_filters = SearchFilters.build(**filters)
        key = search_cache_key(query, search_filters)
        entry, _ = self._store.get_or_create(key, context={"query": query})
        started = self._start_crawl(key, query.strip(), search_filters, entry)
        return {"success": True, "query": query, "started": started, "cacheStatus": entry.status}

    def cache_status(self, query: str, **filters: Any) -> dict[str, Any]:
        key = search_cache_key(query, SearchFilters.build(**filters))
        return {"success": True, "query": query, **self._store.status(key)}

    def clear_cache(self, query: str | None = None) -> dict[str, Any]:
        if query:
            cleared = self._store.evict_prefix(f"{query.lower().strip()}|")
            message = f'Cache cleared for "{query}"'
        else:
            cleared = self._store.clear()
            message = "All search cache cleared"
        logger.info("Cleared %s search cache entries", cleared)
        return {"success": True, "cleared": cleared, "message": message}


