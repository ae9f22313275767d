"""In-process caches for crawled listings and per-video lookups."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Generic, Iterable, Iterator, TypeVar

from ..config import Settings

if TYPE_CHECKING:
    from .fetcher import BackgroundFetcher

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], float]
ItemKey = Callable[[Any], str | None]


def record_id(item: Any) -> str | None:
    return getattr(item, "id", None)


@dataclass(slots=True)
class CacheEntry(Generic[T]):
    """State of one crawled listing (channel, search, comment thread, playlist)."""

    key: str
    clock: Clock = field(default=time.time, repr=False)
    items: list[T] = field(default_factory=list)
    seen_ids: set[str] = field(default_factory=set)
    is_fetching: bool = False
    is_complete: bool = False
    continuation: str | None = None
    error: str | None = None
    created_at: float = 0.0
    last_update: float = 0.0
    pages_fetched: int = 0
    strategies: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        now = self.clock()
        self.created_at = self.created_at or now
        self.last_update = self.last_update or now

    def merge(self, items: Iterable[T], key: ItemKey = record_id) -> int:
        """Append unseen items in order and return how many were admitted."""

        admitted = 0
        for item in items:
            item_id = key(item)
            if not item_id or item_id in self.seen_ids:
                continue
            self.seen_ids.add(item_id)
            self.items.append(item)
            admitted += 1
        self.pages_fetched += 1
        self.last_update = self.clock()
        return admitted

    def complete(self, *, error: str | None = None) -> None:
        self.is_complete = True
        self.continuation = None
        if error:
            self.error = error

    @property
    def status(self) -> str:
        if self.is_complete:
            return "complete"
        if self.is_fetching:
            return "fetching"
        return "partial"

    def status_payload(self) -> dict[str, Any]:
        return {
            "exists": True,
            "status": self.status,
            "itemCount": len(self.items),
            "isComplete": self.is_complete,
            "isFetching": self.is_fetching,
            "pagesFetched": self.pages_fetched,
            "hasContinuation": self.continuation is not None,
            "createdAt": self.created_at,
            "lastUpdate": self.last_update,
            "error": self.error,
            "strategies": {
                name: report.as_dict() if hasattr(report, "as_dict") else report
                for name, report in self.strategies.items()
            },
        }


class CacheStore(Generic[T]):
    """Keyed :class:`CacheEntry` records with TTL replacement."""

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        *,
        clock: Clock = time.time,
        on_evict: Callable[[str], None] | None = None,
    ):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self.on_evict = on_evict

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def is_expired(self, entry: CacheEntry[T]) -> bool:
        return self._clock() - entry.last_update > self.ttl_seconds

    def get(self, key: str) -> CacheEntry[T] | None:
        return self._entries.get(key)

    def get_or_create(
        self, key: str, *, context: dict[str, Any] | None = None
    ) -> tuple[CacheEntry[T], bool]:
        """Return the live entry for ``key`` or a fresh one.

        An expired entry is replaced wholesale unless a crawl still owns it.
        """

        entry = self._entries.get(key)
        if entry is not None:
            if entry.is_fetching or not self.is_expired(entry):
                return entry, False
            logger.info("Replacing expired %s cache entry %s", self.name, key)
        entry = CacheEntry(key=key, clock=self._clock, context=dict(context or {}))
        self._entries[key] = entry
        return entry, True

    def evict(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        if self.on_evict is not None:
            self.on_evict(key)
        return True

    def evict_prefix(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            self.evict(key)
        return len(keys)

    def clear(self) -> int:
        keys = list(self._entries)
        for key in keys:
            self.evict(key)
        return len(keys)

    def status(self, key: str) -> dict[str, Any]:
        entry = self._entries.get(key)
        if entry is None:
            return {"exists": False, "status": None, "itemCount": 0, "isComplete": False}
        payload = entry.status_payload()
        payload["isExpired"] = self.is_expired(entry)
        return payload


class TimedValueCache(Generic[T]):
    """Plain key/value cache for single lookups (video details, tags)."""

    def __init__(self, name: str, ttl_seconds: float, *, clock: Clock = time.time):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._values: dict[str, tuple[float, T]] = {}

    def get(self, key: str) -> T | None:
        cached = self._values.get(key)
        if cached is None:
            return None
        stored_at, value = cached
        if self._clock() - stored_at > self.ttl_seconds:
            self._values.pop(key, None)
            return None
        return value

    def set(self, key: str, value: T) -> None:
        self._values[key] = (self._clock(), value)

    def evict(self, key: str) -> bool:
        return self._values.pop(key, None) is not None

    def clear(self) -> int:
        count = len(self._values)
        self._values.clear()
        return count

    def __len__(self) -> int:
        return len(self._values)


class CacheManager:
    """Owns every cache; built once at startup and shared through ``app.state``."""

    def __init__(
        self,
        settings: Settings,
        fetcher: "BackgroundFetcher | None" = None,
        *,
        clock: Clock = time.time,
    ):
        self.channels: CacheStore[Any] = CacheStore(
            "channels", settings.channel_cache_seconds, clock=clock
        )
        self.searches: CacheStore[Any] = CacheStore(
            "searches", settings.search_cache_seconds, clock=clock
        )
        self.comments: CacheStore[Any] = CacheStore(
            "comments", settings.comment_cache_seconds, clock=clock
        )
        self.playlists: CacheStore[Any] = CacheStore(
            "playlists", settings.playlist_cache_seconds, clock=clock
        )
        self.video_details: TimedValueCache[Any] = TimedValueCache(
            "video_details", settings.video_details_cache_seconds, clock=clock
        )
        self.tags: TimedValueCache[Any] = TimedValueCache(
            "tags", settings.video_details_cache_seconds, clock=clock
        )
        if fetcher is not None:
            for store in self.stores():
                store.on_evict = _cancel_job(fetcher, store.name)

    def stores(self) -> tuple[CacheStore[Any], ...]:
        return (self.channels, self.searches, self.comments, self.playlists)

    def clear_all(self) -> int:
        cleared = sum(store.clear() for store in self.stores())
        cleared += self.video_details.clear() + self.tags.clear()
        return cleared


def _cancel_job(fetcher: "BackgroundFetcher", store_name: str) -> Callable[[str], None]:
    def cancel(key: str) -> None:
        fetcher.cancel(fetcher.job_key(store_name, key))

    return cancel
