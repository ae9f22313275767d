"""Slicing cached listings into paginated responses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from .cache import CacheEntry

DEFAULT_WINDOW = 20


def resolve_range(
    start: int | None, end: int | None, default_size: int = DEFAULT_WINDOW
) -> tuple[int, int]:
    """Normalize a 1-based inclusive range.

    No bounds gives the default window; only ``start`` gives a default-sized
    window from there; only ``end`` starts at 1. A ``start`` below 1 becomes 1;
    an ``end`` below ``start`` is kept and yields an empty window.
    """

    resolved_start = max(1, start) if start is not None else 1
    resolved_end = resolved_start + default_size - 1 if end is None else end
    return resolved_start, resolved_end


@dataclass(slots=True)
class ResultWindow:
    items: list[Any]
    start: int
    end: int
    total_cached: int
    status: str
    is_complete: bool
    has_more: bool

    @property
    def total_returned(self) -> int:
        return len(self.items)

    def range_payload(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}

    def serialized_items(self) -> list[Any]:
        return [
            item.to_payload() if hasattr(item, "to_payload") else item for item in self.items
        ]

    def payload(self, items_key: str = "items") -> dict[str, Any]:
        return {
            "range": self.range_payload(),
            "totalCached": self.total_cached,
            "totalReturned": self.total_returned,
            "cacheStatus": self.status,
            "isComplete": self.is_complete,
            "hasMore": self.has_more,
            items_key: self.serialized_items(),
        }


def slice_items(
    items: Sequence[Any],
    start: int,
    end: int,
) -> list[Any]:
    if start > len(items) or end < start:
        return []
    return list(items[start - 1 : min(end, len(items))])


def slice_entry(
    entry: CacheEntry[Any],
    start: int | None = None,
    end: int | None = None,
    *,
    default_size: int = DEFAULT_WINDOW,
) -> ResultWindow:
    """Return the requested window of ``entry`` with its freshness status."""

    resolved_start, resolved_end = resolve_range(start, end, default_size)
    items = entry.items
    return ResultWindow(
        items=slice_items(items, resolved_start, resolved_end),
        start=resolved_start,
        end=resolved_end,
        total_cached=len(items),
        status=entry.status,
        is_complete=entry.is_complete,
        has_more=not entry.is_complete or len(items) > resolved_end,
    )
