"""Normalization of channel handles, URLs and ids into canonical channel ids."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Literal

from ..extraction import parse_search_results, resolved_browse_id
from ..models import ChannelResultRecord
from ..utils import encode_search_params
from .innertube import UpstreamError
from .session import SessionManager

logger = logging.getLogger(__name__)

CHANNEL_ID_RE = re.compile(r"^UC[\w-]{22}$")
CHANNEL_URL_RE = re.compile(r"/channel/(UC[\w-]{22})")
HANDLE_IN_TEXT_RE = re.compile(r"@([\w.\-]+)")

IdentifierKind = Literal["id", "handle"]


@dataclass(slots=True)
class ChannelResolution:
    channel_id: str
    handle: str | None = None
    source: Literal["id", "url", "search"] = "id"


def normalize_identifier(identifier: str) -> tuple[IdentifierKind, str] | None:
    """Classify ``identifier`` as a channel id or an ``@handle``."""

    candidate = (identifier or "").strip()
    if not candidate:
        return None
    url_match = CHANNEL_URL_RE.search(candidate)
    if url_match:
        return "id", url_match.group(1)
    if CHANNEL_ID_RE.match(candidate):
        return "id", candidate
    handle_match = HANDLE_IN_TEXT_RE.search(candidate)
    if handle_match:
        return "handle", f"@{handle_match.group(1)}"
    if "/" in candidate:
        candidate = candidate.rstrip("/").rsplit("/", 1)[-1]
    return "handle", f"@{candidate}"


class ChannelResolver:
    """Resolve handles via URL resolution first, then a channel search."""

    def __init__(self, sessions: SessionManager):
        self._sessions = sessions

    async def resolve(self, identifier: str) -> ChannelResolution | None:
        normalized = normalize_identifier(identifier)
        if normalized is None:
            return None
        kind, value = normalized
        if kind == "id":
            return ChannelResolution(channel_id=value, source="id")

        refresh_session = False
        client = await self._sessions.get()
        try:
            payload = await client.resolve_url(f"https://www.youtube.com/{value}")
            channel_id = resolved_browse_id(payload)
            if channel_id and channel_id.startswith("UC"):
                return ChannelResolution(channel_id=channel_id, handle=value, source="url")
            logger.info("URL resolution for %s returned no channel id", value)
        except UpstreamError as exc:
            logger.warning("URL resolution for %s failed: %s", value, exc)
            refresh_session = True

        client = await self._sessions.get(force_new=refresh_session, stale=client)
        try:
            payload = await client.search(
                value, encode_search_params(content_type="channel")
            )
        except UpstreamError as exc:
            logger.warning("Channel search fallback for %s failed: %s", value, exc)
            return None
        for result in parse_search_results(payload):
            if isinstance(result, ChannelResultRecord) and result.id:
                return ChannelResolution(
                    channel_id=result.id,
                    handle=result.handle or value,
                    source="search",
                )
        logger.info("Could not resolve channel %s", value)
        return None
