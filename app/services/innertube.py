"""Utilities for communicating with the InnerTube web API."""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import string
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..config import Settings

logger = logging.getLogger(__name__)

VISITOR_ALPHABET = string.ascii_letters + string.digits + "-_"
LENGTH_SECONDS_RE = re.compile(r'"lengthSeconds"\s*:\s*"(\d+)"')
APPROX_DURATION_RE = re.compile(r'"approxDurationMs"\s*:\s*"(\d+)"')


class UpstreamError(RuntimeError):
    """Raised when an upstream call fails or returns an unusable body."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def generate_visitor_data() -> str:
    """Return a locally generated visitor id (``Cgt`` + 22 random characters)."""

    suffix = "".join(secrets.choice(VISITOR_ALPHABET) for _ in range(22))
    return f"Cgt{suffix}"


@dataclass(slots=True)
class InnerTubeSession:
    """Client identity sent with every request."""

    client_name: str
    client_version: str
    language: str
    region: str
    visitor_data: str = field(default_factory=generate_visitor_data)

    @classmethod
    def from_settings(cls, settings: Settings) -> "InnerTubeSession":
        return cls(
            client_name=settings.innertube_client_name,
            client_version=settings.innertube_client_version,
            language=settings.innertube_language,
            region=settings.innertube_region,
        )

    def context(self) -> dict[str, Any]:
        return {
            "client": {
                "clientName": self.client_name,
                "clientVersion": self.client_version,
                "hl": self.language,
                "gl": self.region,
                "visitorData": self.visitor_data,
            }
        }


class InnerTubeClient:
    """Thin wrapper around the InnerTube endpoints.

    Every method returns the decoded JSON tree untouched; interpretation is
    left to :mod:`app.extraction`.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        session: InnerTubeSession | None = None,
        *,
        max_retries: int = 2,
    ):
        self._settings = settings
        self._client = http_client
        self._session = session or InnerTubeSession.from_settings(settings)
        self._base_url = str(settings.innertube_url).rstrip("/")
        self._max_retries = max_retries

    @property
    def session(self) -> InnerTubeSession:
        return self._session

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Origin": "https://www.youtube.com",
            "X-Youtube-Client-Name": "1",
            "X-Youtube-Client-Version": self._session.client_version,
            "X-Goog-Visitor-Id": self._session.visitor_data,
            "User-Agent": f"Mozilla/5.0 ({self._settings.app_name})",
        }

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.HTTPError as exc:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = min(2 ** (attempt - 1), 5) + (0.1 * attempt)
                    logger.info(
                        "Transient error talking to InnerTube (%s). Retrying in %.1fs",
                        exc.__class__.__name__,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise UpstreamError(f"Request to {url} failed: {exc}") from exc

            if 500 <= response.status_code < 600 and attempt < self._max_retries:
                attempt += 1
                backoff = min(2 ** (attempt - 1), 5) + (0.1 * attempt)
                logger.info(
                    "InnerTube %s from %s. Retrying in %.1fs",
                    response.status_code,
                    url,
                    backoff,
                )
                await asyncio.sleep(backoff)
                continue
            if response.status_code >= 400:
                raise UpstreamError(
                    f"{url} returned HTTP {response.status_code}",
                    status_code=response.status_code,
                )
            return response

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        body = {"context": self._session.context(), **payload}
        response = await self._send(
            "POST",
            f"{self._base_url}/{endpoint}",
            params={"prettyPrint": "false"},
            json=body,
            headers=self._headers(),
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"Unexpected non-JSON response from {endpoint}",
                status_code=response.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise UpstreamError(f"Unexpected response structure from {endpoint}")
        return data

    async def resolve_url(self, url: str) -> dict[str, Any]:
        return await self._post("navigation/resolve_url", {"url": url})

    async def search(self, query: str, params: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"query": query}
        if params:
            payload["params"] = params
        return await self._post("search", payload)

    async def search_continuation(self, token: str) -> dict[str, Any]:
        return await self._post("search", {"continuation": token})

    async def browse(self, browse_id: str, params: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"browseId": browse_id}
        if params:
            payload["params"] = params
        return await self._post("browse", payload)

    async def browse_continuation(self, token: str) -> dict[str, Any]:
        return await self._post("browse", {"continuation": token})

    async def next(self, video_id: str) -> dict[str, Any]:
        return await self._post("next", {"videoId": video_id})

    async def next_continuation(self, token: str) -> dict[str, Any]:
        return await self._post("next", {"continuation": token})

    async def player(self, video_id: str) -> dict[str, Any]:
        return await self._post(
            "player",
            {"videoId": video_id, "contentCheckOk": True, "racyCheckOk": True},
        )

    async def suggestions(self, query: str) -> str:
        """Return the raw JSONP autocomplete body."""

        response = await self._send(
            "GET",
            str(self._settings.suggest_url),
            params={
                "client": "youtube",
                "ds": "yt",
                "q": query,
                "hl": self._session.language,
                "gl": self._session.region,
            },
        )
        return response.text

    async def watch_page(self, video_id: str) -> str:
        response = await self._send(
            "GET",
            str(self._settings.watch_url),
            params={"v": video_id, "hl": self._session.language},
            headers={"User-Agent": self._headers()["User-Agent"]},
        )
        return response.text


def length_seconds_from_html(html: str) -> int:
    """Pull ``lengthSeconds`` out of a watch page; 0 when absent."""

    match = LENGTH_SECONDS_RE.search(html or "")
    if match:
        return int(match.group(1))
    match = APPROX_DURATION_RE.search(html or "")
    return int(match.group(1)) // 1000 if match else 0
