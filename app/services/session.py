"""Lifecycle of the shared upstream session."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import httpx

from ..config import Settings
from .innertube import InnerTubeClient, InnerTubeSession

logger = logging.getLogger(__name__)

ClientFactory = Callable[[InnerTubeSession], InnerTubeClient]


class SessionManager:
    """Lazily creates one client per session and rebuilds it on demand.

    Only ``get(force_new=True)`` replaces the session; concurrent callers naming
    the same ``stale`` client share a single replacement.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        *,
        client_factory: ClientFactory | None = None,
    ):
        if client_factory is None and http_client is None:
            raise ValueError("SessionManager needs an http client or a client factory")
        self._settings = settings
        self._http_client = http_client
        self._client_factory = client_factory
        self._client: InnerTubeClient | None = None
        self._lock = asyncio.Lock()
        self.generation = 0

    def _build(self) -> InnerTubeClient:
        session = InnerTubeSession.from_settings(self._settings)
        if self._client_factory is not None:
            return self._client_factory(session)
        assert self._http_client is not None
        return InnerTubeClient(self._settings, self._http_client, session)

    async def get(
        self, *, force_new: bool = False, stale: InnerTubeClient | None = None
    ) -> InnerTubeClient:
        """Return the shared client, replacing it when ``force_new`` is set.

        ``stale`` names the client that just failed; if another caller has
        already replaced it, the replacement is returned as is.
        """

        if self._client is not None and not force_new:
            return self._client
        observed = self.generation
        async with self._lock:
            if self._client is not None:
                if not force_new or self.generation != observed:
                    return self._client
                if stale is not None and self._client is not stale:
                    return self._client
            self._client = self._build()
            self.generation += 1
            if force_new:
                logger.info("Created fresh upstream session (generation %s)", self.generation)
            return self._client
