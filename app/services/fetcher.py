"""Supervised background crawl jobs."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Awaitable, Callable

from .cache import CacheEntry, CacheStore

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


class BackgroundFetcher:
    """Runs at most one crawl job per key, detached from the requests that start it."""

    def __init__(self, poll_interval: float = 0.1):
        self.poll_interval = poll_interval
        self._jobs: dict[str, asyncio.Task[None]] = {}

    @staticmethod
    def job_key(store_name: str, key: str) -> str:
        return f"{store_name}:{key}"

    def is_running(self, job_key: str) -> bool:
        task = self._jobs.get(job_key)
        return task is not None and not task.done()

    @property
    def running_jobs(self) -> list[str]:
        return [key for key, task in self._jobs.items() if not task.done()]

    def ensure_fetching(self, job_key: str, entry: CacheEntry[Any], job: Job) -> bool:
        """Start ``job`` for ``entry`` unless a crawl already owns it.

        ``entry.is_fetching`` is claimed before this returns, so a second
        caller in the same tick sees the entry as taken.
        """

        if self.is_running(job_key) or entry.is_fetching or entry.is_complete:
            return False
        entry.is_fetching = True

        async def _runner() -> None:
            try:
                await job()
            except asyncio.CancelledError:
                logger.info("Background fetch %s cancelled", job_key)
                raise
            except Exception as exc:
                logger.exception("Background fetch %s failed: %s", job_key, exc)
                entry.complete(error=str(exc))
            finally:
                entry.is_fetching = False
                if self._jobs.get(job_key) is asyncio.current_task():
                    self._jobs.pop(job_key, None)

        self._jobs[job_key] = asyncio.create_task(_runner(), name=f"fetch:{job_key}")
        return True

    async def wait_for(
        self,
        store: CacheStore[Any],
        key: str,
        min_count: int | None,
        max_wait: float,
    ) -> bool:
        """Poll until ``key`` holds ``min_count`` items or is complete.

        ``min_count=None`` waits for completion only.

        Returns ``False`` on timeout, when the key disappears, or when no
        crawl is left that could change the answer.
        """

        loop = asyncio.get_running_loop()
        deadline = loop.time() + max_wait
        while True:
            entry = store.get(key)
            if entry is None:
                return False
            if entry.is_complete or (
                min_count is not None and len(entry.items) >= min_count
            ):
                return True
            if not entry.is_fetching:
                return False
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self.poll_interval)

    def cancel(self, job_key: str) -> bool:
        task = self._jobs.pop(job_key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def stop(self) -> None:
        """Cancel every running job and wait for them to unwind."""

        tasks = list(self._jobs.values())
        self._jobs.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
