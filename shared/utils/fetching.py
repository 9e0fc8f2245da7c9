"""
shared/utils/fetching.py
Debounced, latest-only execution of filter-driven list fetches.

When an operator changes a filter while an earlier fetch for the same key
is still waiting or in flight, the earlier one is cancelled and its caller
gets RequestSuperseded. A late response can never overwrite a newer one.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from config.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestSuperseded(Exception):
    """The fetch was replaced by a newer one for the same key."""

    def __init__(self, key: str):
        super().__init__(f"Request superseded by a newer one ({key})")
        self.key = key


class LatestOnlyFetcher:
    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self._inflight: dict[str, asyncio.Task] = {}

    async def _delayed(self, factory: Callable[[], Awaitable[T]]) -> T:
        if self.delay:
            await asyncio.sleep(self.delay)
        return await factory()

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        previous = self._inflight.get(key)
        if previous and not previous.done():
            logger.debug(f"Cancelling stale fetch for {key}")
            previous.cancel()

        task = asyncio.ensure_future(self._delayed(factory))
        self._inflight[key] = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]

        if task.cancelled():
            raise RequestSuperseded(key)
        return task.result()


_fetcher: Optional[LatestOnlyFetcher] = None


def get_fetcher() -> LatestOnlyFetcher:
    """FastAPI dependency: the shared fetcher, debounced by FILTER_DEBOUNCE_MS."""
    global _fetcher
    if _fetcher is None:
        _fetcher = LatestOnlyFetcher(settings.filter_debounce_seconds)
    return _fetcher
