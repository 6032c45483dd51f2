#!/usr/bin/env python3
"""
Strategy Engine — how a classified request gets its response

  CacheFirst            static partition, network only on a miss
  NetworkFirst          network, dynamic partition as the offline fallback
  StaleWhileRevalidate  dynamic partition now, network refresh in the background

Only GET requests touch the cache, and only status-200 responses are written
through. A failed write is logged and dropped: the caller already has a good
response, the cache just misses out.
"""

import asyncio
import logging
from typing import Optional, Protocol, Set

from cachestore.http import Request, Response
from cachestore.store import CachePartition, CacheStore, CacheStoreError

from .errors import NetworkError

logger = logging.getLogger(__name__)


class FetchFn(Protocol):
    async def fetch(self, request: Request) -> Response: ...


class Strategy:
    """Base policy: resolve a request from one partition and the network."""

    name = "base"

    def __init__(self, store: CacheStore, partition_name: str, fetcher: FetchFn):
        self.store = store
        self.partition_name = partition_name
        self.fetcher = fetcher

    @property
    def partition(self) -> CachePartition:
        # Read-only handle; the partition row is only created on write.
        return CachePartition(self.store, self.partition_name)

    async def resolve(self, request: Request) -> Response:
        raise NotImplementedError

    @staticmethod
    def cacheable(request: Request) -> bool:
        return request.method.upper() == "GET"

    def _lookup(self, request: Request) -> Optional[Response]:
        if not self.cacheable(request):
            return None
        try:
            return self.partition.match(request)
        except CacheStoreError as e:
            logger.error("[%s] cache read failed for %s: %s", self.name, request.url, e)
            return None

    def _store(self, request: Request, response: Response) -> bool:
        """Write a clone of a 200 GET response. Never raises."""
        if not self.cacheable(request):
            logger.debug("[%s] not caching %s %s", self.name, request.method, request.url)
            return False
        if response.status != 200:
            logger.debug("[%s] not caching %s (status %s)", self.name, request.url, response.status)
            return False
        try:
            self.store.open(self.partition_name).put(request, response.clone())
            return True
        except CacheStoreError as e:
            logger.error("[%s] cache write failed for %s: %s", self.name, request.url, e)
            return False


class CacheFirst(Strategy):
    """Serve from cache; fetch and remember on a miss."""

    name = "cache_first"

    def __init__(self, store: CacheStore, partition_name: str, fetcher: FetchFn,
                 offline_page: Optional[str] = None):
        super().__init__(store, partition_name, fetcher)
        self.offline_page = offline_page

    async def resolve(self, request: Request) -> Response:
        cached = self._lookup(request)
        if cached is not None:
            return cached

        try:
            response = await self.fetcher.fetch(request)
        except NetworkError as e:
            logger.info("[cache_first] network error for %s: %s", request.url, e.reason)
            fallback = self._offline_fallback(request)
            if fallback is not None:
                return fallback
            raise

        self._store(request, response)
        return response

    def _offline_fallback(self, request: Request) -> Optional[Response]:
        if not (request.is_navigation and self.offline_page):
            return None
        try:
            page = self.store.match(self.offline_page)
        except CacheStoreError as e:
            logger.error("[cache_first] offline page lookup failed: %s", e)
            return None
        if page is None:
            return None
        logger.info("[cache_first] serving offline page for %s", request.url)
        return page.clone(source="offline-fallback")


class NetworkFirst(Strategy):
    """Fresh from the network whenever it answers; cached copy when it does not."""

    name = "network_first"

    async def resolve(self, request: Request) -> Response:
        try:
            response = await self.fetcher.fetch(request)
        except NetworkError as e:
            logger.info("[network_first] network error, trying cache: %s", e.reason)
            cached = self._lookup(request)
            if cached is not None:
                return cached
            raise

        self._store(request, response)
        return response


class StaleWhileRevalidate(Strategy):
    """
    Answer from cache at once and refresh the entry in a detached task.

    The refresh task is not awaited when a cached value exists; its failure
    is logged and swallowed. With nothing cached the caller waits on the same
    task and sees its result or its NetworkError. Concurrent callers may see
    the entry before or after a refresh lands.
    """

    name = "stale_while_revalidate"

    def __init__(self, store: CacheStore, partition_name: str, fetcher: FetchFn):
        super().__init__(store, partition_name, fetcher)
        self._pending: Set[asyncio.Task] = set()

    async def resolve(self, request: Request) -> Response:
        cached = self._lookup(request)

        task = asyncio.create_task(self._revalidate(request))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        if cached is not None:
            task.add_done_callback(self._swallow_failure)
            return cached

        return await task

    async def _revalidate(self, request: Request) -> Response:
        response = await self.fetcher.fetch(request)
        self._store(request, response)
        return response

    @staticmethod
    def _swallow_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.info("[stale_while_revalidate] background refresh failed: %s", exc)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every in-flight background refresh to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
