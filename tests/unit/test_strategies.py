#!/usr/bin/env python3
"""
Unit tests for the Strategy Engine
Cache-first, network-first, stale-while-revalidate
"""

import asyncio

import pytest

from cachestore.http import Request, Response
from cachestore.store import CacheStoreError
from worker.errors import NetworkError
from worker.strategies import CacheFirst, NetworkFirst, StaleWhileRevalidate

STATIC = "static-v1"
DYNAMIC = "dynamic-v1"


def cached(store, partition, url, body):
    store.open(partition).put(url, Response(url=url, status=200, body=body))


def break_writes(monkeypatch, store):
    def fail(*args, **kwargs):
        raise CacheStoreError("quota exceeded")
    monkeypatch.setattr(store, "_put_many", fail)


class TestCacheFirst:
    @pytest.fixture
    def strategy(self, store, fetcher):
        return CacheFirst(store, STATIC, fetcher, offline_page="/offline.html")

    @pytest.mark.asyncio
    async def test_hit_skips_network(self, strategy, store, fetcher):
        cached(store, STATIC, "/a.css", b"cached")

        response = await strategy.resolve(Request(url="http://app.test/a.css"))

        assert response.body == b"cached"
        assert response.source == "cache"
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_miss_fetches_and_stores(self, strategy, store, fetcher):
        fetcher.respond("/b.css", b"fresh")

        response = await strategy.resolve(Request(url="http://app.test/b.css"))

        assert response.body == b"fresh"
        assert response.source == "network"
        assert store.open(STATIC).match("/b.css").body == b"fresh"

    @pytest.mark.asyncio
    async def test_non_200_passed_through_uncached(self, strategy, store, fetcher):
        fetcher.respond("/missing.png", b"nope", status=404)

        response = await strategy.resolve(Request(url="http://app.test/missing.png"))

        assert response.status == 404
        assert store.open(STATIC).match("/missing.png") is None

    @pytest.mark.asyncio
    async def test_navigation_offline_serves_offline_page(self, strategy, store, fetcher):
        cached(store, STATIC, "/offline.html", b"<h1>offline</h1>")
        fetcher.fail("/about")

        response = await strategy.resolve(Request(url="http://app.test/about", destination="document"))

        assert response.body == b"<h1>offline</h1>"
        assert response.source == "offline-fallback"

    @pytest.mark.asyncio
    async def test_subresource_offline_propagates(self, strategy, store, fetcher):
        cached(store, STATIC, "/offline.html", b"<h1>offline</h1>")
        fetcher.fail("/c.css")

        with pytest.raises(NetworkError):
            await strategy.resolve(Request(url="http://app.test/c.css"))

    @pytest.mark.asyncio
    async def test_navigation_without_offline_page_propagates(self, strategy, fetcher):
        fetcher.fail("/about")

        with pytest.raises(NetworkError):
            await strategy.resolve(Request(url="http://app.test/about", destination="document"))


class TestNetworkFirst:
    @pytest.fixture
    def strategy(self, store, fetcher):
        return NetworkFirst(store, DYNAMIC, fetcher)

    @pytest.mark.asyncio
    async def test_success_updates_dynamic_partition(self, strategy, store, fetcher):
        cached(store, DYNAMIC, "https://ipinfo.io/json", b'{"ip": "old"}')
        fetcher.respond("https://ipinfo.io/json", b'{"ip": "new"}')

        response = await strategy.resolve(Request(url="https://ipinfo.io/json"))

        assert response.json() == {"ip": "new"}
        assert fetcher.calls == ["https://ipinfo.io/json"]
        assert store.open(DYNAMIC).match("https://ipinfo.io/json").json() == {"ip": "new"}

    @pytest.mark.asyncio
    async def test_offline_falls_back_to_cache(self, strategy, store, fetcher):
        cached(store, DYNAMIC, "https://ipinfo.io/json", b'{"ip": "old"}')
        fetcher.fail("https://ipinfo.io/json", "timeout after 10.0s")

        response = await strategy.resolve(Request(url="https://ipinfo.io/json"))

        assert response.json() == {"ip": "old"}
        assert response.source == "cache"

    @pytest.mark.asyncio
    async def test_offline_without_cache_propagates(self, strategy, fetcher):
        fetcher.fail("https://ipinfo.io/json")

        with pytest.raises(NetworkError):
            await strategy.resolve(Request(url="https://ipinfo.io/json"))

    @pytest.mark.asyncio
    async def test_cache_write_failure_is_swallowed(self, strategy, store, fetcher, monkeypatch):
        fetcher.respond("https://ipinfo.io/json", b'{"ip": "new"}')
        break_writes(monkeypatch, store)

        response = await strategy.resolve(Request(url="https://ipinfo.io/json"))

        assert response.json() == {"ip": "new"}


class TestStaleWhileRevalidate:
    URL = "https://fonts.googleapis.com/css2?family=Inter"

    @pytest.fixture
    def strategy(self, store, fetcher):
        return StaleWhileRevalidate(store, DYNAMIC, fetcher)

    @pytest.mark.asyncio
    async def test_returns_cached_without_waiting_for_network(self, strategy, store, fetcher):
        cached(store, DYNAMIC, self.URL, b"stale")
        fetcher.respond(self.URL, b"fresh")
        gate = fetcher.hold()

        response = await asyncio.wait_for(strategy.resolve(Request(url=self.URL)), timeout=1)

        assert response.body == b"stale"
        assert strategy.pending == 1

        gate.set()
        await strategy.drain()

        again = await strategy.resolve(Request(url=self.URL))
        assert again.body == b"fresh"
        await strategy.drain()

    @pytest.mark.asyncio
    async def test_miss_waits_for_network(self, strategy, store, fetcher):
        fetcher.respond(self.URL, b"fresh")

        response = await strategy.resolve(Request(url=self.URL))

        assert response.body == b"fresh"
        assert store.open(DYNAMIC).match(self.URL).body == b"fresh"

    @pytest.mark.asyncio
    async def test_miss_and_offline_raises(self, strategy, fetcher):
        fetcher.fail(self.URL)

        with pytest.raises(NetworkError):
            await strategy.resolve(Request(url=self.URL))

    @pytest.mark.asyncio
    async def test_background_failure_is_swallowed(self, strategy, store, fetcher):
        cached(store, DYNAMIC, self.URL, b"stale")
        fetcher.fail(self.URL)

        response = await strategy.resolve(Request(url=self.URL))
        await strategy.drain()

        assert response.body == b"stale"
        assert store.open(DYNAMIC).match(self.URL).body == b"stale"
        assert strategy.pending == 0

    @pytest.mark.asyncio
    async def test_non_200_refresh_keeps_cached_entry(self, strategy, store, fetcher):
        cached(store, DYNAMIC, self.URL, b"stale")
        fetcher.respond(self.URL, b"error page", status=503)

        await strategy.resolve(Request(url=self.URL))
        await strategy.drain()

        assert store.open(DYNAMIC).match(self.URL).body == b"stale"


class TestNonGetRequests:
    URL = "http://app.test/submit"

    @pytest.mark.asyncio
    async def test_repeated_post_reaches_network(self, store, fetcher):
        strategy = CacheFirst(store, STATIC, fetcher)
        fetcher.respond(self.URL, b"created-1")
        first = await strategy.resolve(Request(url=self.URL, method="POST"))
        fetcher.respond(self.URL, b"created-2")

        second = await strategy.resolve(Request(url=self.URL, method="POST"))

        assert (first.body, second.body) == (b"created-1", b"created-2")
        assert fetcher.calls == [self.URL, self.URL]
        assert not store.has(STATIC)

    @pytest.mark.asyncio
    async def test_offline_post_not_answered_from_cache(self, store, fetcher):
        strategy = NetworkFirst(store, DYNAMIC, fetcher)
        store.open(DYNAMIC).put(Request(url=self.URL, method="POST"),
                                Response(url=self.URL, status=200, body=b"old"))
        fetcher.fail(self.URL)

        with pytest.raises(NetworkError):
            await strategy.resolve(Request(url=self.URL, method="POST"))


class TestReadsDoNotCreatePartitions:
    @pytest.mark.asyncio
    async def test_lookup_after_clear_leaves_partition_gone(self, store, fetcher):
        cached(store, DYNAMIC, "/x", b"x")
        store.delete(DYNAMIC)
        fetcher.fail("/x")

        with pytest.raises(NetworkError):
            await NetworkFirst(store, DYNAMIC, fetcher).resolve(Request(url="http://app.test/x"))

        assert not store.has(DYNAMIC)
        assert store.keys() == []
