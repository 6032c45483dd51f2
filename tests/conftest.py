import asyncio
from typing import Dict, List, Optional, Union

import pytest

from cachestore.http import Request, Response
from cachestore.keys import resolve_url
from cachestore.store import CacheStore
from worker.config import WorkerConfig
from worker.errors import NetworkError

ORIGIN = "http://app.test"


class FakeFetcher:
    """Scripted network: answers from a route table and counts calls."""

    def __init__(self, origin: str = ORIGIN) -> None:
        self.origin = origin
        self.routes: Dict[str, Union[Response, NetworkError]] = {}
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None

    def respond(self, url: str, body: bytes = b"", status: int = 200, headers=None) -> None:
        full = resolve_url(url, self.origin)
        self.routes[full] = Response(url=full, status=status, headers=headers or {}, body=body)

    def fail(self, url: str, reason: str = "offline") -> None:
        full = resolve_url(url, self.origin)
        self.routes[full] = NetworkError(full, reason)

    def hold(self) -> asyncio.Event:
        self.gate = asyncio.Event()
        return self.gate

    async def fetch(self, request: Request) -> Response:
        self.calls.append(request.url)
        if self.gate is not None:
            await self.gate.wait()
        route = self.routes.get(request.url)
        if route is None:
            raise NetworkError(request.url, "no route")
        if isinstance(route, NetworkError):
            raise route
        return route.clone()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def config(tmp_path):
    return WorkerConfig.from_dict({
        "version": "1",
        "cache_prefix": "",
        "origin": ORIGIN,
        "static_files": ["/", "/a.css"],
        "cache_db_path": str(tmp_path / "partitions.db"),
        "history_db_path": str(tmp_path / "history.db"),
    })


@pytest.fixture
def store(tmp_path):
    store = CacheStore(str(tmp_path / "partitions.db"), origin=ORIGIN)
    yield store
    store.close()
