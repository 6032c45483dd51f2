"""
Network primitive for the strategies.

Runs blocking ``requests`` calls in a worker thread so the event loop keeps
serving other requests while one waits on the network. Every call is bounded
by the configured timeout; an aborted call is reported as NetworkError like
any other failed fetch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import requests

from cachestore.http import Request, Response

from .errors import NetworkError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0  # seconds


class Fetcher:
    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None) -> None:
        self.timeout = timeout
        self._session = session or requests.Session()
        self._request_count = 0
        self._error_count = 0

    async def fetch(self, request: Request) -> Response:
        self._request_count += 1
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._send, request),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            self._error_count += 1
            logger.warning("Fetch aborted after %.1fs: %s", self.timeout, request.url)
            raise NetworkError(request.url, f"timeout after {self.timeout}s") from exc
        except requests.RequestException as exc:
            self._error_count += 1
            logger.warning("Fetch failed for %s: %s", request.url, exc)
            raise NetworkError(request.url, str(exc)) from exc

    def _send(self, request: Request) -> Response:
        resp = self._session.request(
            request.method,
            request.url,
            headers=request.headers or None,
            timeout=self.timeout,
        )
        return Response(
            url=resp.url or request.url,
            status=resp.status_code,
            headers=dict(resp.headers),
            body=resp.content,
            source="network",
        )

    def get_stats(self) -> dict:
        return {"requests": self._request_count, "errors": self._error_count}

    def close(self) -> None:
        self._session.close()
