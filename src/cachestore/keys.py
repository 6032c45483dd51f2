"""
Request identity for cache partitions.

Implements:
- resolve_url(url, origin) → absolute URL (root-relative paths join the app origin)
- request_key(request, origin) → "{METHOD} {absolute-url}"

Two requests share an entry only when method and absolute URL match.
Fragments never reach the network, so they are dropped from the identity.
"""

from __future__ import annotations

import logging
from typing import Union
from urllib.parse import urldefrag, urljoin, urlsplit

from .http import Request

logger = logging.getLogger(__name__)

RequestLike = Union[Request, str]


def resolve_url(url: str, origin: str = "") -> str:
    """Resolve ``url`` against ``origin`` when it is not already absolute."""
    url = url.strip()
    if origin and not urlsplit(url).scheme:
        url = urljoin(origin.rstrip("/") + "/", url)
    return urldefrag(url)[0]


def as_request(request: RequestLike, origin: str = "") -> Request:
    if isinstance(request, str):
        return Request(url=resolve_url(request, origin))
    resolved = resolve_url(request.url, origin)
    if resolved != request.url:
        return request.with_url(resolved)
    return request


def request_key(request: RequestLike, origin: str = "") -> str:
    req = as_request(request, origin)
    key = f"{req.method.upper()} {req.url}"
    logger.debug("Request key: %s", key)
    return key
