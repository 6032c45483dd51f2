#!/usr/bin/env python3
"""
Request Classifier

Labels every outgoing URL so the router can pick a caching strategy.
Rules are checked in order, first match wins:
1. api     — network-only allowlist, API host, or an API path segment
2. static  — static-file manifest path, or a static asset extension (any host)
3. dynamic — dynamic-asset manifest URL, or a web-font host
4. static  — fallback, so unknown requests lean on the cache, not the network

Classification is pure: no I/O, no state beyond the rule set.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional
from urllib.parse import urlsplit

from cachestore.keys import resolve_url

from .config import WorkerConfig

logger = logging.getLogger(__name__)


class RequestKind(Enum):
    """Valid request classifications."""
    STATIC = "static"
    API = "api"
    DYNAMIC = "dynamic"


@dataclass(frozen=True)
class Classification:
    """Result of request classification."""
    kind: RequestKind
    rule: str  # "network_only", "api_host", "api_path", "manifest", "extension", "font_host", "fallback"
    reason: str


class RequestClassifier:
    """Compiled rule set for one worker version."""

    def __init__(
        self,
        origin: str = "",
        static_files: Iterable[str] = (),
        dynamic_files: Iterable[str] = (),
        network_only: Iterable[str] = (),
        api_hosts: Iterable[str] = (),
        api_path_segments: Iterable[str] = ("api",),
        static_extensions: Iterable[str] = (),
        font_hosts: Iterable[str] = (),
    ):
        self.origin = origin.rstrip("/")
        origin_parts = urlsplit(self.origin)
        self._origin_netloc = origin_parts.netloc.lower()
        self.static_paths = {urlsplit(resolve_url(path, self.origin)).path or "/" for path in static_files}
        self.dynamic_urls = {resolve_url(url, self.origin) for url in dynamic_files}
        self.network_only = tuple(network_only)
        self.api_hosts = tuple(host.lower() for host in api_hosts)
        self.api_path_segments = {segment.strip("/").lower() for segment in api_path_segments}
        self.static_extensions = tuple(ext.lower() for ext in static_extensions)
        self.font_hosts = {host.lower() for host in font_hosts}

    @classmethod
    def from_config(cls, config: WorkerConfig) -> "RequestClassifier":
        return cls(
            origin=config.origin,
            static_files=config.static_files,
            dynamic_files=config.dynamic_files,
            network_only=config.network_only,
            api_hosts=config.api_hosts,
            api_path_segments=config.api_path_segments,
            static_extensions=config.static_extensions,
            font_hosts=config.font_hosts,
        )

    def classify(self, url: str) -> Classification:
        absolute = resolve_url(url, self.origin)
        parts = urlsplit(absolute)
        host = (parts.hostname or "").lower()
        path = parts.path or "/"

        api = self._match_api(absolute, host, path)
        if api:
            return api

        if parts.netloc.lower() == self._origin_netloc and path in self.static_paths:
            return Classification(RequestKind.STATIC, "manifest", f"static manifest entry {path}")
        if path.lower().endswith(self.static_extensions):
            return Classification(RequestKind.STATIC, "extension", f"static asset extension on {path}")

        if absolute in self.dynamic_urls:
            return Classification(RequestKind.DYNAMIC, "manifest", "dynamic manifest entry")
        if host in self.font_hosts:
            return Classification(RequestKind.DYNAMIC, "font_host", f"font host {host}")

        return Classification(RequestKind.STATIC, "fallback", "no rule matched, cache-first fallback")

    def _match_api(self, url: str, host: str, path: str) -> Optional[Classification]:
        for prefix in self.network_only:
            if prefix in url:
                return Classification(RequestKind.API, "network_only", f"network-only entry {prefix}")
        for api_host in self.api_hosts:
            if host == api_host or host.endswith("." + api_host):
                return Classification(RequestKind.API, "api_host", f"api host {host}")
        segments = {segment.lower() for segment in path.split("/") if segment}
        hit = segments & self.api_path_segments
        if hit:
            return Classification(RequestKind.API, "api_path", f"api path segment {sorted(hit)[0]}")
        return None


def classify_url(url: str, config: WorkerConfig) -> RequestKind:
    """One-off classification without keeping a classifier around."""
    return RequestClassifier.from_config(config).classify(url).kind
