#!/usr/bin/env python3
"""
IP Lookup Client — public address and metadata from ipinfo.io

Implements:
- get_details() -> IPSnapshot    GET {base}/json?token=...
- get_ip() -> str                GET {base}/ip?token=...

Every call is bounded by a timeout. Non-200 answers, bad JSON and payloads
without an ``ip`` field raise IPLookupError with a readable reason.
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

BASE_URL = "https://ipinfo.io"


class IPLookupError(Exception):
    """The lookup service could not produce an address."""


@dataclass
class IPSnapshot:
    """One observation of the public address."""
    ip: str
    hostname: Optional[str] = None
    org: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IPSnapshot":
        if not isinstance(data, dict) or not data.get("ip"):
            raise IPLookupError("invalid IP data received from the lookup service")
        known = {"ip", "hostname", "org", "city", "region", "country"}
        return cls(
            ip=str(data["ip"]),
            hostname=data.get("hostname"),
            org=data.get("org"),
            city=data.get("city"),
            region=data.get("region"),
            country=data.get("country"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        extra = d.pop("extra")
        d = {k: v for k, v in d.items() if v is not None}
        d.update(extra)
        return d

    @property
    def location(self) -> str:
        parts = [p for p in (self.city, self.region, self.country) if p]
        return ", ".join(parts) if parts else "—"


class IPInfoClient:
    """
    ipinfo.io client.

    Design principles:
    - Token from argument or IPINFO_TOKEN, never hardcoded
    - Timeout on every request
    - Failures raise IPLookupError; callers decide how loud to be
    """

    DEFAULT_TIMEOUT = 10  # seconds
    DETAILS_ENDPOINT = "/json"
    IP_ENDPOINT = "/ip"

    def __init__(self, base_url: str = None, token: str = None, timeout: float = None):
        self.base_url = (base_url or os.environ.get("IPINFO_BASE_URL", BASE_URL)).rstrip("/")
        self.token = token if token is not None else os.environ.get("IPINFO_TOKEN", "")
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._request_count = 0
        self._error_count = 0
        self._last_snapshot: Optional[IPSnapshot] = None

    def _get(self, endpoint: str, accept: str) -> requests.Response:
        url = f"{self.base_url}{endpoint}"
        self._request_count += 1
        start = time.time()
        try:
            resp = requests.get(
                url,
                params={"token": self.token} if self.token else None,
                headers={"Accept": accept},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            self._error_count += 1
            raise IPLookupError(f"Timeout: lookup took longer than {self.timeout}s") from e
        except requests.RequestException as e:
            self._error_count += 1
            raise IPLookupError(f"Lookup request failed: {e}") from e

        elapsed_ms = (time.time() - start) * 1000
        logger.debug("GET %s -> %s (%.0fms)", endpoint, resp.status_code, elapsed_ms)
        if resp.status_code != 200:
            self._error_count += 1
            raise IPLookupError(f"HTTP {resp.status_code}: {resp.reason}")
        return resp

    def get_details(self) -> IPSnapshot:
        resp = self._get(self.DETAILS_ENDPOINT, "application/json")
        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            self._error_count += 1
            raise IPLookupError(f"Invalid JSON from lookup service: {e}") from e
        snapshot = IPSnapshot.from_dict(data)
        self._last_snapshot = snapshot
        logger.info("Looked up public IP %s", snapshot.ip)
        return snapshot

    def get_ip(self) -> str:
        resp = self._get(self.IP_ENDPOINT, "text/plain")
        ip = resp.text.strip()
        if not ip:
            self._error_count += 1
            raise IPLookupError("Empty IP returned by lookup service")
        return ip

    @property
    def last_snapshot(self) -> Optional[IPSnapshot]:
        return self._last_snapshot

    def get_client_stats(self) -> Dict[str, Any]:
        return {
            "base_url": self.base_url,
            "requests": self._request_count,
            "errors": self._error_count,
            "last_ip": self._last_snapshot.ip if self._last_snapshot else None,
        }
