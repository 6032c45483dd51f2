"""Request and response snapshots passed between the router, the network and the store."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

_MAX_AGE_RE = re.compile(r"max-age=(\d+)")


@dataclass(frozen=True)
class Request:
    url: str
    method: str = "GET"
    destination: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_navigation(self) -> bool:
        return self.destination == "document"

    def with_url(self, url: str) -> "Request":
        return replace(self, url=url)


@dataclass
class Response:
    """Stored or fetched response. ``source`` tells where the value was served from."""

    url: str
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    source: str = "network"

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))

    @property
    def max_age(self) -> Optional[int]:
        for name, value in self.headers.items():
            if name.lower() == "cache-control":
                match = _MAX_AGE_RE.search(value)
                if match:
                    return int(match.group(1))
        return None

    def clone(self, source: Optional[str] = None) -> "Response":
        return Response(
            url=self.url,
            status=self.status,
            headers=dict(self.headers),
            body=bytes(self.body),
            source=source or self.source,
        )

    @classmethod
    def from_json(cls, url: str, payload: Any, max_age: Optional[int] = None) -> "Response":
        headers = {"Content-Type": "application/json"}
        if max_age is not None:
            headers["Cache-Control"] = f"max-age={max_age}"
        return cls(
            url=url,
            status=200,
            headers=headers,
            body=json.dumps(payload).encode("utf-8"),
            source="synthetic",
        )
