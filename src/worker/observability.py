"""Route decision log schema enforcement."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jsonschema import Draft7Validator

ROUTE_DECISION_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": [
        "request_id",
        "received_at",
        "method",
        "url",
        "kind",
        "rule",
        "strategy",
        "outcome",
        "latency_ms_total",
        "version",
    ],
    "properties": {
        "request_id": {"type": "string"},
        "received_at": {"type": "string", "format": "date-time"},
        "method": {"type": "string"},
        "url": {"type": "string"},
        "kind": {"type": "string", "enum": ["static", "api", "dynamic", "bypass"]},
        "rule": {"type": "string"},
        "strategy": {
            "type": "string",
            "enum": ["cache_first", "network_first", "stale_while_revalidate", "passthrough"],
        },
        "outcome": {
            "type": "string",
            "enum": ["network", "cache", "offline-fallback", "synthetic", "error"],
        },
        "status": {"type": ["integer", "null"]},
        "error": {"type": ["string", "null"]},
        "latency_ms_total": {"type": "number", "minimum": 0},
        "version": {"type": "string"},
    },
}

_validator = Draft7Validator(ROUTE_DECISION_SCHEMA)


def validate_decision(payload: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: e.path)
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"route decision validation failed: {messages}")


@dataclass
class RouteDecisionRecord:
    request_id: str
    method: str
    url: str
    kind: str
    rule: str
    strategy: str
    outcome: str
    latency_ms_total: float
    version: str
    status: Optional[int] = None
    error: Optional[str] = None
    received_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "request_id": self.request_id,
            "received_at": self.received_at,
            "method": self.method,
            "url": self.url,
            "kind": self.kind,
            "rule": self.rule,
            "strategy": self.strategy,
            "outcome": self.outcome,
            "status": self.status,
            "error": self.error,
            "latency_ms_total": self.latency_ms_total,
            "version": self.version,
        }
        validate_decision(payload)
        return payload
