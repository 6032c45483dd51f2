#!/usr/bin/env python3
"""
Client Messaging Bridge

In-process message channel between the worker and open application
instances (clients).

Inbound (client → worker):
  SKIP_WAITING    promote a waiting worker             no reply
  GET_VERSION     report the version identifier        {"type": "VERSION", ...}
  CLEAR_CACHE     delete every partition, all versions {"type": "CACHE_CLEARED", ...}
  CACHE_IP_DATA   store a snapshot at /ip-data/{ip}    no reply

Outbound (worker → clients):
  IP_UPDATE       broadcast by the periodic reconciler
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

from jsonschema import Draft7Validator

from cachestore.http import Response
from cachestore.store import CacheStore, CacheStoreError

logger = logging.getLogger(__name__)

SKIP_WAITING = "SKIP_WAITING"
GET_VERSION = "GET_VERSION"
CLEAR_CACHE = "CLEAR_CACHE"
CACHE_IP_DATA = "CACHE_IP_DATA"

VERSION = "VERSION"
CACHE_CLEARED = "CACHE_CLEARED"
IP_UPDATE = "IP_UPDATE"

INBOUND_TYPES = (SKIP_WAITING, GET_VERSION, CLEAR_CACHE, CACHE_IP_DATA)

MESSAGE_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["type"],
    "properties": {
        "type": {"type": "string"},
        "data": {},
    },
}

_validator = Draft7Validator(MESSAGE_SCHEMA)


def ip_data_path(ip: str) -> str:
    return f"/ip-data/{ip}"


class Client:
    """One open application instance, as seen from the worker."""

    def __init__(self, client_id: str = None, url: str = "/"):
        self.id = client_id or uuid.uuid4().hex[:12]
        self.url = url
        self.controller: Optional[str] = None
        self.last_known_ip: Optional[str] = None
        self.inbox: asyncio.Queue = asyncio.Queue()

    def post_message(self, message: Dict[str, Any]) -> None:
        self.inbox.put_nowait(dict(message))

    def ip_changed(self, message: Dict[str, Any]) -> bool:
        """Recipient-side check for IP_UPDATE: remember and report a new address."""
        if message.get("type") != IP_UPDATE:
            return False
        data = message.get("data") or {}
        ip = data.get("ip")
        if not ip or ip == self.last_known_ip:
            return False
        self.last_known_ip = ip
        return True

    def __repr__(self) -> str:
        return f"Client({self.id!r}, controller={self.controller!r})"


class ClientRegistry:
    """Open clients, shared by every worker of one registration."""

    def __init__(self) -> None:
        self._clients: Dict[str, Client] = {}

    def open(self, client: Client) -> Client:
        self._clients[client.id] = client
        return client

    def close(self, client_id: str) -> int:
        """Forget a client. Returns how many clients remain."""
        self._clients.pop(client_id, None)
        return len(self._clients)

    def match_all(self) -> List[Client]:
        return list(self._clients.values())

    def claim(self, controller: str) -> int:
        """Put every open client under ``controller`` without a reload."""
        for client in self._clients.values():
            client.controller = controller
        logger.info("Claimed %d clients for %s", len(self._clients), controller)
        return len(self._clients)

    def broadcast(self, message: Dict[str, Any]) -> int:
        clients = self.match_all()
        for client in clients:
            client.post_message(message)
        return len(clients)

    def __len__(self) -> int:
        return len(self._clients)


class MessageBridge:
    """Handles inbound messages for one worker version."""

    def __init__(
        self,
        store: CacheStore,
        version: str,
        dynamic_cache_name: str,
        ip_data_max_age: int = 300,
        skip_waiting: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.store = store
        self.version = version
        self.dynamic_cache_name = dynamic_cache_name
        self.ip_data_max_age = ip_data_max_age
        self._skip_waiting = skip_waiting

    async def handle(self, message: Any) -> Optional[Dict[str, Any]]:
        """Dispatch one message. Returns the reply, or None when the type has none."""
        errors = list(_validator.iter_errors(message))
        if errors:
            logger.warning("Ignoring malformed message: %s", errors[0].message)
            return None

        msg_type = message["type"]
        data = message.get("data")
        if msg_type not in INBOUND_TYPES:
            logger.warning("Ignoring unknown message type %s", msg_type)
            return None

        if msg_type == SKIP_WAITING:
            if self._skip_waiting is not None:
                await self._skip_waiting()
            return None

        if msg_type == GET_VERSION:
            return {"type": VERSION, "version": self.version}

        if msg_type == CLEAR_CACHE:
            return self.clear_all()

        if msg_type == CACHE_IP_DATA:
            if isinstance(data, dict) and data.get("ip"):
                self.cache_ip_data(data)
            else:
                logger.warning("CACHE_IP_DATA without an ip field, ignored")
        return None

    def clear_all(self) -> Dict[str, Any]:
        try:
            names = self.store.keys()
            for name in names:
                self.store.delete(name)
        except CacheStoreError as e:
            logger.error("Clear cache failed: %s", e)
            return {"type": CACHE_CLEARED, "success": False, "error": str(e)}
        logger.info("Cleared %d partitions", len(names))
        return {"type": CACHE_CLEARED, "success": True}

    def cache_ip_data(self, snapshot: Dict[str, Any]) -> bool:
        path = ip_data_path(snapshot["ip"])
        response = Response.from_json(path, snapshot, max_age=self.ip_data_max_age)
        try:
            self.store.open(self.dynamic_cache_name).put(path, response)
        except CacheStoreError as e:
            logger.error("Failed to cache IP data for %s: %s", snapshot["ip"], e)
            return False
        logger.info("Cached IP data for %s", snapshot["ip"])
        return True
