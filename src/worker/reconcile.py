"""Periodic background IP check broadcast to every open client."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from lookup.client import IPInfoClient, IPLookupError, IPSnapshot

from .messaging import IP_UPDATE, ClientRegistry

logger = logging.getLogger(__name__)

SnapshotHook = Callable[[IPSnapshot], Awaitable[None]]


class IPReconciler:
    """
    Looks up the public address on a fixed interval and sends IP_UPDATE to
    all clients. Each client compares against its own last known address.
    ``on_snapshot`` runs after every successful check.
    """

    def __init__(
        self,
        lookup: IPInfoClient,
        clients: ClientRegistry,
        interval_sec: float = 300,
        on_snapshot: Optional[SnapshotHook] = None,
    ) -> None:
        self._lookup = lookup
        self._clients = clients
        self.interval_sec = interval_sec
        self._on_snapshot = on_snapshot
        self.last_snapshot: Optional[IPSnapshot] = None

    async def check_once(self) -> Optional[IPSnapshot]:
        try:
            snapshot = await asyncio.to_thread(self._lookup.get_details)
        except IPLookupError as exc:
            logger.error("Background IP check failed: %s", exc)
            return None

        self.last_snapshot = snapshot
        delivered = self._clients.broadcast({"type": IP_UPDATE, "data": snapshot.to_dict()})
        logger.info("Background IP check done: %s sent to %d clients", snapshot.ip, delivered)
        if self._on_snapshot is not None:
            await self._on_snapshot(snapshot)
        return snapshot

    async def run(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            await self.check_once()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval_sec)
            except asyncio.TimeoutError:
                continue
