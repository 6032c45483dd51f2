#!/usr/bin/env python3
"""
Lifecycle Controller — install, activate, and version turnover

  installing → installed (waiting) → activating → activated
  any failed or superseded worker ends as redundant

Install pre-fills the static partition from the static manifest in a single
transaction; one failed entry fails the whole install unless best-effort is
configured. Activation deletes every partition that is not one of the
current version's two names, then claims the open clients.

Registration holds the active, waiting and installing workers and decides
when a freshly installed worker may take over.
"""

import asyncio
import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from cachestore.http import Request, Response
from cachestore.keys import resolve_url
from cachestore.store import CacheStore, CacheStoreError

from .errors import InstallError, LifecycleError, NetworkError
from .messaging import ClientRegistry
from .strategies import FetchFn

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


class LifecycleController:
    """Install/activate state machine for one worker version."""

    def __init__(
        self,
        store: CacheStore,
        fetcher: FetchFn,
        clients: ClientRegistry,
        version: str,
        static_cache_name: str,
        dynamic_cache_name: str,
        static_files: Iterable[str],
        origin: str = "",
        best_effort: bool = False,
    ):
        self.store = store
        self.fetcher = fetcher
        self.clients = clients
        self.version = version
        self.static_cache_name = static_cache_name
        self.dynamic_cache_name = dynamic_cache_name
        self.static_files = tuple(static_files)
        self.origin = origin
        self.best_effort = best_effort
        self.state = WorkerState.INSTALLING

    @property
    def current_cache_names(self) -> Tuple[str, str]:
        return (self.static_cache_name, self.dynamic_cache_name)

    async def install(self) -> int:
        """Fetch the static manifest and store it. Returns the number of entries cached."""
        if self.state is not WorkerState.INSTALLING:
            raise LifecycleError(f"cannot install from state {self.state.value}")

        logger.info("Installing version %s (%d static files)", self.version, len(self.static_files))
        manifest = [Request(url=resolve_url(path, self.origin)) for path in self.static_files]
        results = await asyncio.gather(
            *(self.fetcher.fetch(request) for request in manifest),
            return_exceptions=True,
        )

        fetched: List[Tuple[Request, Response]] = []
        failures: Dict[str, str] = {}
        for request, result in zip(manifest, results):
            if isinstance(result, NetworkError):
                failures[request.url] = result.reason
            elif isinstance(result, BaseException):
                self.state = WorkerState.REDUNDANT
                raise result
            elif result.status != 200:
                failures[request.url] = f"status {result.status}"
            else:
                fetched.append((request, result))

        if failures:
            if not self.best_effort:
                self.state = WorkerState.REDUNDANT
                error = InstallError(self.version, failures)
                logger.error("%s", error)
                raise error
            for url, reason in failures.items():
                logger.warning("Skipping static file %s during install: %s", url, reason)

        try:
            count = self.store.open(self.static_cache_name).put_many(fetched)
        except CacheStoreError as e:
            self.state = WorkerState.REDUNDANT
            raise InstallError(self.version, {self.static_cache_name: str(e)}) from e

        self.state = WorkerState.INSTALLED
        logger.info("Installed version %s (%d entries in %s)", self.version, count, self.static_cache_name)
        return count

    async def activate(self) -> List[str]:
        """Evict partitions from other versions and claim clients. Returns deleted names."""
        if self.state is not WorkerState.INSTALLED:
            raise LifecycleError(f"cannot activate from state {self.state.value}")

        self.state = WorkerState.ACTIVATING
        keep = set(self.current_cache_names)
        deleted = []
        try:
            for name in self.store.keys():
                if name in keep:
                    continue
                logger.info("Removing old cache: %s", name)
                if self.store.delete(name):
                    deleted.append(name)
        except CacheStoreError:
            self.state = WorkerState.INSTALLED
            raise

        self.clients.claim(self.version)
        self.state = WorkerState.ACTIVATED
        logger.info("Activated version %s (evicted %d partitions)", self.version, len(deleted))
        return deleted

    def discard(self) -> None:
        if self.state is not WorkerState.REDUNDANT:
            logger.info("Version %s is now redundant", self.version)
        self.state = WorkerState.REDUNDANT


class Registration:
    """
    Slots for the installing, waiting and active workers of one application.

    A newly installed worker takes over at once when nothing is active, when
    no clients are open, or when it asked to skip waiting. Otherwise it waits
    until skip_waiting() or until the last client closes.
    """

    def __init__(self, clients: Optional[ClientRegistry] = None):
        self.clients = clients if clients is not None else ClientRegistry()
        self.installing = None
        self.waiting = None
        self.active = None

    async def register(self, worker) -> WorkerState:
        worker.attach(self)
        self.installing = worker
        try:
            await worker.on_install()
        finally:
            self.installing = None

        if self.waiting is not None and self.waiting is not worker:
            self.waiting.lifecycle.discard()
        self.waiting = worker

        if self.active is None or worker.skip_waiting_requested or not len(self.clients):
            await self._promote()
        return worker.state

    async def skip_waiting(self) -> None:
        if self.waiting is not None:
            await self._promote()

    async def close_client(self, client_id: str) -> None:
        remaining = self.clients.close(client_id)
        if remaining == 0 and self.waiting is not None:
            await self._promote()

    async def _promote(self) -> None:
        worker = self.waiting
        previous = self.active
        await worker.on_activate()
        self.waiting = None
        self.active = worker
        if previous is not None and previous is not worker:
            previous.lifecycle.discard()
