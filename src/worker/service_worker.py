#!/usr/bin/env python3
"""
ipwatch Service Worker — offline caching and request routing

Every request from the application goes through resolve():

  classify URL → api      → NetworkFirst          (dynamic partition)
               → dynamic  → StaleWhileRevalidate  (dynamic partition)
               → static   → CacheFirst            (static partition)

Non-HTTP URLs skip the strategies and go straight to the network.
Lifecycle hooks (on_install, on_activate) and the message bridge
(on_message) hang off the same object. All per-version state lives on the
instance: cache names, strategies, and the version identifier.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Union

from cachestore.http import Request, Response
from cachestore.keys import as_request
from cachestore.store import CacheStore

from .classifier import Classification, RequestClassifier, RequestKind
from .config import WorkerConfig
from .errors import NetworkError
from .fetcher import Fetcher
from .lifecycle import LifecycleController, WorkerState
from .messaging import ClientRegistry, MessageBridge
from .observability import RouteDecisionRecord
from .strategies import CacheFirst, NetworkFirst, StaleWhileRevalidate, Strategy

logger = logging.getLogger(__name__)


class ServiceWorker:
    def __init__(
        self,
        config: WorkerConfig,
        store: Optional[CacheStore] = None,
        fetcher: Optional[Fetcher] = None,
        clients: Optional[ClientRegistry] = None,
    ):
        self.config = config
        self.version = config.version
        self._owns_store = store is None
        self._owns_fetcher = fetcher is None
        self.store = store or CacheStore(str(config.cache_db_path), origin=config.origin)
        self.fetcher = fetcher or Fetcher(timeout=config.fetch_timeout_sec)
        self.clients = clients if clients is not None else ClientRegistry()
        self.classifier = RequestClassifier.from_config(config)

        self.registration = None
        self.skip_waiting_requested = False

        self.lifecycle = LifecycleController(
            store=self.store,
            fetcher=self.fetcher,
            clients=self.clients,
            version=config.version,
            static_cache_name=config.static_cache_name,
            dynamic_cache_name=config.dynamic_cache_name,
            static_files=config.static_files,
            origin=config.origin,
            best_effort=config.install_best_effort,
        )

        self.cache_first = CacheFirst(
            self.store, config.static_cache_name, self.fetcher, offline_page=config.offline_page
        )
        self.network_first = NetworkFirst(self.store, config.dynamic_cache_name, self.fetcher)
        self.stale_while_revalidate = StaleWhileRevalidate(
            self.store, config.dynamic_cache_name, self.fetcher
        )

        self.messages = MessageBridge(
            store=self.store,
            version=config.version,
            dynamic_cache_name=config.dynamic_cache_name,
            ip_data_max_age=config.ip_data_max_age_sec,
            skip_waiting=self.skip_waiting,
        )

        logger.info("Service worker %s loaded", config.versioned_name)

    @property
    def state(self) -> WorkerState:
        return self.lifecycle.state

    def attach(self, registration) -> None:
        """Join a registration and share its client list."""
        self.registration = registration
        self.clients = registration.clients
        self.lifecycle.clients = registration.clients

    # ── Lifecycle ──

    async def on_install(self) -> int:
        count = await self.lifecycle.install()
        if self.config.skip_waiting_on_install:
            self.skip_waiting_requested = True
        return count

    async def on_activate(self) -> List[str]:
        return await self.lifecycle.activate()

    async def skip_waiting(self) -> None:
        self.skip_waiting_requested = True
        if self.registration is not None and self.registration.waiting is self:
            await self.registration.skip_waiting()

    # ── Fetch ──

    def strategy_for(self, classification: Classification) -> Strategy:
        if classification.kind is RequestKind.API:
            return self.network_first
        if classification.kind is RequestKind.DYNAMIC:
            return self.stale_while_revalidate
        return self.cache_first

    async def resolve(self, request: Union[Request, str]) -> Response:
        request = as_request(request, self.config.origin)
        request_id = uuid.uuid4().hex[:12]
        start = time.time()

        if not request.url.startswith(("http://", "https://")):
            kind, rule, strategy_name = "bypass", "non_http", "passthrough"
            runner = self.fetcher.fetch
        else:
            classification = self.classifier.classify(request.url)
            strategy = self.strategy_for(classification)
            kind, rule, strategy_name = classification.kind.value, classification.rule, strategy.name
            runner = strategy.resolve

        try:
            response = await runner(request)
        except NetworkError as e:
            self._log_decision(request_id, request, kind, rule, strategy_name, start, error=e.reason)
            raise

        self._log_decision(request_id, request, kind, rule, strategy_name, start, response=response)
        return response

    def _log_decision(
        self,
        request_id: str,
        request: Request,
        kind: str,
        rule: str,
        strategy: str,
        start: float,
        response: Optional[Response] = None,
        error: Optional[str] = None,
    ) -> None:
        record = RouteDecisionRecord(
            request_id=request_id,
            method=request.method,
            url=request.url,
            kind=kind,
            rule=rule,
            strategy=strategy,
            outcome=response.source if response is not None else "error",
            status=response.status if response is not None else None,
            error=error,
            latency_ms_total=max(round((time.time() - start) * 1000, 2), 0.0),
            version=self.version,
        )
        payload = record.to_dict()
        if error:
            logger.warning("route %s", payload)
        else:
            logger.info("route %s", payload)

    # ── Messages ──

    async def on_message(self, message: Any) -> Optional[Dict[str, Any]]:
        return await self.messages.handle(message)

    # ── Shutdown ──

    async def drain(self) -> None:
        await self.stale_while_revalidate.drain()

    def close(self) -> None:
        if self._owns_fetcher:
            self.fetcher.close()
        if self._owns_store:
            self.store.close()
