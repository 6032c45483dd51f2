#!/usr/bin/env python3
"""
ipwatch worker daemon

Installs and activates the current worker version, then keeps checking the
public address in the background:
  - every check is broadcast to open clients as IP_UPDATE
  - every new snapshot is recorded in the local history
  - the snapshot is cached at /ip-data/{ip} through the message bridge

Usage:
  WORKER_CONFIG=config/worker.defaults.yml python -m worker.daemon
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from lookup.client import IPInfoClient
from lookup.history import IPHistory
from worker.config import load_config
from worker.errors import InstallError
from worker.lifecycle import Registration
from worker.messaging import CACHE_IP_DATA
from worker.reconcile import IPReconciler
from worker.service_worker import ServiceWorker

logging.basicConfig(
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)


async def run(config_path: str) -> int:
    config = load_config(config_path)
    registration = Registration()
    worker = ServiceWorker(config, clients=registration.clients)

    try:
        state = await registration.register(worker)
    except InstallError as e:
        logger.error("Install failed, previous version stays active: %s", e)
        worker.close()
        return 1
    logger.info("Worker %s is %s", config.versioned_name, state.value)

    lookup = IPInfoClient(
        base_url=config.lookup.base_url,
        token=config.lookup.token,
        timeout=config.lookup.timeout_sec,
    )
    history = IPHistory(str(config.history_db_path), max_entries=config.history_max_entries)

    async def record(snapshot):
        history.add(snapshot)
        await worker.on_message({"type": CACHE_IP_DATA, "data": snapshot.to_dict()})

    reconciler = IPReconciler(
        lookup,
        registration.clients,
        interval_sec=config.reconcile_interval_sec,
        on_snapshot=record,
    )

    stop = asyncio.Event()
    try:
        await reconciler.run(stop)
    finally:
        await worker.drain()
        history.close()
        worker.close()
    return 0


def main():
    """Start the worker."""
    config_path = os.environ.get("WORKER_CONFIG", "config/worker.defaults.yml")
    logger.info("Starting ipwatch worker with %s", config_path)
    try:
        sys.exit(asyncio.run(run(config_path)))
    except KeyboardInterrupt:
        logger.info("Worker stopped")


if __name__ == "__main__":
    main()
