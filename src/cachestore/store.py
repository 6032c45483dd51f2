#!/usr/bin/env python3
"""
Cache Store
Named response partitions on SQLite

Implements:
- open(name) → CachePartition
- keys() → partition names
- delete(name) → bool
- match(request) → Response | None (searches every partition)
- CachePartition.match / put / put_many / delete / keys
- get_stats() → {hits, misses, writes, evictions, partitions, entries}
"""

import json
import logging
import os
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .http import Request, Response
from .keys import RequestLike, as_request, request_key

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.expanduser("~/.ipwatch/cache/partitions.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS partitions (
    name TEXT PRIMARY KEY,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS entries (
    partition TEXT NOT NULL REFERENCES partitions(name) ON DELETE CASCADE,
    cache_key TEXT NOT NULL,
    url TEXT NOT NULL,
    status INTEGER NOT NULL,
    headers TEXT NOT NULL DEFAULT '{}',
    body BLOB NOT NULL,
    stored_at REAL NOT NULL,
    PRIMARY KEY (partition, cache_key)
);

CREATE INDEX IF NOT EXISTS idx_entries_key ON entries(cache_key);
"""


class CacheStoreError(Exception):
    """Storage failure: quota, serialization, or a broken database."""


class CacheStore:
    """
    Durable request → response storage split into named partitions.

    Partitions are created on open() and live until delete(). Every method
    takes the store lock, so coroutines and fetch threads can share one store.
    Root-relative URLs are resolved against ``origin`` before keying.
    """

    def __init__(self, db_path: str = None, origin: str = ""):
        if db_path is None:
            db_path = DEFAULT_DB_PATH

        self.db_path = db_path
        self.origin = origin
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self.conn = sqlite3.connect(db_path, check_same_thread=False, timeout=10.0)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.executescript(SCHEMA)
        self.conn.commit()

        self.stats = {
            "hits": 0,
            "misses": 0,
            "writes": 0,
            "evictions": 0,
            "start_time": time.time(),
        }

        logger.info("CacheStore initialized at %s", db_path)

    # ── Partitions ──

    def open(self, name: str) -> "CachePartition":
        """Return the named partition, creating it if needed."""
        with self._lock:
            try:
                self.conn.execute(
                    "INSERT OR IGNORE INTO partitions (name, created_at) VALUES (?, ?)",
                    (name, time.time()),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                raise CacheStoreError(f"cannot open partition {name}: {e}") from e
        return CachePartition(self, name)

    def has(self, name: str) -> bool:
        with self._lock:
            row = self.conn.execute(
                "SELECT 1 FROM partitions WHERE name = ?", (name,)
            ).fetchone()
        return row is not None

    def keys(self) -> List[str]:
        """Partition names in creation order."""
        with self._lock:
            try:
                rows = self.conn.execute(
                    "SELECT name FROM partitions ORDER BY created_at, name"
                ).fetchall()
            except sqlite3.Error as e:
                raise CacheStoreError(f"cannot list partitions: {e}") from e
        return [row["name"] for row in rows]

    def delete(self, name: str) -> bool:
        """Drop a partition and all of its entries. False if it did not exist."""
        with self._lock:
            try:
                cursor = self.conn.execute("DELETE FROM entries WHERE partition = ?", (name,))
                cleared = cursor.rowcount
                cursor = self.conn.execute("DELETE FROM partitions WHERE name = ?", (name,))
                existed = cursor.rowcount > 0
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise CacheStoreError(f"cannot delete partition {name}: {e}") from e

        if existed:
            self.stats["evictions"] += cleared
            logger.info("Deleted partition %s (%d entries)", name, cleared)
        return existed

    def match(self, request: RequestLike) -> Optional[Response]:
        """Look the request up in every partition, oldest partition first."""
        return self._match(request, None)

    # ── Entry access (used by CachePartition) ──

    def _match(self, request: RequestLike, partition: Optional[str]) -> Optional[Response]:
        key = request_key(request, self.origin)
        query = """
            SELECT e.url, e.status, e.headers, e.body
            FROM entries e JOIN partitions p ON p.name = e.partition
            WHERE e.cache_key = ?
        """
        params: Tuple[Any, ...] = (key,)
        if partition is not None:
            query += " AND e.partition = ?"
            params = (key, partition)
        query += " ORDER BY p.created_at, p.name LIMIT 1"

        with self._lock:
            try:
                row = self.conn.execute(query, params).fetchone()
            except sqlite3.Error as e:
                raise CacheStoreError(f"cache read failed: {e}") from e

        if row is None:
            self.stats["misses"] += 1
            return None

        self.stats["hits"] += 1
        return Response(
            url=row["url"],
            status=row["status"],
            headers=json.loads(row["headers"]),
            body=bytes(row["body"]),
            source="cache",
        )

    def _put_many(self, partition: str, items: Iterable[Tuple[RequestLike, Response]]) -> int:
        """Write all items in one transaction; nothing is written if any item fails."""
        now = time.time()
        rows = []
        try:
            for request, response in items:
                req = as_request(request, self.origin)
                rows.append((
                    partition,
                    request_key(req, self.origin),
                    req.url,
                    response.status,
                    json.dumps(response.headers),
                    sqlite3.Binary(response.body),
                    now,
                ))
        except (TypeError, ValueError) as e:
            raise CacheStoreError(f"cannot serialize response: {e}") from e

        with self._lock:
            try:
                self.conn.execute(
                    "INSERT OR IGNORE INTO partitions (name, created_at) VALUES (?, ?)",
                    (partition, now),
                )
                self.conn.executemany(
                    """
                    INSERT OR REPLACE INTO entries
                    (partition, cache_key, url, status, headers, body, stored_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise CacheStoreError(f"cache write failed: {e}") from e

        self.stats["writes"] += len(rows)
        logger.debug("Stored %d entries in %s", len(rows), partition)
        return len(rows)

    def _delete_entry(self, partition: str, request: RequestLike) -> bool:
        key = request_key(request, self.origin)
        with self._lock:
            try:
                cursor = self.conn.execute(
                    "DELETE FROM entries WHERE partition = ? AND cache_key = ?",
                    (partition, key),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                raise CacheStoreError(f"cache delete failed: {e}") from e
        return cursor.rowcount > 0

    def _entry_keys(self, partition: str) -> List[str]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT cache_key FROM entries WHERE partition = ? ORDER BY stored_at, cache_key",
                (partition,),
            ).fetchall()
        return [row["cache_key"] for row in rows]

    # ── Reporting ──

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        total = self.stats["hits"] + self.stats["misses"]
        hit_rate = (self.stats["hits"] / total * 100) if total > 0 else 0

        with self._lock:
            try:
                partitions = self.conn.execute("SELECT COUNT(*) AS n FROM partitions").fetchone()["n"]
                entries = self.conn.execute("SELECT COUNT(*) AS n FROM entries").fetchone()["n"]
            except sqlite3.Error:
                partitions = entries = 0

        return {
            "hits": self.stats["hits"],
            "misses": self.stats["misses"],
            "hit_rate_percent": round(hit_rate, 1),
            "writes": self.stats["writes"],
            "evictions": self.stats["evictions"],
            "partitions": partitions,
            "entries": entries,
            "uptime_seconds": int(time.time() - self.stats["start_time"]),
        }

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("CacheStore closed")


class CachePartition:
    """Handle on one named partition of a CacheStore."""

    def __init__(self, store: CacheStore, name: str):
        self.store = store
        self.name = name

    def match(self, request: RequestLike) -> Optional[Response]:
        return self.store._match(request, self.name)

    def put(self, request: RequestLike, response: Response) -> None:
        self.store._put_many(self.name, [(request, response)])

    def put_many(self, items: Iterable[Tuple[RequestLike, Response]]) -> int:
        return self.store._put_many(self.name, items)

    def delete(self, request: RequestLike) -> bool:
        return self.store._delete_entry(self.name, request)

    def keys(self) -> List[str]:
        return self.store._entry_keys(self.name)

    def __repr__(self) -> str:
        return f"CachePartition({self.name!r})"
