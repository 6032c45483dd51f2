#!/usr/bin/env python3
"""
IP History — rolling local record of observed public addresses

One row per address. Seeing an address again refreshes it in place and
moves it to the front; only the newest ``max_entries`` rows are kept.
"""

import logging
import os
import sqlite3
import time
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from .client import IPSnapshot

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.expanduser("~/.ipwatch/history.db")
DEFAULT_MAX_ENTRIES = 50

SCHEMA = """
CREATE TABLE IF NOT EXISTS ip_history (
    ip TEXT PRIMARY KEY,
    hostname TEXT DEFAULT '—',
    org TEXT DEFAULT '—',
    city TEXT DEFAULT '',
    region TEXT DEFAULT '',
    country TEXT DEFAULT '',
    first_seen REAL NOT NULL,
    last_seen REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_last_seen ON ip_history(last_seen);
"""


@dataclass
class HistoryEntry:
    ip: str
    hostname: str
    org: str
    city: str
    region: str
    country: str
    first_seen: float
    last_seen: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class IPHistory:
    def __init__(self, db_path: str = None, max_entries: int = DEFAULT_MAX_ENTRIES):
        self.db_path = db_path or DEFAULT_DB_PATH
        self.max_entries = max_entries
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=10.0)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def add(self, snapshot: IPSnapshot, seen_at: Optional[float] = None) -> List[HistoryEntry]:
        """Record an observation and return the trimmed history, newest first."""
        now = seen_at if seen_at is not None else time.time()
        self.conn.execute(
            """
            INSERT INTO ip_history (ip, hostname, org, city, region, country, first_seen, last_seen)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(ip) DO UPDATE SET
                hostname = excluded.hostname,
                org = excluded.org,
                city = excluded.city,
                region = excluded.region,
                country = excluded.country,
                last_seen = excluded.last_seen
            """,
            (
                snapshot.ip,
                snapshot.hostname or "—",
                snapshot.org or "—",
                snapshot.city or "",
                snapshot.region or "",
                snapshot.country or "",
                now,
                now,
            ),
        )
        cursor = self.conn.execute(
            """
            DELETE FROM ip_history WHERE ip NOT IN (
                SELECT ip FROM ip_history ORDER BY last_seen DESC LIMIT ?
            )
            """,
            (self.max_entries,),
        )
        self.conn.commit()
        if cursor.rowcount > 0:
            logger.debug("Trimmed %d old history entries", cursor.rowcount)
        return self.entries()

    def entries(self) -> List[HistoryEntry]:
        rows = self.conn.execute(
            "SELECT * FROM ip_history ORDER BY last_seen DESC, ip"
        ).fetchall()
        return [HistoryEntry(**dict(row)) for row in rows]

    def latest(self) -> Optional[HistoryEntry]:
        entries = self.entries()
        return entries[0] if entries else None

    def clear(self) -> int:
        cursor = self.conn.execute("DELETE FROM ip_history")
        self.conn.commit()
        logger.info("Cleared %d history entries", cursor.rowcount)
        return cursor.rowcount

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None
