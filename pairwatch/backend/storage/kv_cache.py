"""
storage/kv_cache.py

KeyValueCache — the fast-path staging cache.

String values with an optional time-to-live. Expired rows behave as
absent: get() and keys() ignore them and get() removes the row it trips
over. purge_expired() sweeps the rest.

A ttl of None or 0 means the entry never expires.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from .database import Database

logger = logging.getLogger(__name__)


class KeyValueCache:
    def __init__(self, db: Database, clock: Callable[[], float] = time.time) -> None:
        self._db = db
        self._clock = clock

    def set(self, key: str, value: str, ttl: float | None = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._db.execute(
            """
            INSERT INTO kv_cache (key, value, expires_at) VALUES (?, ?, ?)
            ON CONFLICT (key) DO UPDATE SET
                value = excluded.value,
                expires_at = excluded.expires_at
            """,
            (key, value, expires_at),
        )

    def get(self, key: str) -> str | None:
        row = self._db.fetchone(
            "SELECT value, expires_at FROM kv_cache WHERE key = ?", (key,)
        )
        if row is None:
            return None
        if row["expires_at"] is not None and row["expires_at"] <= self._clock():
            self.delete(key)
            return None
        return row["value"]

    def delete(self, key: str) -> bool:
        cur = self._db.execute("DELETE FROM kv_cache WHERE key = ?", (key,))
        return cur.rowcount > 0

    def keys(self, prefix: str = "") -> list[str]:
        """Return every live key starting with ``prefix``, sorted."""
        rows = self._db.fetchall(
            """
            SELECT key FROM kv_cache
            WHERE substr(key, 1, ?) = ?
              AND (expires_at IS NULL OR expires_at > ?)
            ORDER BY key
            """,
            (len(prefix), prefix, self._clock()),
        )
        return [r["key"] for r in rows]

    def purge_expired(self) -> int:
        cur = self._db.execute(
            "DELETE FROM kv_cache WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (self._clock(),),
        )
        if cur.rowcount:
            logger.debug("Purged %d expired cache entries", cur.rowcount)
        return cur.rowcount
