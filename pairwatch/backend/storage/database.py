"""
storage/database.py

One SQLite file per Database. PairWatch opens two: the durable store
(documents) and the fast-path cache (kv_cache). init_schema() creates only
the tables a file is opened for; both carry schema_version.

Connection rules:
  - WAL + busy_timeout so a reader never fails on a concurrent writer.
  - check_same_thread=False; every statement goes through one RLock, so
    the event loop, the API thread pool and shutdown can all use it.
  - Autocommit (isolation_level=None). transaction() opens BEGIN IMMEDIATE,
    which takes the write lock before the first read of a
    read-modify-write sequence.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)

_BASE_SCHEMA_VERSION = 1

_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    applied_at REAL NOT NULL
);
"""

_DOCUMENTS_TABLE = """
CREATE TABLE IF NOT EXISTS documents (
    collection  TEXT NOT NULL,
    doc_id      TEXT NOT NULL,
    body        TEXT NOT NULL,          -- JSON object
    created_at  REAL NOT NULL,
    updated_at  REAL NOT NULL,
    PRIMARY KEY (collection, doc_id)
);
"""

_KV_CACHE_TABLE = """
CREATE TABLE IF NOT EXISTS kv_cache (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    expires_at  REAL                    -- NULL: never expires
);

CREATE INDEX IF NOT EXISTS idx_kv_cache_expires_at ON kv_cache(expires_at);
"""


class Database:
    """
    Usage:
        db = Database("data/pairwatch.db")
        db.init_schema()
        store = DocumentStore(db)
        ...
        db.close()
    """

    def __init__(self, db_path: str = "data/pairwatch.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False
        self._closed = False

        for pragma in ("journal_mode=WAL", "busy_timeout=5000", "synchronous=NORMAL"):
            self.conn.execute(f"PRAGMA {pragma}")
        logger.info("Opened SQLite database %r", db_path)

    def init_schema(self, documents: bool = True, kv_cache: bool = True) -> None:
        """
        Create the missing tables and indexes. The durable store passes
        kv_cache=False and the cache passes documents=False.
        """
        script = _VERSION_TABLE
        if documents:
            script += _DOCUMENTS_TABLE
        if kv_cache:
            script += _KV_CACHE_TABLE
        with self._lock:
            self.conn.executescript(script)
            self.conn.execute(
                "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
                (_BASE_SCHEMA_VERSION, time.time()),
            )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Atomic block. Holds the wrapper lock throughout; a nested call
        joins the enclosing transaction instead of opening a new one.
        """
        with self._lock:
            if self._in_transaction:
                yield
                return
            self.conn.execute("BEGIN IMMEDIATE")
            self._in_transaction = True
            try:
                yield
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise
            else:
                self.conn.execute("COMMIT")
            finally:
                self._in_transaction = False

    def close(self) -> None:
        """Close the connection. A second call does nothing."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self.conn.close()
            except sqlite3.Error as exc:
                logger.warning("Error closing %r: %s", self.db_path, exc)
                return
        logger.info("Closed SQLite database %r", self.db_path)

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            return self.conn.execute(sql, params)

    def fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        with self._lock:
            return self.conn.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()
