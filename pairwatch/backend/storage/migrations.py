"""
storage/migrations.py

Ordered schema upgrades run after Database.init_schema(). Each entry in
_MIGRATIONS is (version, fn(cursor)); versions above the one recorded in
schema_version run in order, each in its own transaction together with
its schema_version row.

v2: expression index for destination lookups by (domain, user).
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from .database import Database

logger = logging.getLogger(__name__)


def migration_2(cur) -> None:
    cur.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_documents_destination
            ON documents(
                collection,
                json_extract(body, '$.domain'),
                json_extract(body, '$.user')
            )
        """
    )


_MIGRATIONS: list[tuple[int, Callable]] = [
    (2, migration_2),
]


def schema_version(db: Database) -> int:
    row = db.fetchone("SELECT MAX(version) FROM schema_version")
    return row[0] or 0


def apply_migrations(db: Database) -> None:
    current = schema_version(db)
    for version, upgrade in sorted(_MIGRATIONS, key=lambda m: m[0]):
        if version <= current:
            continue
        logger.info("Upgrading %r to schema v%d", db.db_path, version)
        try:
            with db.transaction():
                upgrade(db.conn.cursor())
                db.execute(
                    "INSERT OR REPLACE INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (version, time.time()),
                )
        except Exception:
            logger.exception("Schema v%d failed, rolled back", version)
            raise
        current = version
