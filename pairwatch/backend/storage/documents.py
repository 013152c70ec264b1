"""
storage/documents.py

DocumentStore — durable JSON documents grouped into named collections.

Each document is one row in the ``documents`` table, keyed on
(collection, doc_id), with its fields stored as a JSON object. Filters are
plain equality matches on top-level fields, evaluated with json_extract().

upsert() and update_one() merge the given fields into the stored body
(json_patch), so replaying the same write leaves the document unchanged
apart from the fields it sets.
"""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from .database import Database

logger = logging.getLogger(__name__)

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DocumentStore:
    def __init__(self, db: Database) -> None:
        self._db = db

    # ==================================================================
    # Write methods
    # ==================================================================

    def upsert(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Create the document, or merge ``fields`` into the existing one."""
        now = time.time()
        self._db.execute(
            """
            INSERT INTO documents (collection, doc_id, body, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (collection, doc_id) DO UPDATE SET
                body = json_patch(documents.body, excluded.body),
                updated_at = excluded.updated_at
            """,
            (collection, doc_id, _dumps(fields), now, now),
        )

    def insert_one(
        self,
        collection: str,
        fields: dict[str, Any],
        doc_id: str | None = None,
    ) -> str:
        """Insert a new document and return its id."""
        doc_id = doc_id or uuid.uuid4().hex
        now = time.time()
        self._db.execute(
            """
            INSERT INTO documents (collection, doc_id, body, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (collection, doc_id, _dumps(fields), now, now),
        )
        return doc_id

    def update_one(
        self,
        collection: str,
        filter: dict[str, Any],
        fields: dict[str, Any],
    ) -> bool:
        """
        Merge ``fields`` into the first document matching ``filter``.

        Returns True if a document matched.
        """
        with self._db.transaction():
            doc = self.find_one(collection, filter)
            if doc is None:
                return False
            self._db.execute(
                """
                UPDATE documents
                SET body = json_patch(body, ?), updated_at = ?
                WHERE collection = ? AND doc_id = ?
                """,
                (_dumps(fields), time.time(), collection, doc["_id"]),
            )
        return True

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several reads and writes into one atomic unit."""
        with self._db.transaction():
            yield

    # ==================================================================
    # Read methods
    # ==================================================================

    def find_one(self, collection: str, filter: dict[str, Any]) -> dict | None:
        """Return the first document matching ``filter`` or None."""
        where, params = self._build_where(collection, filter)
        row = self._db.fetchone(
            f"SELECT doc_id, body FROM documents {where} ORDER BY created_at LIMIT 1",
            tuple(params),
        )
        return self._row_to_dict(row) if row else None

    def find(self, collection: str, filter: dict[str, Any] | None = None) -> list[dict]:
        where, params = self._build_where(collection, filter or {})
        rows = self._db.fetchall(
            f"SELECT doc_id, body FROM documents {where} ORDER BY doc_id",
            tuple(params),
        )
        return [self._row_to_dict(r) for r in rows]

    def get(self, collection: str, doc_id: str) -> dict | None:
        row = self._db.fetchone(
            "SELECT doc_id, body FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        )
        return self._row_to_dict(row) if row else None

    def count(self, collection: str) -> int:
        row = self._db.fetchone(
            "SELECT COUNT(*) FROM documents WHERE collection = ?", (collection,)
        )
        return row[0] if row else 0

    # ==================================================================
    # Internal helpers
    # ==================================================================

    @staticmethod
    def _build_where(collection: str, filter: dict[str, Any]) -> tuple[str, list[Any]]:
        clauses = ["collection = ?"]
        params: list[Any] = [collection]
        for field_name, value in filter.items():
            if not _FIELD_RE.match(field_name):
                raise ValueError(f"invalid filter field: {field_name!r}")
            clauses.append(f"json_extract(body, '$.{field_name}') = ?")
            params.append(value)
        return "WHERE " + " AND ".join(clauses), params

    @staticmethod
    def _row_to_dict(row: Any) -> dict:
        try:
            body = json.loads(row["body"])
        except (TypeError, json.JSONDecodeError):
            logger.error("Unreadable document body for id=%r", row["doc_id"])
            body = {}
        body["_id"] = row["doc_id"]
        return body


def _dumps(fields: dict[str, Any]) -> str:
    return json.dumps({k: v for k, v in fields.items() if k != "_id"}, default=str)
