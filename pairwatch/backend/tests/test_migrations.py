"""
tests/test_migrations.py

Tests for storage/migrations.py and the schema_version bookkeeping.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from pairwatch.backend.main import open_database
from pairwatch.backend.storage.database import Database
from pairwatch.backend.storage.migrations import apply_migrations

MIGRATIONS = "pairwatch.backend.storage.migrations._MIGRATIONS"


@pytest.fixture
def db():
    d = Database(":memory:")
    d.init_schema()
    yield d
    d.close()


def _version(db: Database) -> int | None:
    return db.fetchone("SELECT MAX(version) FROM schema_version")[0]


def _table_names(db: Database) -> set[str]:
    rows = db.fetchall("SELECT name FROM sqlite_master WHERE type = 'table'")
    return {r["name"] for r in rows}


def _index_names(db: Database) -> set[str]:
    rows = db.fetchall("SELECT name FROM sqlite_master WHERE type = 'index'")
    return {r["name"] for r in rows}


class TestInitSchema:

    def test_fresh_schema_is_version_1(self, db):
        assert _version(db) == 1

    def test_tables_exist(self, db):
        rows = db.fetchall("SELECT name FROM sqlite_master WHERE type = 'table'")
        assert {"documents", "kv_cache", "schema_version"} <= {r["name"] for r in rows}

    def test_init_twice_is_safe(self, db):
        db.init_schema()
        assert _version(db) == 1

    def test_cache_only_schema(self):
        d = Database(":memory:")
        d.init_schema(documents=False)
        assert _table_names(d) == {"kv_cache", "schema_version"}
        d.close()


class TestDestinationIndex:

    def test_index_created(self, db):
        apply_migrations(db)
        assert _version(db) == 2
        assert "idx_documents_destination" in _index_names(db)

    def test_reapply_is_noop(self, db):
        apply_migrations(db)
        apply_migrations(db)
        assert _version(db) == 2


class TestMigrationRunner:

    def test_only_pending_versions_run(self, db):
        m2, m3 = MagicMock(), MagicMock()
        with patch(MIGRATIONS, [(2, m2)]):
            apply_migrations(db)
        with patch(MIGRATIONS, [(2, m2), (3, m3)]):
            apply_migrations(db)
        m2.assert_called_once()
        m3.assert_called_once()
        assert _version(db) == 3

    def test_failure_rolls_back_and_raises(self, db):
        def bad(cur):
            cur.execute("CREATE TABLE half_done (x INTEGER)")
            raise RuntimeError("intentional failure")

        with patch(MIGRATIONS, [(2, bad)]):
            with pytest.raises(RuntimeError, match="intentional failure"):
                apply_migrations(db)

        assert _version(db) == 1
        row = db.fetchone("SELECT name FROM sqlite_master WHERE name = 'half_done'")
        assert row is None


class TestOpenDatabase:

    def test_store_is_migrated_without_cache_table(self, tmp_path):
        d = open_database(str(tmp_path / "pairwatch.db"), durable=True)
        try:
            assert _version(d) == 2
            assert _table_names(d) == {"documents", "schema_version"}
            assert "idx_documents_destination" in _index_names(d)
        finally:
            d.close()

    def test_cache_gets_no_documents_or_migrations(self, tmp_path):
        d = open_database(str(tmp_path / "cache.db"), durable=False)
        try:
            assert _version(d) == 1
            assert _table_names(d) == {"kv_cache", "schema_version"}
            assert "idx_documents_destination" not in _index_names(d)
        finally:
            d.close()
