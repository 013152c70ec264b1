"""
tests/test_stats_sync.py

Tests for sync/tasks.py — staging pair statistics into the cache and
flushing staged entries into the durable store.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from pairwatch.backend.aggregation.models import PairStat
from pairwatch.backend.errors import MonitorNotStarted
from pairwatch.backend.metrics import METRICS
from pairwatch.backend.resolver.dns_cache import DNSCache
from pairwatch.backend.storage.database import Database
from pairwatch.backend.storage.documents import DocumentStore
from pairwatch.backend.storage.kv_cache import KeyValueCache
from pairwatch.backend.sync.tasks import STATS_KEY_PREFIX, TRAFFIC_COLLECTION, StatsSync


@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset_all()
    yield


# ---------------------------------------------------------------------------
# Fakes and fixtures
# ---------------------------------------------------------------------------

class FakeMonitor:
    def __init__(self, stats=None) -> None:
        self.stats = stats

    def get_stats(self):
        if self.stats is None:
            raise MonitorNotStarted()
        return {k: v.copy() for k, v in self.stats.items()}


NAMES = {"10.0.0.1": "gateway.lan", "8.8.8.8": "dns.google"}


def fake_lookup(address: str) -> str:
    if address in NAMES:
        return NAMES[address]
    raise OSError("host not found")


def stat(a, b, nbytes, packets, updated=1_000.0):
    return PairStat(ip1=a, ip2=b, bytes=nbytes, packets=packets, last_updated=updated)


@pytest.fixture
def db():
    d = Database(":memory:")
    d.init_schema()
    yield d
    d.close()


@pytest.fixture
def cache(db):
    return KeyValueCache(db)


@pytest.fixture
def store(db):
    return DocumentStore(db)


def make_sync(monitor, cache, store, now=2_000.0):
    return StatsSync(
        monitor=monitor,
        resolver=DNSCache(lookup=fake_lookup),
        cache=cache,
        store=store,
        clock=lambda: now,
    )


# ---------------------------------------------------------------------------
# Staging
# ---------------------------------------------------------------------------

class TestStage:

    @pytest.mark.asyncio
    async def test_entry_written_under_resolved_names(self, cache, store):
        monitor = FakeMonitor({"10.0.0.1-8.8.8.8": stat("10.0.0.1", "8.8.8.8", 1536, 12)})
        staged = await make_sync(monitor, cache, store).stage_snapshot()

        assert staged == 1
        key = "network_stats:gateway.lan:dns.google"
        assert cache.keys(STATS_KEY_PREFIX) == [key]
        entry = json.loads(cache.get(key))
        assert entry == {
            "ip1": "gateway.lan",
            "ip2": "dns.google",
            "bytes": "1.5 KB",
            "bytes_total": 1536,
            "packets": 12,
            "last_updated": 1_000.0,
            "timestamp": 2_000.0,
        }
        assert METRICS.pairs_staged.value == 1

    @pytest.mark.asyncio
    async def test_unresolvable_address_kept_raw(self, cache, store):
        monitor = FakeMonitor({"10.0.0.7-8.8.8.8": stat("10.0.0.7", "8.8.8.8", 10, 1)})
        await make_sync(monitor, cache, store).stage_snapshot()
        assert cache.keys(STATS_KEY_PREFIX) == ["network_stats:10.0.0.7:dns.google"]

    @pytest.mark.asyncio
    async def test_entries_carry_ttl(self, db, store):
        now = [2_000.0]
        cache = KeyValueCache(db, clock=lambda: now[0])
        monitor = FakeMonitor({"10.0.0.1-8.8.8.8": stat("10.0.0.1", "8.8.8.8", 10, 1)})
        await make_sync(monitor, cache, store).stage_snapshot()
        now[0] += 7 * 24 * 3600
        assert cache.keys(STATS_KEY_PREFIX) == []

    @pytest.mark.asyncio
    async def test_not_started_stages_nothing(self, cache, store):
        assert await make_sync(FakeMonitor(), cache, store).stage_snapshot() == 0
        assert cache.keys() == []

    @pytest.mark.asyncio
    async def test_empty_table_stages_nothing(self, cache, store):
        assert await make_sync(FakeMonitor({}), cache, store).stage_snapshot() == 0

    @pytest.mark.asyncio
    async def test_cache_error_skips_one_pair(self, cache, store):
        monitor = FakeMonitor({
            "10.0.0.1-8.8.8.8": stat("10.0.0.1", "8.8.8.8", 10, 1),
            "10.0.0.1-10.0.0.2": stat("10.0.0.1", "10.0.0.2", 10, 1),
        })
        real_set = cache.set

        def flaky_set(key, value, ttl=None):
            if "dns.google" in key:
                raise RuntimeError("disk full")
            real_set(key, value, ttl)

        with patch.object(cache, "set", side_effect=flaky_set):
            staged = await make_sync(monitor, cache, store).stage_snapshot()
        assert staged == 1
        assert cache.keys(STATS_KEY_PREFIX) == ["network_stats:gateway.lan:10.0.0.2"]


# ---------------------------------------------------------------------------
# Flush
# ---------------------------------------------------------------------------

class TestFlush:

    def test_staged_entries_upserted(self, cache, store):
        cache.set("network_stats:a:b", json.dumps({"ip1": "a", "ip2": "b", "packets": 2}))
        cache.set("10.0.0.9", "4g")    # not a stats key

        result = make_sync(FakeMonitor(), cache, store, now=3_000.0).flush_staged()

        assert (result.keys_seen, result.flushed, result.failed) == (1, 1, 0)
        doc = store.get(TRAFFIC_COLLECTION, "network_stats:a:b")
        assert doc["packets"] == 2
        assert doc["recorded_at"] == 3_000.0
        assert METRICS.documents_flushed.value == 1

    def test_replay_keeps_one_document(self, cache, store):
        cache.set("network_stats:a:b", json.dumps({"ip1": "a", "packets": 2}))
        sync = make_sync(FakeMonitor(), cache, store)
        sync.flush_staged()
        cache.set("network_stats:a:b", json.dumps({"ip1": "a", "packets": 5}))
        sync.flush_staged()
        assert store.count(TRAFFIC_COLLECTION) == 1
        assert store.get(TRAFFIC_COLLECTION, "network_stats:a:b")["packets"] == 5

    def test_no_keys(self, cache, store):
        result = make_sync(FakeMonitor(), cache, store).flush_staged()
        assert result.keys_seen == 0
        assert store.count(TRAFFIC_COLLECTION) == 0

    def test_malformed_entry_counted_and_skipped(self, cache, store):
        cache.set("network_stats:a:b", "{not json")
        cache.set("network_stats:c:d", json.dumps({"packets": 1}))
        cache.set("network_stats:e:f", json.dumps({}))
        result = make_sync(FakeMonitor(), cache, store).flush_staged()
        assert result.failed == 1
        assert result.skipped == 1
        assert result.flushed == 1
        assert store.get(TRAFFIC_COLLECTION, "network_stats:c:d") is not None

    def test_store_failure_does_not_stop_batch(self, cache, store):
        for name in ("a", "b", "c"):
            cache.set(f"network_stats:{name}:x", json.dumps({"ip1": name}))
        real_upsert = store.upsert

        def flaky_upsert(collection, doc_id, fields):
            if doc_id == "network_stats:b:x":
                raise RuntimeError("database is locked")
            real_upsert(collection, doc_id, fields)

        with patch.object(store, "upsert", side_effect=flaky_upsert):
            result = make_sync(FakeMonitor(), cache, store).flush_staged()

        assert (result.flushed, result.failed) == (2, 1)
        assert store.get(TRAFFIC_COLLECTION, "network_stats:c:x") is not None
        assert METRICS.flush_errors.value == 1

    def test_key_listing_failure_returns_empty_result(self, cache, store):
        with patch.object(cache, "keys", side_effect=RuntimeError("unavailable")):
            result = make_sync(FakeMonitor(), cache, store).flush_staged()
        assert result.keys_seen == 0
