"""
sync/tasks.py

StatsSync — moves pair statistics from the live monitor into the
fast-path cache (staging) and from the cache into the durable store
(flush).

Staging (every STAGING_INTERVAL_SECONDS):
    monitor snapshot → resolve both endpoints → cache key
    "network_stats:<name1>:<name2>" holding a JSON entry, 7-day TTL.

Flush (every FLUSH_INTERVAL_SECONDS):
    every "network_stats:" key → parse → stamp recorded_at → upsert into
    the "traffic" collection with the cache key as document id.
    Replaying a key rewrites the same document. A key that fails is
    logged and the rest of the batch still runs.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable

from ..aggregation import TrafficMonitor
from ..errors import MonitorNotStarted
from ..metrics import METRICS
from ..resolver import DNSCache
from ..storage import DocumentStore, KeyValueCache
from ..utils import humanize_bytes

logger = logging.getLogger(__name__)

STATS_KEY_PREFIX = "network_stats:"
TRAFFIC_COLLECTION = "traffic"
_STAGED_TTL_SECONDS = 7 * 24 * 3600


@dataclass
class FlushResult:
    keys_seen: int = 0
    flushed: int = 0
    skipped: int = 0
    """Keys that vanished or held no data."""

    failed: int = 0


class StatsSync:
    """
    Args:
        monitor:    Source of live pair statistics (staging only).
        resolver:   Turns addresses into display names for cache keys.
        cache:      Fast-path cache used as the staging area.
        store:      Durable store receiving flushed entries.
        staged_ttl: Lifetime of a staged cache entry in seconds.
    """

    def __init__(
        self,
        monitor: TrafficMonitor,
        resolver: DNSCache,
        cache: KeyValueCache,
        store: DocumentStore,
        staged_ttl: float = _STAGED_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._monitor = monitor
        self._resolver = resolver
        self._cache = cache
        self._store = store
        self._staged_ttl = staged_ttl
        self._clock = clock

    # ------------------------------------------------------------------
    # Staging: monitor → cache
    # ------------------------------------------------------------------

    async def stage_snapshot(self) -> int:
        """Write the current pair statistics into the cache. Returns pairs staged."""
        try:
            stats = self._monitor.get_stats()
        except MonitorNotStarted:
            logger.debug("Monitor not started — nothing to stage")
            return 0
        if not stats:
            return 0

        addresses = sorted({a for s in stats.values() for a in (s.ip1, s.ip2)})
        names = dict(zip(
            addresses,
            await asyncio.gather(*(self._resolver.resolve(a) for a in addresses)),
        ))

        now = self._clock()
        staged = 0
        for pair_key in sorted(stats):
            stat = stats[pair_key]
            name1, name2 = names[stat.ip1], names[stat.ip2]
            entry = {
                "ip1": name1,
                "ip2": name2,
                "bytes": humanize_bytes(stat.bytes),
                "bytes_total": stat.bytes,
                "packets": stat.packets,
                "last_updated": stat.last_updated,
                "timestamp": now,
            }
            cache_key = f"{STATS_KEY_PREFIX}{name1}:{name2}"
            try:
                self._cache.set(cache_key, json.dumps(entry), self._staged_ttl)
            except Exception as exc:
                logger.error("Error saving stats to cache for %s: %s", cache_key, exc)
                continue
            staged += 1
            logger.debug(
                "Connection between %s and %s: bytes=%s packets=%d",
                name1, name2, entry["bytes"], stat.packets,
            )

        METRICS.pairs_staged.inc(staged)
        logger.info("Staged %d/%d pairs", staged, len(stats))
        return staged

    # ------------------------------------------------------------------
    # Flush: cache → durable store
    # ------------------------------------------------------------------

    def flush_staged(self) -> FlushResult:
        """Upsert every staged entry into the durable store."""
        result = FlushResult()
        try:
            keys = self._cache.keys(STATS_KEY_PREFIX)
        except Exception as exc:
            logger.error("Failed to list staged keys: %s", exc)
            return result

        result.keys_seen = len(keys)
        if not keys:
            logger.info("No statistics found in cache")
            return result

        for key in keys:
            try:
                raw = self._cache.get(key)
            except Exception as exc:
                result.failed += 1
                logger.error("Error getting data for key %s: %s", key, exc)
                continue
            if raw is None:
                result.skipped += 1
                continue

            try:
                entry = json.loads(raw)
            except ValueError as exc:
                result.failed += 1
                logger.error("Error decoding data for key %s: %s", key, exc)
                continue
            if not isinstance(entry, dict) or not entry:
                result.skipped += 1
                continue

            entry["recorded_at"] = self._clock()
            try:
                self._store.upsert(TRAFFIC_COLLECTION, key, entry)
            except Exception as exc:
                result.failed += 1
                logger.error("Error upserting document for key %s: %s", key, exc)
                continue
            result.flushed += 1

        METRICS.documents_flushed.inc(result.flushed)
        METRICS.flush_errors.inc(result.failed)
        logger.info(
            "Flushed %d/%d staged entries (skipped=%d failed=%d)",
            result.flushed, result.keys_seen, result.skipped, result.failed,
        )
        return result
