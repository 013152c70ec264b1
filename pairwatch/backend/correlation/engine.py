"""
correlation/engine.py

CorrelationEngine — incremental pull from the session API, DNS correlation
and per-destination merge into the durable store.

One cycle:
  1. Window = [watermark.since, now]; watermark.since advances to now
     BEFORE the fetch. A failed fetch skips that window for good: forward
     progress is preferred over completeness.
  2. Fetch sessions in the window, newest first.
  3. Walk newest → oldest, stopping at the previous cycle's newest id.
  4. Sessions that carry DNS hostnames teach the hint table which
     addresses those names resolved to.
  5. Sessions with payload bytes and no DNS hostnames are summed per
     (destination, source).
  6. The newest fetched id becomes watermark.last_seen_id (unchanged when
     the window was empty).
  7. Each (destination, source) total is merged into the "destinations"
     collection under (domain, user): inserted if new, otherwise set to
     prior total + cycle total inside one store transaction.

The engine is driven by exactly one task; the watermark and the hint
table need no locking.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from ..errors import SessionAPIError
from ..metrics import METRICS
from ..storage import DocumentStore, KeyValueCache
from .dns_hints import DNSHintTable, extract_dns_addresses
from .models import CycleResult, SessionRecord, Watermark
from .session_client import SessionSource

logger = logging.getLogger(__name__)

DESTINATIONS_COLLECTION = "destinations"
_DEFAULT_CONNECTIVITY = "wifi"
_WATERMARK_GRACE_SECONDS = 60


class CorrelationEngine:
    """
    Args:
        source:               External session API (SessionSource).
        store:                Durable store for destination aggregates.
        cache:                Fast-path cache holding each user's connectivity type.
        hints:                Shared DNS hint table (a fresh one if omitted).
        grace_seconds:        How far back the first window reaches on cold start.
        default_connectivity: Type assumed when the cache has no entry for a user.
        clock:                Unix-time source (tests pass a fake).
    """

    def __init__(
        self,
        source: SessionSource,
        store: DocumentStore,
        cache: KeyValueCache,
        hints: DNSHintTable | None = None,
        grace_seconds: float = _WATERMARK_GRACE_SECONDS,
        default_connectivity: str = _DEFAULT_CONNECTIVITY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._source = source
        self._store = store
        self._cache = cache
        self.hints = hints if hints is not None else DNSHintTable()
        self._default_connectivity = default_connectivity
        self._clock = clock
        self.watermark = Watermark.cold_start(clock(), grace_seconds)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleResult:
        """Run one correlation cycle. Item-level failures never raise."""
        now = self._clock()
        result = CycleResult(window_start=self.watermark.since, window_end=now)
        self.watermark.since = now

        try:
            sessions = await self._source.fetch_sessions(result.window_start, result.window_end)
        except SessionAPIError as exc:
            result.fetch_failed = True
            logger.warning(
                "Session fetch for window [%.0f, %.0f] failed, window skipped: %s",
                result.window_start, result.window_end, exc,
            )
            return result

        result.fetched = len(sessions)
        METRICS.sessions_fetched.inc(len(sessions))

        previous_id = self.watermark.last_seen_id
        for session in sessions:
            if previous_id is not None and session.id == previous_id:
                break
            result.processed += 1
            if session.dns_hosts:
                result.hints_added += await self._learn_hints(session)
            elif session.data_bytes > 0:
                key = (session.dst_ip, session.src_ip)
                result.totals[key] = result.totals.get(key, 0) + session.data_bytes

        if sessions:
            self.watermark.last_seen_id = sessions[0].id

        for (dst_ip, src_ip), total in result.totals.items():
            try:
                self.merge(dst_ip, src_ip, total)
                result.merged += 1
            except Exception as exc:
                result.failed_merges += 1
                logger.error(
                    "Merging %d bytes for dst=%s user=%s failed: %s",
                    total, dst_ip, src_ip, exc,
                )

        METRICS.aggregates_merged.inc(result.merged)
        if result.processed:
            logger.info(
                "Correlation cycle — fetched=%d processed=%d hints=%d merged=%d failed=%d",
                result.fetched, result.processed, result.hints_added,
                result.merged, result.failed_merges,
            )
        return result

    def merge(self, dst_ip: str, src_ip: str, total: int) -> dict:
        """
        Add ``total`` bytes to the (domain, user) aggregate for this pair.

        Returns the aggregate fields as written.
        """
        domain = self.hints.get(dst_ip, dst_ip)
        connectivity = self._cache.get(src_ip) or self._default_connectivity
        query = {"domain": domain, "user": src_ip}

        with self._store.transaction():
            existing = self._store.find_one(DESTINATIONS_COLLECTION, query)
            if existing is None:
                fields = {
                    **query,
                    "total_bytes": total,
                    "connectivity": connectivity,
                    "updated_at": self._clock(),
                }
                self._store.insert_one(DESTINATIONS_COLLECTION, fields)
            else:
                fields = {
                    "total_bytes": int(existing.get("total_bytes", 0)) + total,
                    "connectivity": connectivity,
                    "updated_at": self._clock(),
                }
                self._store.update_one(DESTINATIONS_COLLECTION, query, fields)
                fields = {**query, **fields}

        logger.debug(
            "Merged destination domain=%s user=%s total=%d (+%d)",
            domain, src_ip, fields["total_bytes"], total,
        )
        return fields

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _learn_hints(self, session: SessionRecord) -> int:
        """Associate the session's DNS answer addresses with its first hostname."""
        addresses = list(session.dns_ips)
        if not addresses:
            try:
                payload = await self._source.fetch_session_detail(session)
            except SessionAPIError as exc:
                logger.warning("No DNS hints from session %s: %s", session.id, exc)
                return 0
            addresses = extract_dns_addresses(payload)

        hostname = session.dns_hosts[0]
        return sum(1 for address in addresses if self.hints.add(address, hostname))
