"""
aggregation/pair_table.py

PairStatsTable — cumulative per-pair counters for all live host pairs.

Design constraints:
  - record() is called from Scapy's capture thread for every packet, while
    snapshot() and evict() run on the asyncio loop. Every access to the
    dict goes through one threading.Lock; the critical sections are plain
    dict operations, so the capture thread never waits longer than that.
  - snapshot() hands out copies, never the live PairStat objects.
  - evict() reads "now" once under the lock. A pair touched after the sweep
    started has a timestamp past the cutoff and always survives it.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from .models import PairStat, make_pair_key, order_pair

logger = logging.getLogger(__name__)


class PairStatsTable:
    """
    Thread-safe table of PairStat keyed on the normalised pair key.

    Args:
        clock: Returns the current Unix time. Tests pass a fake.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._stats: dict[str, PairStat] = {}
        self._lock = threading.Lock()
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def record(self, addr_a: str, addr_b: str, length: int) -> None:
        """Add one packet of ``length`` bytes to the pair {addr_a, addr_b}."""
        key = make_pair_key(addr_a, addr_b)
        with self._lock:
            now = self._clock()
            stat = self._stats.get(key)
            if stat is None:
                ip1, ip2 = order_pair(addr_a, addr_b)
                stat = PairStat(ip1=ip1, ip2=ip2, last_updated=now)
                self._stats[key] = stat
            stat.bytes += length
            stat.packets += 1
            stat.last_updated = now

    def snapshot(self) -> dict[str, PairStat]:
        """Return a point-in-time copy of every pair, keyed on pair key."""
        with self._lock:
            return {key: stat.copy() for key, stat in self._stats.items()}

    def evict(self, retention_seconds: float) -> int:
        """
        Remove pairs idle for longer than ``retention_seconds``.

        Returns the number of pairs removed.
        """
        with self._lock:
            cutoff = self._clock() - retention_seconds
            stale = [k for k, v in self._stats.items() if v.last_updated < cutoff]
            for key in stale:
                del self._stats[key]
            remaining = len(self._stats)

        if stale:
            logger.info(
                "Evicted %d idle pairs (retention=%ss, remaining: %d)",
                len(stale),
                retention_seconds,
                remaining,
            )
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._stats)
