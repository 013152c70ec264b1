"""
aggregation/monitor.py

TrafficMonitor — owns the one live capture session and its pair table.

The monitor holds an optional PacketCapture and an optional
PairStatsTable. Both are swapped together under one lock:

    start(iface)  → new table + new capture (an existing capture is stopped
                    first, so at most one capture exists per monitor)
    stop()        → capture closed, table dropped
    get_stats()   → snapshot of the current table, or MonitorNotStarted

Each capture is bound to the table created with it, so a replaced
capture can never write into its successor's table.

Stats dict (exposed for /health):
    pairs_active         — pairs currently in the table
    pairs_evicted_total  — cumulative pairs removed by eviction sweeps
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable

from ..capture import PacketCapture
from ..errors import MonitorNotStarted
from ..metrics import METRICS
from ..models import PacketMeta
from .models import PairStat
from .pair_table import PairStatsTable

logger = logging.getLogger(__name__)


class TrafficMonitor:
    """
    Lifecycle owner for the capture → pair table path.

    Args:
        retention_seconds: Idle time after which evict() drops a pair.
        eviction_interval: Seconds between sweeps in run_eviction().
        bpf_filter:        Passed to every PacketCapture this monitor opens.
        clock:             Unix-time source for new tables (tests pass a fake).
        capture_factory:   Builds the capture; defaults to PacketCapture.
    """

    def __init__(
        self,
        retention_seconds: float = 300,
        eviction_interval: float = 60.0,
        bpf_filter: str = "ip or ip6",
        clock: Callable[[], float] = time.time,
        capture_factory: Callable[..., PacketCapture] = PacketCapture,
    ) -> None:
        self._retention = retention_seconds
        self._eviction_interval = eviction_interval
        self._bpf_filter = bpf_filter
        self._clock = clock
        self._capture_factory = capture_factory

        self._lock = threading.Lock()
        self._capture: PacketCapture | None = None
        self._table: PairStatsTable | None = None
        self._evicted_total = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, iface: str) -> None:
        """
        Open a capture on ``iface`` with a fresh pair table.

        Raises:
            CaptureError: the device could not be opened. The monitor is
                left stopped in that case.
        """
        with self._lock:
            self._stop_locked()

            table = PairStatsTable(clock=self._clock)

            def _sink(meta: PacketMeta) -> None:
                src, dst = meta.endpoints
                table.record(src, dst, meta.length)

            capture = self._capture_factory(
                sink=_sink,
                iface=iface,
                bpf_filter=self._bpf_filter,
            )
            capture.start()

            self._capture = capture
            self._table = table
            logger.info("Network monitoring started on interface: %s", iface)

    def stop(self) -> None:
        """Close the capture and forget the table. Safe to call twice."""
        with self._lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        if self._capture is not None:
            self._capture.stop()
            logger.info("Network monitoring stopped on interface: %s", self._capture.iface)
        self._capture = None
        self._table = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, PairStat]:
        """
        Return a copy of every pair statistic, keyed on pair key.

        Raises:
            MonitorNotStarted: start() was never called (or stop() was).
        """
        table = self._table
        if table is None:
            raise MonitorNotStarted()
        return table.snapshot()

    def evict(self) -> int:
        """Run one eviction sweep over the current table."""
        table = self._table
        if table is None:
            return 0
        removed = table.evict(self._retention)
        if removed:
            self._evicted_total += removed
            METRICS.pairs_evicted.inc(removed)
        return removed

    async def run_eviction(self, shutdown_event: asyncio.Event) -> None:
        """Sweep every eviction_interval seconds until shutdown_event is set."""
        logger.info(
            "Eviction sweeper started (interval=%.0fs, retention=%.0fs)",
            self._eviction_interval, self._retention,
        )
        while True:
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self._eviction_interval)
                break
            except asyncio.TimeoutError:
                pass
            self.evict()
        logger.info("Eviction sweeper exiting")

    @property
    def is_started(self) -> bool:
        return self._table is not None

    @property
    def is_running(self) -> bool:
        """False once the capture thread has died, even if start() succeeded."""
        capture = self._capture
        return capture is not None and capture.is_running

    @property
    def iface(self) -> str | None:
        capture = self._capture
        return capture.iface if capture is not None else None

    @property
    def stats(self) -> dict[str, int]:
        table = self._table
        return {
            "pairs_active": len(table) if table is not None else 0,
            "pairs_evicted_total": self._evicted_total,
        }
