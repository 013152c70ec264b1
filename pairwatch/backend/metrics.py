"""
backend/metrics.py

Process-wide counters shared by the capture thread, the asyncio tasks and
the API handlers. Each counter carries its own lock, so increments from
the Scapy thread never contend with readers of unrelated counters.

    from pairwatch.backend.metrics import METRICS
    METRICS.pairs_staged.inc(12)
    METRICS.as_dict()   # {"packets_received": ..., ...}
"""

from __future__ import annotations

import threading

# name → what it counts
_COUNTERS: dict[str, str] = {
    # capture
    "packets_received": "frames delivered by the sniffer callback",
    "packets_recorded": "frames that updated a pair record",
    "packets_parse_error": "frames the parser raised on",
    "packets_non_ip": "frames without an IPv4/IPv6 header",
    "pairs_evicted": "pair records dropped by eviction sweeps",
    # resolution
    "dns_lookups": "reverse lookups attempted",
    "dns_cache_hits": "names served from the resolver cache",
    "dns_failures": "lookups that fell back to the raw address",
    # sync and correlation
    "pairs_staged": "pair entries written to the cache",
    "documents_flushed": "staged entries upserted into the store",
    "flush_errors": "staged entries that could not be flushed",
    "sessions_fetched": "session rows read from the session API",
    "aggregates_merged": "destination aggregates inserted or updated",
    "worker_restarts": "background workers restarted after a crash",
}


class Counter:
    """Monotonic integer with its own lock."""

    __slots__ = ("_value", "_lock")

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    def reset(self) -> None:
        with self._lock:
            self._value = 0

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class Metrics:
    """One Counter attribute per entry in _COUNTERS."""

    packets_received: Counter
    packets_recorded: Counter
    packets_parse_error: Counter
    packets_non_ip: Counter
    pairs_evicted: Counter
    dns_lookups: Counter
    dns_cache_hits: Counter
    dns_failures: Counter
    pairs_staged: Counter
    documents_flushed: Counter
    flush_errors: Counter
    sessions_fetched: Counter
    aggregates_merged: Counter
    worker_restarts: Counter

    def __init__(self) -> None:
        for name in _COUNTERS:
            setattr(self, name, Counter())

    def as_dict(self) -> dict[str, int]:
        return {name: getattr(self, name).value for name in _COUNTERS}

    @staticmethod
    def describe() -> dict[str, str]:
        return dict(_COUNTERS)

    def reset_all(self) -> None:
        for name in _COUNTERS:
            getattr(self, name).reset()


METRICS = Metrics()
