"""
resolver/dns_cache.py

DNSCache: memoising reverse-DNS resolver with a hard per-lookup timeout.

Behaviour:
  - Cache hit → returned immediately, no lookup.
  - Cache miss → blocking reverse lookup on the cache's own thread pool,
    raced against ``timeout`` seconds.
  - Timeout, resolver error or empty answer → the raw address is returned
    AND cached, so a failed address is never looked up again in this
    process.
  - Two concurrent misses on one address may both look it up; whichever
    finishes last wins the cache slot.

Concurrency: at most ``max_workers`` lookups run at once. A miss waits for
a free slot before its timeout starts, so a burst of misses (one gather()
over a whole snapshot) queues instead of timing out in the pool.

Thread safety: the dict is guarded by a threading.Lock so the cache can be
read from the API handlers and the sync tasks alike.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from ..metrics import METRICS

logger = logging.getLogger(__name__)

_LOOKUP_TIMEOUT_SECONDS = 2.0
_LOOKUP_WORKERS = 16


def reverse_lookup(address: str) -> str:
    """Blocking PTR lookup. Raises OSError when the resolver has no answer."""
    hostname, _aliases, _addrs = socket.gethostbyaddr(address)
    return hostname


class DNSCache:
    """
    Address → display-name cache.

    Args:
        timeout:     Seconds to wait for one running reverse lookup.
        lookup:      Blocking resolver function; defaults to reverse_lookup().
        max_workers: Lookups allowed in flight at once.
    """

    def __init__(
        self,
        timeout: float = _LOOKUP_TIMEOUT_SECONDS,
        lookup: Callable[[str], str] = reverse_lookup,
        max_workers: int = _LOOKUP_WORKERS,
    ) -> None:
        self._timeout = timeout
        self._lookup = lookup
        self._cache: dict[str, str] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="dns-lookup"
        )
        self._slots = asyncio.Semaphore(max_workers)

    async def resolve(self, address: str) -> str:
        """Return the hostname for ``address``, or ``address`` itself."""
        with self._lock:
            cached = self._cache.get(address)
        if cached is not None:
            METRICS.dns_cache_hits.inc()
            return cached

        METRICS.dns_lookups.inc()
        try:
            pending = await self._submit(address)
            name = await asyncio.wait_for(pending, timeout=self._timeout)
            result = name.rstrip(".") if name else ""
            if not result:
                result = address
        except asyncio.TimeoutError:
            METRICS.dns_failures.inc()
            logger.debug("Reverse lookup for %s timed out after %.1fs", address, self._timeout)
            result = address
        except (OSError, UnicodeError, ValueError) as exc:
            METRICS.dns_failures.inc()
            logger.debug("Reverse lookup for %s failed: %s", address, exc)
            result = address

        with self._lock:
            self._cache[address] = result
        return result

    async def _submit(self, address: str) -> asyncio.Future:
        """
        Wait for a free slot, then start the lookup. The slot stays taken
        until the worker thread returns, even after the caller timed out.
        """
        await self._slots.acquire()
        loop = asyncio.get_running_loop()
        try:
            job = self._executor.submit(self._lookup, address)
        except BaseException:
            self._slots.release()
            raise
        job.add_done_callback(lambda _job: self._release_slot(loop))
        return asyncio.wrap_future(job, loop=loop)

    def _release_slot(self, loop: asyncio.AbstractEventLoop) -> None:
        try:
            loop.call_soon_threadsafe(self._slots.release)
        except RuntimeError:
            pass  # loop already closed at shutdown

    def cached(self, address: str) -> str | None:
        """Return the cached name for ``address`` without resolving it."""
        with self._lock:
            return self._cache.get(address)

    def close(self) -> None:
        """Drop queued lookups; running ones finish in the background."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
