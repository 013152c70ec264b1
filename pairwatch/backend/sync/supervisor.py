"""
sync/supervisor.py

Periodic scheduling and crash supervision for background workers.

run_periodic() ticks a job every ``interval`` seconds until the shutdown
event is set. supervise() wraps any worker coroutine: an exception that
escapes the worker is logged with its traceback and the worker is started
again from scratch after ``restart_delay``. More than
``max_restarts_per_minute`` crashes inside a rolling minute makes the
supervisor hold off until that minute has passed.

Cancellation and the shutdown event both end supervision.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable

from ..metrics import METRICS

logger = logging.getLogger(__name__)

_RESTART_WINDOW_SECONDS = 60.0


async def wait_or_stop(shutdown_event: asyncio.Event, timeout: float) -> bool:
    """Sleep up to ``timeout`` seconds. Returns True if shutdown was signalled."""
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        return shutdown_event.is_set()


async def run_periodic(
    name: str,
    interval: float,
    job: Callable[[], Any],
    shutdown_event: asyncio.Event,
) -> None:
    """
    Call ``job`` every ``interval`` seconds (sync or async).

    The first call happens one interval after start. Exceptions from the
    job propagate so the surrounding supervisor sees them.
    """
    logger.info("%s started (interval=%.1fs)", name, interval)
    while not await wait_or_stop(shutdown_event, interval):
        result = job()
        if inspect.isawaitable(result):
            await result
    logger.info("%s exiting", name)


async def supervise(
    name: str,
    worker: Callable[[], Awaitable[None]],
    shutdown_event: asyncio.Event,
    restart_delay: float = 1.0,
    max_restarts_per_minute: int = 5,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Run ``worker()`` and restart it whenever it raises."""
    crashes: deque[float] = deque()

    while not shutdown_event.is_set():
        try:
            await worker()
            return
        except asyncio.CancelledError:
            raise
        except Exception:
            METRICS.worker_restarts.inc()
            logger.exception("Worker %r crashed — restarting", name)

        now = clock()
        crashes.append(now)
        while crashes and now - crashes[0] > _RESTART_WINDOW_SECONDS:
            crashes.popleft()

        delay = restart_delay
        if len(crashes) > max_restarts_per_minute:
            delay = max(delay, _RESTART_WINDOW_SECONDS - (now - crashes[0]))
            logger.warning(
                "Worker %r crashed %d times in %.0fs — holding off %.1fs",
                name, len(crashes), _RESTART_WINDOW_SECONDS, delay,
            )

        if await wait_or_stop(shutdown_event, delay):
            break

    logger.info("Supervisor for %r exiting", name)
