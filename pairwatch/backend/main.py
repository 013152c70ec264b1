from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sqlite3
import sys
from typing import NoReturn

import uvicorn
from pydantic import ValidationError

from .aggregation import TrafficMonitor
from .api.main import create_app
from .config import Settings
from .correlation import CorrelationEngine, SessionAPIClient
from .errors import PairWatchError, StorageError
from .metrics import METRICS
from .resolver import DNSCache
from .storage import Database, DocumentStore, KeyValueCache
from .storage.migrations import apply_migrations
from .sync import StatsSync, run_periodic, supervise

logger = logging.getLogger("pairwatch.main")


def open_database(path: str, durable: bool) -> Database:
    """
    Open one SQLite database. The durable store gets the documents table
    and its migrations; the cache gets kv_cache only.
    Raises StorageError on failure.
    """
    try:
        db = Database(path)
        db.init_schema(documents=durable, kv_cache=not durable)
        if durable:
            apply_migrations(db)
    except (sqlite3.Error, OSError) as exc:
        raise StorageError(f"cannot open database {path!r}: {exc}") from exc
    return db


async def close_with_timeout(db: Database, timeout: float) -> None:
    """Close ``db`` off the loop, giving up after ``timeout`` seconds."""
    try:
        await asyncio.wait_for(asyncio.to_thread(db.close), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Closing %r timed out after %.1fs", db.db_path, timeout)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

async def run(settings: Settings) -> None:
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _signal_handler(_signum, _frame) -> None:
        logger.info("Shutdown signal received")
        loop.call_soon_threadsafe(shutdown_event.set)

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    # Storage: fatal if either side cannot be opened
    store_db = open_database(settings.DB_PATH, durable=True)
    try:
        cache_db = open_database(settings.CACHE_DB_PATH, durable=False)
    except StorageError:
        store_db.close()
        raise

    store = DocumentStore(store_db)
    cache = KeyValueCache(cache_db)
    resolver = DNSCache(
        timeout=settings.DNS_LOOKUP_TIMEOUT_SECONDS,
        max_workers=settings.DNS_LOOKUP_WORKERS,
    )
    monitor = TrafficMonitor(
        retention_seconds=settings.PAIR_RETENTION_SECONDS,
        eviction_interval=settings.EVICTION_INTERVAL_SECONDS,
        bpf_filter=settings.BPF_FILTER,
    )
    stats_sync = StatsSync(
        monitor=monitor,
        resolver=resolver,
        cache=cache,
        store=store,
        staged_ttl=settings.STAGED_STATS_TTL_SECONDS,
    )
    session_client: SessionAPIClient | None = None

    def _periodic(name: str, interval: float, job):
        return lambda: run_periodic(name, interval, job, shutdown_event)

    def _supervised(name: str, worker) -> asyncio.Task:
        return asyncio.create_task(
            supervise(
                name,
                worker,
                shutdown_event,
                restart_delay=settings.RESTART_DELAY_SECONDS,
                max_restarts_per_minute=settings.MAX_RESTARTS_PER_MINUTE,
            ),
            name=name,
        )

    tasks: list[asyncio.Task] = []
    try:
        if settings.MODE == "capture":
            monitor.start(settings.INTERFACE)   # CaptureError is fatal here
            tasks.append(_supervised("eviction", lambda: monitor.run_eviction(shutdown_event)))
            tasks.append(_supervised("staging", _periodic(
                "staging", settings.STAGING_INTERVAL_SECONDS, stats_sync.stage_snapshot,
            )))
        else:
            session_client = SessionAPIClient(
                settings.SESSION_API_URL,
                user=settings.SESSION_API_USER,
                password=settings.SESSION_API_PASSWORD,
                timeout=settings.SESSION_API_TIMEOUT_SECONDS,
                page_size=settings.SESSION_API_PAGE_SIZE,
            )
            engine = CorrelationEngine(
                source=session_client,
                store=store,
                cache=cache,
                grace_seconds=settings.WATERMARK_GRACE_SECONDS,
                default_connectivity=settings.DEFAULT_CONNECTIVITY,
            )
            tasks.append(_supervised("correlation", _periodic(
                "correlation", settings.CORRELATION_INTERVAL_SECONDS, engine.run_cycle,
            )))
        tasks.append(_supervised("flush", _periodic(
            "flush", settings.FLUSH_INTERVAL_SECONDS, stats_sync.flush_staged,
        )))

        # FastAPI + uvicorn
        app = create_app(monitor=monitor, resolver=resolver, cache=cache)
        uv_config = uvicorn.Config(
            app,
            host=settings.API_HOST,
            port=settings.API_PORT,
            log_level="warning",
            loop="none",
        )
        uv_server = uvicorn.Server(uv_config)
        api_task = asyncio.create_task(uv_server.serve(), name="api")
        # Losing the API (bind failure, crash) takes the service down
        api_task.add_done_callback(lambda _t: shutdown_event.set())

        logger.info(
            "PairWatch — mode=%s iface=%r API=http://%s:%d",
            settings.MODE, settings.INTERFACE, settings.API_HOST, settings.API_PORT,
        )

        await shutdown_event.wait()

        uv_server.should_exit = True
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, api_task, return_exceptions=True)
    finally:
        monitor.stop()
        resolver.close()
        if session_client is not None:
            await session_client.aclose()
        await close_with_timeout(store_db, settings.SHUTDOWN_TIMEOUT_SECONDS)
        await close_with_timeout(cache_db, settings.SHUTDOWN_TIMEOUT_SECONDS)
        logger.info("Final metrics — %s", METRICS.as_dict())
        logger.info("PairWatch stopped")


def _parse_args(settings: Settings) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="PairWatch host-pair traffic aggregator")
    parser.add_argument("--mode", default=settings.MODE, choices=["capture", "sessions"])
    parser.add_argument("--iface", default=settings.INTERFACE)
    parser.add_argument("--filter", default=settings.BPF_FILTER, dest="bpf")
    parser.add_argument(
        "--log-level", default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args()


def main() -> NoReturn:
    try:
        settings = Settings()
    except ValidationError as e:
        print(f"ERROR: invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    args = _parse_args(settings)
    settings = settings.model_copy(
        update={"MODE": args.mode, "INTERFACE": args.iface, "BPF_FILTER": args.bpf}
    )
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        asyncio.run(run(settings))
    except PairWatchError as e:
        logger.critical("Startup failed: %s", e)
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
