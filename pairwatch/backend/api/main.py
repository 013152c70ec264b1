"""
api/main.py

FastAPI application factory.

The monitor, resolver and fast-path cache are handed to create_app() and
kept on app.state; routes read them through small dependency functions.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..aggregation import TrafficMonitor
from ..metrics import METRICS
from ..resolver import DNSCache
from ..storage import KeyValueCache
from .routes import mobile as mobile_router
from .routes import network as network_router
from .serializers import HealthResponse

logger = logging.getLogger(__name__)


def create_app(
    monitor: TrafficMonitor,
    resolver: DNSCache,
    cache: KeyValueCache,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("FastAPI startup")
        yield
        logger.info("FastAPI shutdown")

    app = FastAPI(
        title="PairWatch — Host-Pair Traffic Aggregator",
        version="1.0.0",
        description="Live host-pair statistics and destination correlation",
        lifespan=lifespan,
    )
    app.state.monitor = monitor
    app.state.resolver = resolver
    app.state.cache = cache

    app.include_router(network_router.router)
    app.include_router(mobile_router.router)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            monitoring=monitor.is_running,
            interface=monitor.iface,
            monitor=monitor.stats,
            metrics=METRICS.as_dict(),
        )

    return app
