"""
api/routes/network.py

GET  /network-stats     — current pair statistics, ordered by pair key
POST /start-monitoring  — open (or replace) the live capture
POST /stop-monitoring   — close the live capture
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ...aggregation import TrafficMonitor
from ...errors import CaptureError, MonitorNotStarted
from ...resolver import DNSCache
from ..serializers import MessageResponse, PairStatResponse, StartMonitoringRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["network"])


def _get_monitor(request: Request) -> TrafficMonitor:
    return request.app.state.monitor


def _get_resolver(request: Request) -> DNSCache:
    return request.app.state.resolver


@router.get("/network-stats", response_model=list[PairStatResponse])
async def get_network_stats(
    monitor: TrafficMonitor = Depends(_get_monitor),
    resolver: DNSCache = Depends(_get_resolver),
):
    """Return every live pair with both endpoints resolved to display names."""
    try:
        stats = monitor.get_stats()
    except MonitorNotStarted as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    ordered = [stats[key] for key in sorted(stats)]
    names = await asyncio.gather(
        *(resolver.resolve(addr) for stat in ordered for addr in (stat.ip1, stat.ip2))
    )
    return [
        PairStatResponse.from_stat(stat, names[2 * i], names[2 * i + 1])
        for i, stat in enumerate(ordered)
    ]


@router.post("/start-monitoring", response_model=MessageResponse)
def start_monitoring(
    body: StartMonitoringRequest,
    monitor: TrafficMonitor = Depends(_get_monitor),
):
    try:
        monitor.start(body.interface)
    except CaptureError as exc:
        logger.error("Failed to start monitoring on %r: %s", body.interface, exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return MessageResponse(message="Monitoring started")


@router.post("/stop-monitoring", response_model=MessageResponse)
def stop_monitoring(monitor: TrafficMonitor = Depends(_get_monitor)):
    monitor.stop()
    return MessageResponse(message="Monitoring stopped")
