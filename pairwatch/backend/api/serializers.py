"""
api/serializers.py

Request / response models for the HTTP surface.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from ..aggregation import PairStat
from ..utils import humanize_bytes


class PairStatResponse(BaseModel):
    ip1: str
    ip2: str
    bytes: str
    """Humanized byte count, e.g. '1.5 KB'."""

    packets: int
    last_updated: float

    @classmethod
    def from_stat(cls, stat: PairStat, name1: str, name2: str) -> "PairStatResponse":
        return cls(
            ip1=name1,
            ip2=name2,
            bytes=humanize_bytes(stat.bytes),
            packets=stat.packets,
            last_updated=stat.last_updated,
        )


class StartMonitoringRequest(BaseModel):
    interface: str = Field(min_length=1)


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    monitoring: bool
    interface: str | None = None
    monitor: dict[str, int] = {}
    metrics: dict[str, int] = {}
