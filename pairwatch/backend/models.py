"""
backend/models.py

PacketMeta is the only thing the capture thread hands downstream: two
endpoints and a frame length. Pair records live in aggregation/models.py,
session rows in correlation/models.py.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PacketMeta:
    timestamp: float    # capture time, Unix seconds
    src_ip: str
    dst_ip: str
    length: int         # whole frame, link layer included

    @property
    def endpoints(self) -> tuple[str, str]:
        return self.src_ip, self.dst_ip
