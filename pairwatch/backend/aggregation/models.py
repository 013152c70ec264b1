"""
aggregation/models.py

Data models for the aggregation layer.

make_pair_key — order-independent key for an undirected host pair
PairStat      — cumulative byte / packet counters for one pair
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace

PAIR_KEY_SEPARATOR = "-"


def order_pair(addr_a: str, addr_b: str) -> tuple[str, str]:
    """Return the two addresses with the lexicographically smaller one first."""
    if addr_a < addr_b:
        return addr_a, addr_b
    return addr_b, addr_a


def make_pair_key(addr_a: str, addr_b: str) -> str:
    """
    Build the normalised pair key for two addresses.

    Traffic in either direction between the same two hosts maps to one key:
        make_pair_key("10.0.0.2", "10.0.0.1") == make_pair_key("10.0.0.1", "10.0.0.2")
    """
    first, second = order_pair(addr_a, addr_b)
    return f"{first}{PAIR_KEY_SEPARATOR}{second}"


@dataclass
class PairStat:
    """
    Statistics for one unordered pair of endpoints.

    ip1 is always the lexicographically smaller address.
    """

    ip1: str
    ip2: str

    bytes: int = 0
    packets: int = 0

    last_updated: float = field(default_factory=time.time)
    """Unix timestamp of the most recent packet between the pair."""

    @property
    def key(self) -> str:
        return make_pair_key(self.ip1, self.ip2)

    def copy(self) -> PairStat:
        return replace(self)

    def __repr__(self) -> str:
        return (
            f"PairStat({self.ip1}<->{self.ip2} "
            f"bytes={self.bytes} "
            f"pkts={self.packets})"
        )
