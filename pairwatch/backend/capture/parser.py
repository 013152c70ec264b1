"""
capture/parser.py

Scapy packet → PacketMeta.

Runs inside the sniffer thread for every frame, so it does no I/O and
keeps no reference to the Scapy object. Only the network-layer endpoints
and the captured frame length survive; transport headers are irrelevant
to pair accounting.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from ..models import PacketMeta

if TYPE_CHECKING:
    from scapy.packet import Packet  # type: ignore[import-untyped]


def parse_packet(pkt: "Packet") -> PacketMeta | None:
    """Return the frame's endpoints and length, or None for non-IP frames."""
    from scapy.layers.inet import IP  # type: ignore[import-untyped]
    from scapy.layers.inet6 import IPv6  # type: ignore[import-untyped]

    for layer in (IP, IPv6):
        if pkt.haslayer(layer):
            net = pkt[layer]
            break
    else:
        return None

    captured_at = getattr(pkt, "time", None)
    return PacketMeta(
        timestamp=float(captured_at) if captured_at is not None else time.time(),
        src_ip=str(net.src),
        dst_ip=str(net.dst),
        length=len(pkt),
    )
