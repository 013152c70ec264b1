"""
capture/sniffer.py

PacketCapture: one Scapy AsyncSniffer on one interface, feeding a sink.

The sniffer thread calls _on_packet() for every frame. Parsed frames go
straight to ``sink`` (PairStatsTable.record via the monitor), so the sink
must be safe to call from a foreign thread. Scapy is told store=False and
keeps nothing in memory.

start() checks the interface name against get_if_list() first: a missing
device raises CaptureError in the caller instead of killing the sniffer
thread later. If the thread dies on its own, is_running reports False;
restarting is the monitor's decision.

    capture = PacketCapture(sink=handle_meta, iface="eth0")
    capture.start()
    ...
    capture.stop()
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

# Module attributes so tests can patch them.
from scapy.all import AsyncSniffer, get_if_list  # type: ignore[import-untyped]

from ..errors import CaptureError
from ..metrics import METRICS
from ..models import PacketMeta
from .parser import parse_packet

logger = logging.getLogger(__name__)

_JOIN_TIMEOUT_SECONDS = 5.0


class PacketCapture:
    """
    Args:
        sink:       Receives each PacketMeta, called from the sniffer thread.
        iface:      Interface name, e.g. 'eth0'.
        bpf_filter: Kernel-side filter handed to libpcap.
    """

    def __init__(
        self,
        sink: Callable[[PacketMeta], None],
        iface: str = "eth0",
        bpf_filter: str = "ip or ip6",
    ) -> None:
        self._sink = sink
        self._iface = iface
        self._bpf_filter = bpf_filter
        self._sniffer = None
        self._lock = threading.Lock()

    def _on_packet(self, pkt) -> None:
        METRICS.packets_received.inc()
        try:
            meta = parse_packet(pkt)
        except Exception as exc:
            METRICS.packets_parse_error.inc()
            logger.debug("Unparseable frame on %s: %s", self._iface, exc)
            return
        if meta is None:
            METRICS.packets_non_ip.inc()
            return
        self._sink(meta)
        METRICS.packets_recorded.inc()

    def start(self) -> None:
        """
        Open the device and spawn the sniffer thread.

        Raises:
            CaptureError: unknown interface, or libpcap refused to open it.
        """
        with self._lock:
            if self._sniffer is not None:
                logger.warning("Capture on %s already running", self._iface)
                return

            if self._iface not in get_if_list():
                raise CaptureError(f"error opening device {self._iface}: no such interface")

            try:
                sniffer = AsyncSniffer(
                    iface=self._iface,
                    prn=self._on_packet,
                    store=False,
                    filter=self._bpf_filter,
                )
                sniffer.start()
            except Exception as exc:
                raise CaptureError(f"error opening device {self._iface}: {exc}") from exc

            self._sniffer = sniffer
            logger.info("Capturing on %s (filter=%r)", self._iface, self._bpf_filter)

    def stop(self) -> None:
        """Stop the sniffer thread and wait briefly for it. Idempotent."""
        with self._lock:
            sniffer, self._sniffer = self._sniffer, None
            if sniffer is None:
                return
            try:
                sniffer.stop()
                sniffer.join(timeout=_JOIN_TIMEOUT_SECONDS)
            except Exception as exc:
                # Scapy raises here when the thread has already died
                logger.warning("Error stopping capture on %s: %s", self._iface, exc)
            logger.info("Capture on %s stopped", self._iface)

    @property
    def is_running(self) -> bool:
        sniffer = self._sniffer
        if sniffer is None:
            return False
        thread = getattr(sniffer, "thread", None)
        return thread is None or thread.is_alive()

    @property
    def iface(self) -> str:
        return self._iface

    def __repr__(self) -> str:
        return f"PacketCapture(iface={self._iface!r}, filter={self._bpf_filter!r})"
