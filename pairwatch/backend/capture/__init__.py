"""
capture/__init__.py

Public API for the capture sub-package.
"""

from .parser import parse_packet
from .sniffer import PacketCapture

__all__ = ["PacketCapture", "parse_packet"]
