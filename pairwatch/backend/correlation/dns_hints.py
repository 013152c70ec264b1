"""
correlation/dns_hints.py

DNS hint table and the detail-payload address extractor.

The session detail payload renders every DNS answer as a clickable query
expression, e.g. ``ip.dns == 93.184.216.34``. extract_dns_addresses()
pulls those addresses out with a pattern match and keeps only strings
that parse as IP addresses, so surrounding markup changes do not matter.

Hints never expire. The table is owned by the correlation task and is
not thread-safe.
"""

from __future__ import annotations

import ipaddress
import logging
import re

logger = logging.getLogger(__name__)

_DNS_IP_EXPR = re.compile(
    r"ip\.dns\s*==\s*(?:&quot;|[\"'])?\[?([0-9A-Fa-f:.]+)"
)


def extract_dns_addresses(payload: str) -> list[str]:
    """Return the distinct DNS answer addresses found in ``payload``, in order."""
    found: list[str] = []
    for match in _DNS_IP_EXPR.finditer(payload):
        candidate = match.group(1).rstrip(".")
        try:
            address = str(ipaddress.ip_address(candidate))
        except ValueError:
            continue
        if address not in found:
            found.append(address)
    return found


class DNSHintTable:
    """address → hostname learned from DNS sessions."""

    def __init__(self) -> None:
        self._hints: dict[str, str] = {}

    def add(self, address: str, hostname: str) -> bool:
        """Record a hint. Returns True if it was new or changed."""
        if self._hints.get(address) == hostname:
            return False
        self._hints[address] = hostname
        logger.debug("DNS hint %s -> %s", address, hostname)
        return True

    def get(self, address: str, default: str | None = None) -> str | None:
        return self._hints.get(address, default)

    def __contains__(self, address: object) -> bool:
        return address in self._hints

    def __len__(self) -> int:
        return len(self._hints)
