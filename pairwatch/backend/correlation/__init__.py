"""
correlation/__init__.py

Public API for the correlation sub-package.
"""

from .dns_hints import DNSHintTable, extract_dns_addresses
from .engine import DESTINATIONS_COLLECTION, CorrelationEngine
from .models import CycleResult, SessionRecord, Watermark
from .session_client import SessionAPIClient, SessionSource

__all__ = [
    "CorrelationEngine",
    "CycleResult",
    "DESTINATIONS_COLLECTION",
    "DNSHintTable",
    "SessionAPIClient",
    "SessionRecord",
    "SessionSource",
    "Watermark",
    "extract_dns_addresses",
]
