"""
sync/__init__.py

Public API for the sync sub-package.
"""

from .supervisor import run_periodic, supervise, wait_or_stop
from .tasks import STATS_KEY_PREFIX, TRAFFIC_COLLECTION, FlushResult, StatsSync

__all__ = [
    "FlushResult",
    "STATS_KEY_PREFIX",
    "StatsSync",
    "TRAFFIC_COLLECTION",
    "run_periodic",
    "supervise",
    "wait_or_stop",
]
