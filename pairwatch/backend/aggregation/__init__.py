"""
aggregation/__init__.py

Public API for the aggregation sub-package.
"""

from .models import PairStat, make_pair_key, order_pair
from .monitor import TrafficMonitor
from .pair_table import PairStatsTable

__all__ = [
    "PairStat",
    "PairStatsTable",
    "TrafficMonitor",
    "make_pair_key",
    "order_pair",
]
