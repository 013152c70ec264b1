"""
backend/utils.py

Small formatting helpers shared by the API and the staging task.
"""

from __future__ import annotations

_UNITS = "KMGTPE"


def humanize_bytes(n: int) -> str:
    """
    Format a byte count with binary (1024) units.

        >>> humanize_bytes(512)
        '512 B'
        >>> humanize_bytes(1536)
        '1.5 KB'
    """
    if n < 1024:
        return f"{n} B"
    value = n / 1024
    for unit in _UNITS[:-1]:
        if value < 1024:
            return f"{value:.1f} {unit}B"
        value /= 1024
    return f"{value:.1f} {_UNITS[-1]}B"
