"""
tests/test_utils.py

Tests for utils.humanize_bytes().
"""

from __future__ import annotations

import pytest

from pairwatch.backend.utils import humanize_bytes


@pytest.mark.parametrize("n,expected", [
    (0, "0 B"),
    (512, "512 B"),
    (1023, "1023 B"),
    (1024, "1.0 KB"),
    (1536, "1.5 KB"),
    (1024 ** 2, "1.0 MB"),
    (5 * 1024 ** 3, "5.0 GB"),
    (2 * 1024 ** 6, "2.0 EB"),
    (4096 * 1024 ** 6, "4096.0 EB"),
])
def test_humanize_bytes(n, expected):
    assert humanize_bytes(n) == expected
