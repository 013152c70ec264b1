"""resolver/__init__.py"""
from .dns_cache import DNSCache, reverse_lookup

__all__ = ["DNSCache", "reverse_lookup"]
