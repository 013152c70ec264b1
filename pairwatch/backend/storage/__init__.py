"""storage/__init__.py"""
from .database import Database
from .documents import DocumentStore
from .kv_cache import KeyValueCache

__all__ = ["Database", "DocumentStore", "KeyValueCache"]
