"""
Local persistence for orders.

Example:
    >>> from order_store.local import FileKeyValueStore, LocalOrderStore
    >>> local = LocalOrderStore(FileKeyValueStore("/var/lib/orders"))
    >>> local.load()
    []
"""

from .kv import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .store import LocalOrderStore

__all__ = [
    "KeyValueStore",
    "FileKeyValueStore",
    "MemoryKeyValueStore",
    "LocalOrderStore",
]
