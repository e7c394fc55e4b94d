"""Key-value storage adapters.

The limiter persists its counters through a small async key-value interface
so the backing store (in-memory, JSON file, or a platform store on device)
can be swapped without touching the limiter itself.
"""

from attempt_limiter.adapters.storage.base import AbstractKeyValueStore
from attempt_limiter.adapters.storage.factory import create_key_value_store
from attempt_limiter.adapters.storage.file_store import JsonFileKeyValueStore
from attempt_limiter.adapters.storage.in_memory import InMemoryKeyValueStore

__all__ = [
    "AbstractKeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "create_key_value_store",
]
