"""In-memory key-value store.

Notes:
- Per-process only: contents are lost on restart.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import threading

from attempt_limiter.adapters.storage.base import AbstractKeyValueStore


class InMemoryKeyValueStore(AbstractKeyValueStore):
    """Dictionary-backed store used in tests and for ephemeral deployments."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._lock = threading.RLock()
        self._items: dict[str, str] = dict(initial or {})

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    async def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    async def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Return a copy of all stored items."""

        with self._lock:
            return dict(self._items)
