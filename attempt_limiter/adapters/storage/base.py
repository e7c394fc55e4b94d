"""Key-value storage interface.

The limiter depends on this abstraction (not a concrete backend) so durable
storage can be swapped with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractKeyValueStore(ABC):
    """Asynchronous string-keyed storage of opaque string values.

    Implementations may raise ``StorageAppError`` from any operation; callers
    are expected to decide how to degrade.
    """

    @abstractmethod
    async def get_item(self, key: str) -> str | None:
        """Return the stored value for key, or None when absent."""
        raise NotImplementedError

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        raise NotImplementedError

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Delete key. Removing a missing key is not an error."""
        raise NotImplementedError
