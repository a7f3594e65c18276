"""Key/value store interface backing the local cache."""
from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStore(ABC):
    """A synchronous string key/value store.

    Implementations may raise ``StorageError`` (or anything else); callers
    that must never fail wrap access themselves.
    """

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Delete ``key``; absent keys are ignored."""

    def close(self) -> None:
        """Release resources held by the store."""
