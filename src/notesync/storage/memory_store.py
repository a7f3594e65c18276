"""In-process key/value store."""
import threading
from typing import Dict, Optional

from notesync.storage.base import KeyValueStore


class MemoryStore(KeyValueStore):
    """Dictionary-backed store; contents live only as long as the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        """Copy of the current contents."""
        with self._lock:
            return dict(self._data)
