from __future__ import annotations

import threading
from typing import Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal text store consumed by the user and application handlers."""

    def get(self, key: str) -> Optional[str]:
        """Return the stored text, or None if the key does not exist."""
        ...

    def put(self, key: str, value: str) -> None:
        """Create or overwrite the value under `key`."""
        ...

    def delete(self, key: str) -> None:
        """Remove `key`; removing a missing key is not an error."""
        ...


class InMemoryStore:
    """Process-local `KeyValueStore`, handy for tests and local development."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)
