"""In-memory timestamp store (tests and ephemeral runs)."""

from __future__ import annotations

import threading
from datetime import datetime

from storage.interfaces import TimestampStore


class InMemoryTimestampStore(TimestampStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict[str, datetime] = {}

    def get(self, key: str) -> datetime | None:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: datetime) -> None:
        with self._lock:
            self._values[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def all_keys(self) -> set[str]:
        with self._lock:
            return set(self._values)
