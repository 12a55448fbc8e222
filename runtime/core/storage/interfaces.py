"""DB-agnostic storage interface.

The gate engine is stateless except for a handful of persisted timestamps.
This interface defines the persistence boundary: a durable key -> timestamp
map shared by every engine in the process.

Concrete drivers live in `storage/` (SQLite for durable state, in-memory for
tests and ephemeral runs).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime


class TimestampStore(ABC):
    @abstractmethod
    def get(self, key: str) -> datetime | None:
        """Fetch the timestamp stored under key, or None when absent."""

    @abstractmethod
    def set(self, key: str, value: datetime) -> None:
        """Insert or replace the timestamp stored under key."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is a no-op."""

    @abstractmethod
    def all_keys(self) -> set[str]:
        """Snapshot of every key currently stored."""
