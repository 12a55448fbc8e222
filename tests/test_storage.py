"""Timestamp store drivers: in-memory and SQLite."""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from conftest import T0, FixedClock
from errors import ConfigurationError
from gate.constraints import Period
from gate.engine import ConstraintEngine
from storage.interfaces import TimestampStore
from storage.memory import InMemoryTimestampStore
from storage.sqlite import SQLiteDatabase, SQLiteTimestampStore


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path: Path) -> TimestampStore:
    if request.param == "memory":
        return InMemoryTimestampStore()
    return SQLiteTimestampStore.open(tmp_path / "state" / "gate.sqlite")


def test_get_set_delete(any_store: TimestampStore) -> None:
    assert any_store.get("k") is None

    any_store.set("k", T0)
    assert any_store.get("k") == T0

    later = T0 + timedelta(minutes=3, microseconds=250)
    any_store.set("k", later)
    assert any_store.get("k") == later

    any_store.delete("k")
    assert any_store.get("k") is None
    any_store.delete("k")


def test_all_keys_is_a_snapshot(any_store: TimestampStore) -> None:
    any_store.set("a", T0)
    any_store.set("b", T0)

    keys = any_store.all_keys()
    any_store.delete("a")

    assert keys == {"a", "b"}
    assert any_store.all_keys() == {"b"}


def test_concurrent_writers(any_store: TimestampStore) -> None:
    def write(n: int) -> None:
        for i in range(20):
            any_store.set(f"k{n}.{i}", T0)

    threads = [threading.Thread(target=write, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(any_store.all_keys()) == 80


def test_sqlite_values_are_utc_aware(tmp_path: Path) -> None:
    store = SQLiteTimestampStore.open(tmp_path / "gate.sqlite")
    local = datetime(2024, 1, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))

    store.set("k", local)
    loaded = store.get("k")

    assert loaded == local
    assert loaded.tzinfo == timezone.utc


def test_sqlite_rejects_naive_timestamps(tmp_path: Path) -> None:
    store = SQLiteTimestampStore.open(tmp_path / "gate.sqlite")
    with pytest.raises(ValueError):
        store.set("k", datetime(2024, 1, 1))


def test_sqlite_state_survives_restart(tmp_path: Path) -> None:
    path = tmp_path / "gate.sqlite"
    clock = FixedClock()
    first = ConstraintEngine("backup", store=SQLiteTimestampStore.open(path), clock=clock).set_period(Period.once_a_day())
    first.run_if_needed(lambda: True)

    # A new process: fresh store and engine over the same file.
    second = ConstraintEngine("backup", store=SQLiteTimestampStore.open(path), clock=clock).set_period(Period.once_a_day())
    assert not second.should_run()
    clock.advance(days=1)
    assert second.should_run()


def test_sqlite_migration_is_idempotent(tmp_path: Path) -> None:
    path = tmp_path / "gate.sqlite"
    SQLiteDatabase(path)
    db = SQLiteDatabase(path)

    with db.connect() as conn:
        rows = conn.execute("SELECT version FROM schema_version;").fetchall()
    assert [r["version"] for r in rows] == [1]


def test_sqlite_unknown_schema_version_fails_closed(tmp_path: Path) -> None:
    path = tmp_path / "gate.sqlite"
    SQLiteDatabase(path)
    conn = sqlite3.connect(str(path))
    conn.execute("UPDATE schema_version SET version = 99;")
    conn.commit()
    conn.close()

    with pytest.raises(ConfigurationError):
        SQLiteDatabase(path)
