"""Named gates built from configuration."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from config.settings import ConnectivityConfig, GateConfig, load_runtime_config
from conftest import FixedClock
from errors import ConfigurationError, NotFoundError
from gate.constraints import ConnectivityRequirement, Period
from gate.providers import Connection, InterfaceConnectivityProbe, StaticConnectivity
from gate.registry import GateRegistry, build_connectivity
from storage.memory import InMemoryTimestampStore
from storage.sqlite import SQLiteTimestampStore


def test_build_configures_each_engine(clock: FixedClock) -> None:
    registry = GateRegistry.build(
        [
            GateConfig(name="sync", period=Period.once_a_day(), max_retry_interval=timedelta(seconds=30)),
            GateConfig(name="upload", connectivity=ConnectivityRequirement.WIFI),
        ],
        store=InMemoryTimestampStore(),
        clock=clock,
        connectivity=StaticConnectivity(Connection.CELLULAR),
    )

    assert registry.names() == ["sync", "upload"]
    sync = registry.get("sync")
    assert sync.period == Period.once_a_day()
    assert sync.max_retry_interval == timedelta(seconds=30)
    assert sync.should_run()
    assert not registry.get("upload").should_run()


def test_gates_share_one_store(clock: FixedClock) -> None:
    store = InMemoryTimestampStore()
    registry = GateRegistry.build(
        [GateConfig(name="a", period=Period.once_a_week()), GateConfig(name="b", period=Period.once_a_week())],
        store=store,
        clock=clock,
    )
    registry.get("a").record_success()
    registry.get("b").record_failure()

    assert registry.store is store
    assert registry.remove_all_persisted_properties() == 2
    assert registry.get("a").should_run()


def test_unknown_gate_raises_not_found() -> None:
    registry = GateRegistry.build([], store=InMemoryTimestampStore())
    assert not registry.has("missing")
    with pytest.raises(NotFoundError):
        registry.get("missing")


def test_duplicate_gate_names_are_rejected() -> None:
    with pytest.raises(ConfigurationError):
        GateRegistry.build([GateConfig(name="x"), GateConfig(name="x")], store=InMemoryTimestampStore())


def test_build_connectivity_sources(tmp_path: Path) -> None:
    assert build_connectivity(ConnectivityConfig(source="none")) is None
    static = build_connectivity(ConnectivityConfig(source="static", connection=Connection.WIFI))
    assert static is not None and static.connection is Connection.WIFI
    assert isinstance(build_connectivity(ConnectivityConfig(source="interfaces", sys_net_dir=tmp_path)), InterfaceConnectivityProbe)

    with pytest.raises(ConfigurationError):
        build_connectivity(ConnectivityConfig(source="static"))
    with pytest.raises(ConfigurationError):
        build_connectivity(ConnectivityConfig(source="carrier-pigeon"))


def test_from_runtime_config_uses_sqlite(tmp_path: Path, clock: FixedClock) -> None:
    cfg = tmp_path / "runtime.yaml"
    cfg.write_text(
        "storage:\n  driver: sqlite\n  sqlite:\n    path: state/gates.sqlite\n"
        "gates:\n  nightly:\n    period: once_a_day\n",
        encoding="utf-8",
    )

    registry = GateRegistry.from_runtime_config(load_runtime_config(cfg), clock=clock)

    assert isinstance(registry.store, SQLiteTimestampStore)
    registry.get("nightly").record_success()
    assert (tmp_path / "state" / "gates.sqlite").exists()
    assert not registry.get("nightly").should_run()
