"""In-memory registry of named gates.

Gate definitions are configuration loaded at startup; the registry builds one
`ConstraintEngine` per definition over a shared store, clock and connectivity
source. The registry is NOT runtime state: state lives in the timestamp store.
"""

from __future__ import annotations

import logging
from typing import Iterable

from config.settings import ConnectivityConfig, GateConfig, RuntimeConfig
from errors import ConfigurationError, NotFoundError
from gate.engine import ConstraintEngine, remove_all_persisted_properties
from gate.providers import Clock, ConnectivityState, InterfaceConnectivityProbe, StaticConnectivity
from storage.interfaces import TimestampStore
from storage.memory import InMemoryTimestampStore
from storage.sqlite import SQLiteTimestampStore

logger = logging.getLogger(__name__)


def build_connectivity(config: ConnectivityConfig) -> ConnectivityState | None:
    if config.source == "none":
        return None
    if config.source == "static":
        if config.connection is None:
            raise ConfigurationError("connectivity.connection is required when connectivity.source=static")
        return StaticConnectivity(config.connection)
    if config.source == "interfaces":
        return InterfaceConnectivityProbe(config.sys_net_dir)
    raise ConfigurationError(f"Unknown connectivity source: {config.source}")


def build_store(runtime: RuntimeConfig) -> TimestampStore:
    if runtime.storage.driver == "sqlite":
        return SQLiteTimestampStore.open(runtime.storage.sqlite_path)
    if runtime.storage.driver == "memory":
        return InMemoryTimestampStore()
    raise ConfigurationError(f"Unknown storage driver: {runtime.storage.driver}")


class GateRegistry:
    def __init__(self, store: TimestampStore, engines: dict[str, ConstraintEngine]):
        self._store = store
        self._engines = dict(engines)

    @classmethod
    def build(
        cls,
        gates: Iterable[GateConfig],
        *,
        store: TimestampStore,
        clock: Clock | None = None,
        connectivity: ConnectivityState | None = None,
    ) -> "GateRegistry":
        engines: dict[str, ConstraintEngine] = {}
        for gate in gates:
            if gate.name in engines:
                raise ConfigurationError(f"Duplicate gate name: {gate.name}")
            engines[gate.name] = (
                ConstraintEngine(gate.name, store=store, clock=clock, connectivity=connectivity)
                .set_period(gate.period)
                .set_connectivity(gate.connectivity)
                .set_max_retry_interval(gate.max_retry_interval)
            )
        logger.info("gates_loaded", extra={"event": "gates_loaded", "count": len(engines)})
        return cls(store, engines)

    @classmethod
    def from_runtime_config(cls, runtime: RuntimeConfig, *, clock: Clock | None = None) -> "GateRegistry":
        return cls.build(
            runtime.gates,
            store=build_store(runtime),
            clock=clock,
            connectivity=build_connectivity(runtime.connectivity),
        )

    @property
    def store(self) -> TimestampStore:
        return self._store

    def names(self) -> list[str]:
        return sorted(self._engines)

    def has(self, name: str) -> bool:
        return name in self._engines

    def get(self, name: str) -> ConstraintEngine:
        engine = self._engines.get(name)
        if engine is None:
            raise NotFoundError("Gate", name)
        return engine

    def remove_all_persisted_properties(self) -> int:
        return remove_all_persisted_properties(self._store)
