"""Configuration loader for the run-gate runtime.

Rules:
- Fail closed when config is missing or invalid.
- The raw document is schema-validated before it is interpreted.
- All relative paths in runtime.yaml are resolved relative to runtime.yaml's directory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

from config.schema_validator import SchemaValidator
from errors import ConfigurationError
from gate.constraints import ConnectivityRequirement, Period, parse_retry_interval
from gate.providers import Connection


@dataclass(frozen=True)
class RuntimeFlags:
    role: str  # dev|host


@dataclass(frozen=True)
class ServiceConfig:
    host: str
    port: int


@dataclass(frozen=True)
class StorageConfig:
    driver: str  # sqlite|memory
    sqlite_path: Path


@dataclass(frozen=True)
class ConnectivityConfig:
    source: str  # none|static|interfaces
    connection: Connection | None = None
    sys_net_dir: Path = Path("/sys/class/net")


@dataclass(frozen=True)
class GateConfig:
    name: str
    period: Period = field(default_factory=Period.any)
    connectivity: ConnectivityRequirement = ConnectivityRequirement.ANY
    max_retry_interval: timedelta = timedelta(0)


@dataclass(frozen=True)
class RuntimeConfig:
    flags: RuntimeFlags
    service: ServiceConfig
    storage: StorageConfig
    connectivity: ConnectivityConfig
    gates: tuple[GateConfig, ...]
    config_dir: Path


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Missing required config file: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML: {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid YAML root object in config file: {path}")
    return data


def _resolve_path(base_dir: Path, raw: str) -> Path:
    p = Path(raw)
    if p.is_absolute():
        return p
    return (base_dir / p).resolve()


def parse_gate_config(name: str, raw: dict[str, Any]) -> GateConfig:
    return GateConfig(
        name=name,
        period=Period.parse(raw.get("period", "any")),
        connectivity=ConnectivityRequirement.parse(raw.get("connectivity", "any")),
        max_retry_interval=parse_retry_interval(raw.get("max_retry_interval_seconds", 0)),
    )


def parse_runtime_config(raw: dict[str, Any], *, config_dir: Path, schema_validator: SchemaValidator | None = None) -> RuntimeConfig:
    validator = schema_validator or SchemaValidator.load_from_dir()
    validator.validate("RuntimeConfig", raw)

    runtime_raw = raw.get("runtime", {})
    service_raw = raw.get("service", {})
    storage_raw = raw.get("storage", {})
    connectivity_raw = raw.get("connectivity", {})
    gates_raw = raw.get("gates", {})

    flags = RuntimeFlags(role=str(runtime_raw.get("role", "dev")))

    service = ServiceConfig(
        host=str(service_raw.get("host", "127.0.0.1")),
        port=int(service_raw.get("port", 8080)),
    )

    sqlite_path = _resolve_path(config_dir, str(storage_raw.get("sqlite", {}).get("path", "../state/run_gate.sqlite")))
    storage = StorageConfig(driver=str(storage_raw.get("driver", "sqlite")), sqlite_path=sqlite_path)

    raw_connection = connectivity_raw.get("connection")
    connectivity = ConnectivityConfig(
        source=str(connectivity_raw.get("source", "none")),
        connection=Connection(raw_connection) if raw_connection is not None else None,
        sys_net_dir=_resolve_path(config_dir, str(connectivity_raw.get("sys_net_dir", "/sys/class/net"))),
    )

    gates = tuple(parse_gate_config(str(name), gate_raw or {}) for name, gate_raw in gates_raw.items())

    return RuntimeConfig(
        flags=flags,
        service=service,
        storage=storage,
        connectivity=connectivity,
        gates=gates,
        config_dir=config_dir,
    )


def load_runtime_config(runtime_config_path: Path, *, schema_validator: SchemaValidator | None = None) -> RuntimeConfig:
    cfg_dir = runtime_config_path.parent.resolve()
    raw = _load_yaml(runtime_config_path)
    return parse_runtime_config(raw, config_dir=cfg_dir, schema_validator=schema_validator)


def default_config_paths() -> tuple[Path, Path]:
    # Default to paths relative to the runtime working directory (runtime/core).
    runtime_path = Path.cwd() / "config" / "runtime.yaml"
    logging_path = Path.cwd() / "config" / "logging.yaml"
    return runtime_path, logging_path
