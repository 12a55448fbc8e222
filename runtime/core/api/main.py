"""FastAPI surface for the run-gate runtime.

Exposes gate decisions to tasks that run outside this process: a task asks
whether it may run, does its work, then reports the outcome.
"""

from __future__ import annotations

import logging
import logging.config
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator

import yaml
from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse

from config.settings import default_config_paths, load_runtime_config
from errors import ConfigurationError, ContractViolationError, NotFoundError, SchemaValidationError
from gate.engine import ConstraintEngine
from gate.registry import GateRegistry
from utils import format_rfc3339

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppComponents:
    registry: GateRegistry


def _load_logging_config(path: Path) -> dict[str, Any]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Invalid logging config YAML root object: {path}")
    return raw


def _apply_logging_config(logging_config_path: Path) -> None:
    cfg = _load_logging_config(logging_config_path)
    logging.config.dictConfig(cfg)


def _env_path(name: str) -> Path | None:
    v = os.environ.get(name)
    if not v:
        return None
    return Path(v)


def _error_payload(err: Exception) -> dict[str, Any]:
    if isinstance(err, SchemaValidationError):
        return {
            "error": "SCHEMA_VALIDATION_ERROR",
            "kind": err.kind,
            "violations": [{"path": v.path, "message": v.message} for v in err.violations],
        }
    if isinstance(err, ContractViolationError):
        return {"error": "CONTRACT_VIOLATION", "code": err.code, "message": str(err), "details": err.details}
    if isinstance(err, ConfigurationError):
        return {"error": "CONFIGURATION_ERROR", "message": str(err), "details": err.details}
    if isinstance(err, NotFoundError):
        return {"error": "NOT_FOUND", "resource_type": err.resource_type, "resource_id": err.resource_id}
    return {"error": "INTERNAL", "message": str(err)}


def _build_components() -> AppComponents:
    default_runtime, default_logging = default_config_paths()
    runtime_cfg_path = _env_path("RUN_GATE_RUNTIME_CONFIG") or default_runtime
    logging_cfg_path = _env_path("RUN_GATE_LOGGING_CONFIG") or default_logging

    runtime = load_runtime_config(runtime_cfg_path)
    _apply_logging_config(logging_cfg_path)

    return AppComponents(registry=GateRegistry.from_runtime_config(runtime))


def _isoformat_or_none(value: Any) -> str | None:
    return format_rfc3339(value) if value is not None else None


def gate_status(name: str, engine: ConstraintEngine) -> dict[str, Any]:
    return {
        "gate": name,
        "should_run": engine.should_run(),
        "unsatisfied_constraints": [c.value for c in engine.unsatisfied_constraints()],
        "seconds_before_next_execution": engine.time_interval_before_next_execution().total_seconds(),
        "last_execution_failed": engine.did_last_execution_fail(),
        "last_success_at": _isoformat_or_none(engine.last_success_at()),
        "last_failure_at": _isoformat_or_none(engine.last_failure_at()),
        "period": engine.period.describe(),
        "connectivity": engine.connectivity_requirement.value,
        "max_retry_interval_seconds": engine.max_retry_interval.total_seconds(),
    }


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Fail closed at startup if config or storage cannot be loaded.
    app.state.components = _build_components()
    logger.info("runtime_started", extra={"event": "runtime_started"})
    yield


def build_app(components: AppComponents | None = None) -> FastAPI:
    if components is None:
        # Components are built from configuration at startup.
        app = FastAPI(title="Run Gate Runtime", version="0.1.0", lifespan=_lifespan)
    else:
        app = FastAPI(title="Run Gate Runtime", version="0.1.0")
        app.state.components = components

    @app.exception_handler(SchemaValidationError)
    def _schema_validation_handler(_req, exc: SchemaValidationError):
        return JSONResponse(status_code=422, content=_error_payload(exc))

    @app.exception_handler(ContractViolationError)
    def _contract_violation_handler(_req, exc: ContractViolationError):
        return JSONResponse(status_code=400, content=_error_payload(exc))

    @app.exception_handler(ConfigurationError)
    def _configuration_handler(_req, exc: ConfigurationError):
        logger.error("configuration_error", extra={"event": "configuration_error"})
        return JSONResponse(status_code=500, content=_error_payload(exc))

    @app.exception_handler(NotFoundError)
    def _not_found_handler(_req, exc: NotFoundError):
        return JSONResponse(status_code=404, content=_error_payload(exc))

    @app.exception_handler(Exception)
    def _unhandled_handler(_req, exc: Exception):
        logger.exception("unhandled_error", extra={"event": "unhandled_error"})
        return JSONResponse(status_code=500, content=_error_payload(exc))

    def _registry() -> GateRegistry:
        return app.state.components.registry

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Health check. Returns 200 once configuration and storage are loaded."""
        return {"status": "ok", "gates": len(_registry().names())}

    @app.get("/gates")
    def list_gates() -> dict[str, Any]:
        registry = _registry()
        return {"gates": [gate_status(name, registry.get(name)) for name in registry.names()]}

    @app.get("/gates/{name}")
    def get_gate(name: str) -> dict[str, Any]:
        return gate_status(name, _registry().get(name))

    @app.post("/gates/{name}/outcome")
    def report_outcome(name: str, outcome: dict[str, Any] = Body(...)) -> dict[str, Any]:
        """Record the outcome of a run the caller performed after checking the gate."""
        engine = _registry().get(name)
        succeeded = outcome.get("succeeded")
        if not isinstance(succeeded, bool):
            raise ContractViolationError("Outcome must include boolean 'succeeded'", code="INVALID_OUTCOME")
        if succeeded:
            engine.record_success()
        else:
            engine.record_failure()
        return gate_status(name, engine)

    @app.delete("/gates/state")
    def clear_state() -> dict[str, Any]:
        """Remove persisted state for every gate sharing the store."""
        return {"removed": _registry().remove_all_persisted_properties()}

    return app


app = build_app()
