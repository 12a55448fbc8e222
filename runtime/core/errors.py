"""Core run-gate error types.

The gate engine itself only raises on invalid configuration. Everything else
here exists for the configuration loader and the API layer, which maps these
exception types to HTTP responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable


class RunGateError(Exception):
    """Base class for run-gate errors."""


@dataclass(frozen=True)
class SchemaViolation:
    path: str
    message: str


class ConfigurationError(RunGateError):
    def __init__(self, message: str, details: Any | None = None):
        self.details = details
        super().__init__(message)


class SchemaValidationError(RunGateError):
    def __init__(self, kind: str, violations: Iterable[SchemaViolation]):
        self.kind = kind
        self.violations = list(violations)
        super().__init__(f"{kind} failed schema validation ({len(self.violations)} violation(s))")


class NotFoundError(RunGateError):
    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")


class ContractViolationError(RunGateError):
    def __init__(self, message: str, code: str = "CONTRACT_VIOLATION", details: Any | None = None):
        self.code = code
        self.details = details
        super().__init__(message)
