"""Constraint vocabulary for the run gate.

A gate combines three independent constraints:
- Period: minimum spacing since the last successful run
- Retry interval: minimum spacing since the last failed run
- Connectivity: the network classification the host must be in

This module only describes the constraints and evaluates the connectivity
predicate; the time-based predicates need persisted state and live in the
engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any

from errors import ConfigurationError
from gate.providers import Connection

SECOND = timedelta(seconds=1)
MINUTE = SECOND * 60
HOUR = MINUTE * 60
DAY = HOUR * 24
WEEK = DAY * 7

# Upper bound for periods and retry intervals. Keeps deadline arithmetic
# against stored timestamps inside timedelta range.
MAX_DURATION = DAY * 365 * 1000


class Constraint(str, Enum):
    PERIOD = "period"
    RETRY = "retry"
    CONNECTIVITY = "connectivity"


class PeriodKind(str, Enum):
    ANY = "any"
    TWICE_A_DAY = "twice_a_day"
    ONCE_A_DAY = "once_a_day"
    ONCE_A_WEEK = "once_a_week"
    EVERY_DAYS = "every_days"
    EVERY_HOURS = "every_hours"
    EVERY_MINUTES = "every_minutes"
    EVERY_SECONDS = "every_seconds"


_FIXED_DURATIONS: dict[PeriodKind, timedelta] = {
    PeriodKind.ANY: timedelta(0),
    PeriodKind.TWICE_A_DAY: DAY / 2,
    PeriodKind.ONCE_A_DAY: DAY,
    PeriodKind.ONCE_A_WEEK: WEEK,
}

_UNIT_DURATIONS: dict[PeriodKind, timedelta] = {
    PeriodKind.EVERY_DAYS: DAY,
    PeriodKind.EVERY_HOURS: HOUR,
    PeriodKind.EVERY_MINUTES: MINUTE,
    PeriodKind.EVERY_SECONDS: SECOND,
}


@dataclass(frozen=True)
class Period:
    """Minimum spacing between two successful runs.

    Parameterized kinds carry a positive integer count. A zero or negative
    count has no sensible meaning ("every 0 days") and is rejected here
    rather than at evaluation time.
    """

    kind: PeriodKind = PeriodKind.ANY
    count: int | None = None
    _duration: timedelta = field(default=timedelta(0), init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, PeriodKind):
            object.__setattr__(self, "kind", _parse_kind(str(self.kind)))
        fixed = _FIXED_DURATIONS.get(self.kind)
        if fixed is not None:
            if self.count is not None:
                raise ConfigurationError(f"Period {self.kind.value} does not take a count")
            object.__setattr__(self, "_duration", fixed)
            return
        # bool is an int subclass; "every True hours" is a config mistake.
        if isinstance(self.count, bool) or not isinstance(self.count, int):
            raise ConfigurationError(f"Period {self.kind.value} requires an integer count (got {self.count!r})")
        if self.count <= 0:
            raise ConfigurationError(f"Period {self.kind.value} requires a positive count (got {self.count})")
        try:
            duration = _UNIT_DURATIONS[self.kind] * self.count
        except OverflowError as e:
            raise ConfigurationError(f"Period {self.kind.value} count is too large (got {self.count})") from e
        if duration > MAX_DURATION:
            raise ConfigurationError(f"Period {self.kind.value} count is too large (got {self.count})")
        object.__setattr__(self, "_duration", duration)

    @classmethod
    def any(cls) -> "Period":
        return cls(PeriodKind.ANY)

    @classmethod
    def twice_a_day(cls) -> "Period":
        return cls(PeriodKind.TWICE_A_DAY)

    @classmethod
    def once_a_day(cls) -> "Period":
        return cls(PeriodKind.ONCE_A_DAY)

    @classmethod
    def once_a_week(cls) -> "Period":
        return cls(PeriodKind.ONCE_A_WEEK)

    @classmethod
    def every_days(cls, count: int) -> "Period":
        return cls(PeriodKind.EVERY_DAYS, count)

    @classmethod
    def every_hours(cls, count: int) -> "Period":
        return cls(PeriodKind.EVERY_HOURS, count)

    @classmethod
    def every_minutes(cls, count: int) -> "Period":
        return cls(PeriodKind.EVERY_MINUTES, count)

    @classmethod
    def every_seconds(cls, count: int) -> "Period":
        return cls(PeriodKind.EVERY_SECONDS, count)

    @property
    def is_unconstrained(self) -> bool:
        return self.kind is PeriodKind.ANY

    @property
    def duration(self) -> timedelta:
        return self._duration

    @classmethod
    def parse(cls, raw: Any) -> "Period":
        """Build a Period from its config form: `"once_a_day"` or `{"every_hours": 6}`."""
        if isinstance(raw, str):
            kind = _parse_kind(raw)
            if kind not in _FIXED_DURATIONS:
                raise ConfigurationError(f"Period {raw} requires a count (use {{{raw}: N}})")
            return cls(kind)
        if isinstance(raw, dict) and len(raw) == 1:
            ((name, count),) = raw.items()
            kind = _parse_kind(str(name))
            if kind in _FIXED_DURATIONS:
                raise ConfigurationError(f"Period {name} does not take a count")
            return cls(kind, count)
        raise ConfigurationError(f"Invalid period: {raw!r}")

    def describe(self) -> str | dict[str, int]:
        if self.count is None:
            return self.kind.value
        return {self.kind.value: self.count}


def _parse_kind(name: str) -> PeriodKind:
    try:
        return PeriodKind(name)
    except ValueError as e:
        raise ConfigurationError(f"Unknown period kind: {name}") from e


def parse_retry_interval(value: timedelta | float | int) -> timedelta:
    """Normalize a retry interval given as a timedelta or a number of seconds."""
    if isinstance(value, bool):
        raise ConfigurationError("max_retry_interval must be a duration, not a bool")
    if isinstance(value, timedelta):
        interval = value
    else:
        try:
            interval = timedelta(seconds=value)
        except (OverflowError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid max_retry_interval: {value!r}") from e
    if interval < timedelta(0):
        raise ConfigurationError(f"max_retry_interval must not be negative (got {interval})")
    if interval > MAX_DURATION:
        raise ConfigurationError(f"max_retry_interval is too large (got {value!r})")
    return interval


class ConnectivityRequirement(str, Enum):
    # Runs regardless of connectivity.
    ANY = "any"
    # Any connection, wifi or cellular.
    REACHABLE = "reachable"
    # No connection at all (flight mode for example).
    NOT_REACHABLE = "not_reachable"
    # Cellular or better.
    CELLULAR = "cellular"
    # Wifi or LAN only.
    WIFI = "wifi"

    @classmethod
    def parse(cls, raw: Any) -> "ConnectivityRequirement":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(raw)
        except ValueError as e:
            raise ConfigurationError(f"Unknown connectivity requirement: {raw}") from e


def is_connectivity_satisfied(requirement: ConnectivityRequirement, connection: Connection) -> bool:
    connection = Connection(connection)
    if requirement is ConnectivityRequirement.ANY:
        return True
    if requirement is ConnectivityRequirement.NOT_REACHABLE:
        return connection is Connection.NONE
    if requirement is ConnectivityRequirement.REACHABLE:
        return connection is not Connection.NONE
    if requirement is ConnectivityRequirement.CELLULAR:
        return connection in (Connection.CELLULAR, Connection.WIFI)
    if requirement is ConnectivityRequirement.WIFI:
        return connection is Connection.WIFI
    raise ConfigurationError(f"Unhandled connectivity requirement: {requirement}")
