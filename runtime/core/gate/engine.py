"""Constraint engine: decides whether a recurring task may run right now.

One engine guards one task identity. It evaluates:
- the period since the last successful run
- the retry interval since the last failed run
- the host connectivity classification (fail-open when no source is configured)

and records run outcomes into a shared `TimestampStore`. The engine has no
timers and no background execution: every decision is made on demand, and
whatever concurrency exists belongs to the task body supplied by the caller.

Persisted keys follow a fixed layout so that existing state stays readable:
- last success: `ConstraintRunner.<identifier>`
- last failure: `ConstraintRunner.<identifier>.retry`
"""

from __future__ import annotations

import asyncio
import logging
import threading
import weakref
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from errors import ConfigurationError
from gate.constraints import Constraint, ConnectivityRequirement, Period, is_connectivity_satisfied, parse_retry_interval
from gate.providers import Clock, ConnectivityState, SystemClock
from storage.interfaces import TimestampStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "ConstraintRunner"
RETRY_SUFFIX = ".retry"

CompletionHandler = Callable[[bool], None]


def success_key(identifier: str) -> str:
    return f"{KEY_PREFIX}.{identifier}"


def retry_key(identifier: str) -> str:
    return f"{success_key(identifier)}{RETRY_SUFFIX}"


def remove_all_persisted_properties(store: TimestampStore) -> int:
    """Delete every gate key in the store, for all identities. Returns the number of keys removed."""
    keys = [k for k in store.all_keys() if k.startswith(KEY_PREFIX)]
    for key in keys:
        store.delete(key)
    logger.info("gate_state_cleared", extra={"event": "gate_state_cleared", "count": len(keys)})
    return len(keys)


class _OutcomeReporter:
    """Completion handler given to asynchronous task bodies.

    Holds only a weak reference to the engine: if the engine has been garbage
    collected by the time the body completes, the outcome is dropped. Callers
    that need the outcome persisted must keep the engine alive until then.
    """

    def __init__(self, engine: "ConstraintEngine"):
        self._engine_ref = weakref.ref(engine)
        self.identifier = engine.identifier
        self._lock = threading.Lock()
        self._fired = False

    def __call__(self, succeeded: bool) -> None:
        with self._lock:
            if self._fired:
                logger.warning(
                    "gate_completion_repeated",
                    extra={"event": "gate_completion_repeated", "gate": self.identifier},
                )
                return
            self._fired = True

        engine = self._engine_ref()
        if engine is None:
            logger.debug(
                "gate_outcome_dropped",
                extra={"event": "gate_outcome_dropped", "gate": self.identifier, "reason": "engine_released"},
            )
            return
        engine._record_outcome(bool(succeeded))


def _report_task_outcome(task: asyncio.Task, reporter: _OutcomeReporter) -> None:
    if task.cancelled():
        # No outcome: state is left exactly as it was before the run started.
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(
            "gate_task_raised",
            extra={"event": "gate_task_raised", "gate": reporter.identifier},
            exc_info=exc,
        )
        reporter(False)
        return
    reporter(bool(task.result()))


class ConstraintEngine:
    """Run gate for one task identity.

    Configuration is mutable and setters return the engine so calls can be
    chained; evaluation always reads the latest values. `clock` and
    `connectivity` are plain attributes and may be swapped at any time.

    Concurrent runs on the same engine are not serialized: two callers can
    both pass `should_run()` before either records an outcome.
    """

    remove_all_persisted_properties = staticmethod(remove_all_persisted_properties)

    def __init__(
        self,
        identifier: str,
        *,
        store: TimestampStore,
        clock: Clock | None = None,
        connectivity: ConnectivityState | None = None,
    ):
        if not isinstance(identifier, str):
            raise ConfigurationError("Gate identifier must be a string")
        if identifier.endswith(RETRY_SUFFIX):
            # Its success key would be another identity's failure key.
            raise ConfigurationError(f"Gate identifier must not end with {RETRY_SUFFIX!r}: {identifier}")

        self._identifier = identifier
        self._success_key = success_key(identifier)
        self._retry_key = retry_key(identifier)
        self._store = store

        self.clock: Clock = clock or SystemClock()
        self.connectivity: ConnectivityState | None = connectivity

        self._period = Period.any()
        self._connectivity_requirement = ConnectivityRequirement.ANY
        self._max_retry_interval = timedelta(0)

    @property
    def identifier(self) -> str:
        return self._identifier

    @property
    def period(self) -> Period:
        return self._period

    @property
    def connectivity_requirement(self) -> ConnectivityRequirement:
        return self._connectivity_requirement

    @property
    def max_retry_interval(self) -> timedelta:
        return self._max_retry_interval

    # Configuration

    def set_period(self, period: Period) -> "ConstraintEngine":
        """Require at least `period` between two successful runs."""
        if not isinstance(period, Period):
            raise ConfigurationError(f"Expected a Period (got {period!r})")
        self._period = period
        return self

    def set_connectivity(self, requirement: ConnectivityRequirement) -> "ConstraintEngine":
        """Require the host connectivity to match `requirement`."""
        self._connectivity_requirement = ConnectivityRequirement.parse(requirement)
        return self

    def set_max_retry_interval(self, interval: timedelta | float | int) -> "ConstraintEngine":
        """Require at least `interval` (timedelta or seconds) after a failed run before retrying."""
        self._max_retry_interval = parse_retry_interval(interval)
        return self

    # Decisions

    def should_run(self) -> bool:
        """True when the period, retry and connectivity constraints all hold."""
        return not self.unsatisfied_constraints()

    def unsatisfied_constraints(self) -> tuple[Constraint, ...]:
        blocking: list[Constraint] = []
        if self._time_before_period_satisfied() is not None:
            blocking.append(Constraint.PERIOD)
        if self._time_before_retry_satisfied() is not None:
            blocking.append(Constraint.RETRY)
        if not self._is_connectivity_satisfied():
            blocking.append(Constraint.CONNECTIVITY)
        return tuple(blocking)

    def time_interval_before_next_execution(self) -> timedelta:
        """Time left before the period and retry constraints hold again.

        The period wait takes precedence over the retry wait (it is reported
        even when the retry wait is longer). Connectivity is not considered;
        callers must re-check it themselves.
        """
        period_wait = self._time_before_period_satisfied()
        if period_wait is not None:
            return period_wait
        retry_wait = self._time_before_retry_satisfied()
        if retry_wait is not None:
            return retry_wait
        return timedelta(0)

    def did_last_execution_fail(self) -> bool:
        return self._store.get(self._retry_key) is not None

    def last_success_at(self) -> datetime | None:
        return self._store.get(self._success_key)

    def last_failure_at(self) -> datetime | None:
        return self._store.get(self._retry_key)

    # Execution

    def run_if_needed(self, body: Callable[[], bool]) -> bool:
        """Run a synchronous body if the gate allows it.

        The body returns True on success. If it raises, a failure is recorded
        and the exception propagates. Returns whether the body was called.
        """
        if not self._admit(force=False):
            return False

        try:
            succeeded = bool(body())
        except Exception:
            self.record_failure()
            raise
        self._record_outcome(succeeded)
        return True

    def run_if_needed_async(self, body: Callable[[CompletionHandler], None], *, force: bool = False) -> bool:
        """Start a body that reports completion through a callback.

        The body receives a completion handler that must be called exactly
        once, from any thread, with the success flag. This returns as soon as
        the body returns; True means the body was started, not that it
        finished. With `force`, the constraints are not checked.
        """
        if not self._admit(force=force):
            return False

        body(_OutcomeReporter(self))
        return True

    def start_if_needed(
        self, body: Callable[[], Awaitable[bool]], *, force: bool = False
    ) -> asyncio.Task | None:
        """Schedule a coroutine body on the running event loop if the gate allows it.

        The outcome is recorded when the task finishes: a truthy result is a
        success, an exception is a failure, cancellation records nothing.
        Returns the task, or None when the gate refused the run.
        """
        if not self._admit(force=force):
            return None

        loop = asyncio.get_running_loop()
        task = loop.create_task(body())
        reporter = _OutcomeReporter(self)
        task.add_done_callback(lambda t: _report_task_outcome(t, reporter))
        return task

    # Outcome recording

    def record_success(self) -> None:
        self._store.set(self._success_key, self.clock.now())
        self._store.delete(self._retry_key)
        logger.info("gate_run_succeeded", extra={"event": "gate_run_succeeded", "gate": self._identifier})

    def record_failure(self) -> None:
        self._store.set(self._retry_key, self.clock.now())
        logger.warning("gate_run_failed", extra={"event": "gate_run_failed", "gate": self._identifier})

    def _record_outcome(self, succeeded: bool) -> None:
        if succeeded:
            self.record_success()
        else:
            self.record_failure()

    # Predicates

    def _admit(self, *, force: bool) -> bool:
        if force:
            logger.debug("gate_forced", extra={"event": "gate_forced", "gate": self._identifier})
            return True
        blocking = self.unsatisfied_constraints()
        if blocking:
            logger.debug(
                "gate_closed",
                extra={
                    "event": "gate_closed",
                    "gate": self._identifier,
                    "reason": ",".join(c.value for c in blocking),
                    "wait_seconds": self.time_interval_before_next_execution().total_seconds(),
                },
            )
            return False
        return True

    def _time_before_period_satisfied(self) -> timedelta | None:
        if self._period.is_unconstrained:
            return None
        last_success = self._store.get(self._success_key)
        if last_success is None:
            return None
        return _remaining(self._period.duration, self.clock.now() - last_success)

    def _time_before_retry_satisfied(self) -> timedelta | None:
        last_failure = self._store.get(self._retry_key)
        if last_failure is None:
            return None
        return _remaining(self._max_retry_interval, self.clock.now() - last_failure)

    def _is_connectivity_satisfied(self) -> bool:
        if self.connectivity is None:
            return True
        return is_connectivity_satisfied(self._connectivity_requirement, self.connectivity.connection)


def _remaining(required: timedelta, elapsed: timedelta) -> timedelta | None:
    offset = required - elapsed
    return offset if offset > timedelta(0) else None
