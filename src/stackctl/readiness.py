"""Bounded polling readiness probes for dependent services.

The probed services are opaque processes: the only observable signals are a
connection check and log output. A probe therefore evaluates a predicate at a
fixed interval until it succeeds or its attempt budget is spent. Running out of
attempts is reported as :attr:`ReadinessOutcome.TIMED_OUT`, a result value;
callers decide whether that is fatal.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .config import AssetsProbeConfig, DatabaseProbeConfig
from .errors import ReadinessCancelledError
from .providers.compose import ComposeProvider

LOGGER = logging.getLogger(__name__)

AttemptCallback = Callable[[int, bool], None]


class ReadinessOutcome(str, Enum):
    """Terminal state of a readiness poll."""

    READY = "ready"
    TIMED_OUT = "timed-out"


@dataclass(slots=True, frozen=True)
class ReadinessTarget:
    """A service plus the rule deciding when it is usable."""

    name: str
    service: str
    predicate: Callable[[], bool]
    attempts: int
    interval: float

    @property
    def budget_seconds(self) -> float:
        """Return the worst-case time spent sleeping between attempts."""
        return max(self.attempts - 1, 0) * self.interval


@dataclass(slots=True, frozen=True)
class ReadinessResult:
    """Outcome of polling a :class:`ReadinessTarget`."""

    target: str
    outcome: ReadinessOutcome
    attempts: int
    elapsed: float

    @property
    def ready(self) -> bool:
        """Return ``True`` when the target became ready."""
        return self.outcome is ReadinessOutcome.READY


@dataclass(slots=True)
class ReadinessProber:
    """Poll readiness targets at their configured interval."""

    sleep: Callable[[float], None] | None = None
    clock: Callable[[], float] = time.monotonic

    def wait(
        self,
        target: ReadinessTarget,
        *,
        on_attempt: AttemptCallback | None = None,
    ) -> ReadinessResult:
        """Evaluate *target* until ready or until its attempt budget is exhausted.

        The predicate is evaluated at most ``target.attempts`` times and the
        prober sleeps only between evaluations. A ``KeyboardInterrupt`` stops
        the loop immediately and surfaces as :class:`ReadinessCancelledError`.
        """
        if target.attempts <= 0:
            raise ValueError(f"Readiness target '{target.name}' needs at least one attempt.")
        sleep = self.sleep or time.sleep
        start = self.clock()
        attempt = 0
        try:
            while attempt < target.attempts:
                attempt += 1
                ready = _evaluate(target)
                if on_attempt is not None:
                    on_attempt(attempt, ready)
                if ready:
                    return ReadinessResult(
                        target=target.name,
                        outcome=ReadinessOutcome.READY,
                        attempts=attempt,
                        elapsed=self.clock() - start,
                    )
                if attempt < target.attempts:
                    sleep(target.interval)
        except KeyboardInterrupt as exc:
            raise ReadinessCancelledError(
                f"Interrupted while waiting for {target.name} after {attempt} attempt(s).",
            ) from exc
        LOGGER.debug("%s not ready after %d attempts", target.name, attempt)
        return ReadinessResult(
            target=target.name,
            outcome=ReadinessOutcome.TIMED_OUT,
            attempts=attempt,
            elapsed=self.clock() - start,
        )


def _evaluate(target: ReadinessTarget) -> bool:
    try:
        return target.predicate() is True
    except Exception as exc:  # noqa: BLE001 - a failing probe only means "not ready"
        LOGGER.debug("Readiness predicate for %s raised: %s", target.name, exc)
        return False


def database_target(
    compose: ComposeProvider,
    service: str,
    config: DatabaseProbeConfig,
) -> ReadinessTarget:
    """Return a target that succeeds once the database accepts connections."""

    def _accepts_connections() -> bool:
        result = compose.exec(service, ["pg_isready", "-U", config.user])
        return result.returncode == 0

    return ReadinessTarget(
        name="database",
        service=service,
        predicate=_accepts_connections,
        attempts=config.attempts,
        interval=config.interval,
    )


def asset_compiler_target(
    compose: ComposeProvider,
    service: str,
    config: AssetsProbeConfig,
) -> ReadinessTarget:
    """Return a target that succeeds once the compiler logs its success marker."""

    def _compiled() -> bool:
        result = compose.logs(service)
        if result.returncode != 0:
            return False
        return config.marker in (result.stdout or "")

    return ReadinessTarget(
        name="asset-compiler",
        service=service,
        predicate=_compiled,
        attempts=config.attempts,
        interval=config.interval,
    )


__all__ = [
    "ReadinessOutcome",
    "ReadinessProber",
    "ReadinessResult",
    "ReadinessTarget",
    "asset_compiler_target",
    "database_target",
]
