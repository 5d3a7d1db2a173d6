"""Per-dependency circuit breakers.

Each breaker tracks consecutive failures of one analyzer. After
`failure_threshold` consecutive failures it opens and rejects calls until
`cooldown_seconds` have elapsed; the next call is then let through as a probe
(half-open). A successful probe closes the breaker, a failed probe re-opens it
with a fresh cool-down.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Literal, Mapping

BreakerStatus = Literal["closed", "open", "half_open"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreakerState:
    dependency: str
    state: BreakerStatus
    failure_count: int
    total_failures: int
    total_successes: int
    opened_at: float | None = None
    cooldown_until: float | None = None
    last_error: str | None = None

    @property
    def is_open(self) -> bool:
        return self.state == "open"


class CircuitBreaker:
    def __init__(
        self,
        dependency: str,
        *,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        log: logging.Logger | None = None,
    ):
        if isinstance(failure_threshold, bool) or not isinstance(failure_threshold, int):
            raise TypeError("failure_threshold must be an int")
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1 (got {failure_threshold})")
        if cooldown_seconds < 0:
            raise ValueError(f"cooldown_seconds must be >= 0 (got {cooldown_seconds})")

        self.dependency = dependency
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = float(cooldown_seconds)
        self._clock = clock
        self._logger = log or logger
        self._lock = threading.Lock()

        self._state: BreakerStatus = "closed"
        self._failure_count = 0
        self._total_failures = 0
        self._total_successes = 0
        self._opened_at: float | None = None
        self._cooldown_until: float | None = None
        self._last_error: str | None = None
        self._probe_in_flight = False

    def allow_call(self) -> bool:
        """Return True if a call may proceed (closed, or a half-open probe)."""

        with self._lock:
            if self._state == "closed":
                return True
            if self._state == "open":
                now = self._clock()
                if self._cooldown_until is not None and now >= self._cooldown_until:
                    self._transition("half_open")
                else:
                    return False
            # half-open: a single probe at a time
            if self._probe_in_flight:
                return False
            self._probe_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            self._total_successes += 1
            self._failure_count = 0
            self._last_error = None
            self._probe_in_flight = False
            if self._state != "closed":
                self._opened_at = None
                self._cooldown_until = None
                self._transition("closed")

    def record_failure(self, error: BaseException | str | None = None) -> None:
        with self._lock:
            self._total_failures += 1
            self._failure_count += 1
            if error is not None:
                self._last_error = str(error)
            was_probe = self._state == "half_open"
            self._probe_in_flight = False
            if was_probe or self._failure_count >= self.failure_threshold:
                now = self._clock()
                self._opened_at = now
                self._cooldown_until = now + self.cooldown_seconds
                if self._state != "open":
                    self._transition("open")

    def release_probe(self) -> None:
        """Give back a half-open probe slot whose outcome will never be recorded."""

        with self._lock:
            self._probe_in_flight = False

    def snapshot(self) -> BreakerState:
        with self._lock:
            state = self._state
            # Report a lapsed cool-down without mutating state; the probe happens on next call.
            if (
                state == "open"
                and self._cooldown_until is not None
                and self._clock() >= self._cooldown_until
            ):
                state = "half_open"
            return BreakerState(
                dependency=self.dependency,
                state=state,
                failure_count=self._failure_count,
                total_failures=self._total_failures,
                total_successes=self._total_successes,
                opened_at=self._opened_at,
                cooldown_until=self._cooldown_until,
                last_error=self._last_error,
            )

    def reset(self) -> None:
        with self._lock:
            self._state = "closed"
            self._failure_count = 0
            self._opened_at = None
            self._cooldown_until = None
            self._last_error = None
            self._probe_in_flight = False

    def _transition(self, new_state: BreakerStatus) -> None:
        old_state = self._state
        self._state = new_state
        if new_state == "open":
            self._logger.warning(
                "Circuit breaker opened for %s (failures=%d, cooldown=%.1fs)",
                self.dependency,
                self._failure_count,
                self.cooldown_seconds,
            )
        else:
            self._logger.info(
                "Circuit breaker %s -> %s for %s", old_state, new_state, self.dependency
            )


class CircuitBreakerBoard:
    """Independent breakers keyed by dependency name, created on first use."""

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        log: logging.Logger | None = None,
    ):
        self._failure_threshold = failure_threshold
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._logger = log
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def breaker(self, dependency: str) -> CircuitBreaker:
        with self._lock:
            existing = self._breakers.get(dependency)
            if existing is None:
                existing = CircuitBreaker(
                    dependency,
                    failure_threshold=self._failure_threshold,
                    cooldown_seconds=self._cooldown_seconds,
                    clock=self._clock,
                    log=self._logger,
                )
                self._breakers[dependency] = existing
            return existing

    def discard(self, dependency: str) -> None:
        with self._lock:
            self._breakers.pop(dependency, None)

    def snapshot(self) -> Mapping[str, BreakerState]:
        with self._lock:
            breakers = list(self._breakers.items())
        return MappingProxyType({name: b.snapshot() for name, b in breakers})
