"""Circuit breaker for unreliable upstream calls.

A breaker wraps any awaitable operation (AI provider calls, external APIs,
database access) and stops attempting it once it keeps failing. The phase is
computed lazily from stored timestamps, so no background timer is needed.
"""

import functools
import math
import threading
import time
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

from loguru import logger

from tenant_sandbox.exceptions import CircuitBreakerError
from tenant_sandbox.models import BreakerOptions, BreakerPhase, BreakerStats

T = TypeVar("T")
P = ParamSpec("P")


class CircuitBreaker:
    """Three-phase circuit breaker (closed, open, half-open).

    - closed: calls pass; ``failure_threshold`` consecutive failures open the circuit.
    - open: calls are rejected with ``CircuitBreakerError`` until ``reset_timeout_ms``
      has elapsed since the last failure.
    - half-open: up to ``half_open_max_attempts`` probes may be in flight at once;
      ``success_threshold`` consecutive probe successes close the circuit, a single
      probe failure reopens it and restarts the cool-down.

    Bookkeeping is guarded by a lock; the wrapped operation runs outside of it.
    """

    def __init__(
        self,
        name: str = "default",
        options: BreakerOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
        **overrides: Any,
    ):
        self.name = name
        if options is None:
            self.options = BreakerOptions(**overrides)
        elif overrides:
            self.options = options.model_copy(update=overrides)
        else:
            self.options = options
        self._clock = clock
        self._lock = threading.Lock()

        self._is_open = False
        self._failures = 0
        self._successes = 0
        self._last_failure_time: float | None = None
        self._last_success_time: float | None = None
        self._probes_used = 0
        self._probe_window: float | None = None

    # Phase computation (callers hold the lock)

    def _phase(self, now: float) -> BreakerPhase:
        if not self._is_open:
            return BreakerPhase.CLOSED
        if self._elapsed_ms(now) >= self.options.reset_timeout_ms:
            return BreakerPhase.HALF_OPEN
        return BreakerPhase.OPEN

    def _elapsed_ms(self, now: float) -> float:
        if self._last_failure_time is None:
            return math.inf
        return (now - self._last_failure_time) * 1000

    def _retry_after_ms(self, now: float) -> int:
        if not self._is_open:
            return 0
        return max(0, math.ceil(self.options.reset_timeout_ms - self._elapsed_ms(now)))

    # Public API

    def get_state(self) -> BreakerPhase:
        with self._lock:
            return self._phase(self._clock())

    @property
    def state(self) -> BreakerPhase:
        return self.get_state()

    def is_allowed(self) -> bool:
        """Whether a call made now would be attempted."""
        with self._lock:
            phase = self._phase(self._clock())
            if phase is BreakerPhase.CLOSED:
                return True
            if phase is BreakerPhase.OPEN:
                return False
            if self._probe_window != self._last_failure_time:
                return True
            return self._probes_used < self.options.half_open_max_attempts

    def get_time_until_reset(self) -> int:
        with self._lock:
            return self._retry_after_ms(self._clock())

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Runs ``operation`` under breaker protection.

        Args:
            operation: Zero-argument callable returning an awaitable.

        Returns:
            The awaited result of ``operation``.

        Raises:
            CircuitBreakerError: If the circuit is open or the probe budget is
                exhausted. ``operation`` is not invoked.
            Exception: Whatever ``operation`` raised, unchanged.
        """
        probe_window = self._admit()

        try:
            result = await operation()
        except Exception:
            self._record_failure(probe_window)
            raise
        except BaseException:
            # Cancellation is not a verdict on the dependency
            self._release_probe(probe_window)
            raise

        self._record_success(probe_window)
        return result

    def reset(self) -> None:
        """Forces the circuit closed with zeroed counters."""
        with self._lock:
            was_open = self._is_open
            self._is_open = False
            self._failures = 0
            self._successes = 0
            self._last_failure_time = None
            self._last_success_time = None
            self._probes_used = 0
            self._probe_window = None

        if was_open:
            logger.info(f"Circuit breaker '{self.name}' reset")
            self._notify(BreakerPhase.CLOSED)

    def force_open(self) -> None:
        """Opens the circuit immediately, restarting the cool-down."""
        with self._lock:
            now = self._clock()
            previous = self._phase(now)
            self._is_open = True
            self._last_failure_time = now
            self._successes = 0
            self._probes_used = 0

        logger.warning(f"Circuit breaker '{self.name}' forced open")
        if previous is not BreakerPhase.OPEN:
            self._notify(BreakerPhase.OPEN)

    def get_stats(self) -> BreakerStats:
        with self._lock:
            now = self._clock()
            return BreakerStats(
                name=self.name,
                phase=self._phase(now),
                consecutive_failures=self._failures,
                consecutive_successes=self._successes,
                half_open_probes_used=self._probes_used,
                last_failure_time=self._last_failure_time,
                last_success_time=self._last_success_time,
                retry_after_ms=self._retry_after_ms(now),
            )

    # Bookkeeping

    def _admit(self) -> float | None:
        """Decides whether a call may proceed. Returns the probe window token for probes."""
        flipped = False
        with self._lock:
            now = self._clock()
            phase = self._phase(now)

            if phase is BreakerPhase.OPEN:
                raise CircuitBreakerError(
                    f"Circuit breaker '{self.name}' is open - too many recent failures",
                    breaker_name=self.name,
                    retry_after_ms=self._retry_after_ms(now),
                )

            if phase is BreakerPhase.CLOSED:
                return None

            if self._probe_window != self._last_failure_time:
                # First call after the cool-down opens a fresh probe window
                self._probe_window = self._last_failure_time
                self._probes_used = 0
                self._successes = 0
                flipped = True

            if self._probes_used >= self.options.half_open_max_attempts:
                raise CircuitBreakerError(
                    f"Circuit breaker '{self.name}' is half-open and its probe budget is exhausted",
                    breaker_name=self.name,
                    retry_after_ms=self._retry_after_ms(now),
                )

            self._probes_used += 1
            window = self._probe_window

        if flipped:
            logger.info(f"Circuit breaker '{self.name}' half-open, probing")
            self._notify(BreakerPhase.HALF_OPEN)
        return window

    def _is_current_probe(self, window: float | None) -> bool:
        return window is not None and self._is_open and window == self._probe_window == self._last_failure_time

    def _release_probe(self, window: float | None) -> None:
        with self._lock:
            if self._is_current_probe(window):
                self._probes_used = max(0, self._probes_used - 1)

    def _record_success(self, window: float | None) -> None:
        closed = False
        with self._lock:
            self._last_success_time = self._clock()
            self._failures = 0

            if self._is_current_probe(window):
                self._probes_used = max(0, self._probes_used - 1)
                self._successes += 1
                if self._successes >= self.options.success_threshold:
                    successes = self._successes
                    self._is_open = False
                    self._successes = 0
                    self._probes_used = 0
                    self._probe_window = None
                    closed = True
            elif not self._is_open:
                self._successes += 1

        if closed:
            logger.info(f"Circuit breaker '{self.name}': closed after {successes} successes")
            self._notify(BreakerPhase.CLOSED)

    def _record_failure(self, window: float | None) -> None:
        opened = False
        with self._lock:
            now = self._clock()
            was_probe = self._is_current_probe(window)
            self._failures += 1
            self._successes = 0
            self._last_failure_time = now

            if was_probe:
                # Spend the rest of the budget; the new failure time restarts the cool-down
                self._probes_used = self.options.half_open_max_attempts
                opened = True
            elif not self._is_open and self._failures >= self.options.failure_threshold:
                self._is_open = True
                opened = True
            failures = self._failures

        if opened:
            logger.warning(f"Circuit breaker '{self.name}': opened after {failures} failures")
            self._notify(BreakerPhase.OPEN)

    def _notify(self, phase: BreakerPhase) -> None:
        callback = self.options.on_state_change
        if callback is None:
            return
        try:
            callback(phase)
        except Exception as e:
            logger.error(f"Circuit breaker '{self.name}' state change callback error: {e}")


PRESET_OPTIONS: dict[str, BreakerOptions] = {
    # AI calls are expected to fail now and then
    "ai": BreakerOptions(failure_threshold=5, success_threshold=2, reset_timeout_ms=30_000, half_open_max_attempts=2),
    "external-api": BreakerOptions(
        failure_threshold=3, success_threshold=2, reset_timeout_ms=60_000, half_open_max_attempts=1
    ),
    # Database trouble is critical, trip fast
    "database": BreakerOptions(
        failure_threshold=3, success_threshold=3, reset_timeout_ms=10_000, half_open_max_attempts=1
    ),
}


class BreakerRegistry:
    """Named, shared circuit breakers, one per protected dependency."""

    def __init__(
        self,
        presets: dict[str, BreakerOptions] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._presets = dict(presets) if presets is not None else dict(PRESET_OPTIONS)
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_or_create(self, name: str, options: BreakerOptions | None = None, **overrides: Any) -> CircuitBreaker:
        """Returns the breaker registered under ``name``, creating it on first use.

        Options only apply on creation; later calls return the existing instance.
        """
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name,
                    options=options or self._presets.get(name),
                    clock=self._clock,
                    **overrides,
                )
                self._breakers[name] = breaker
            return breaker

    def get(self, name: str) -> CircuitBreaker:
        with self._lock:
            return self._breakers[name]

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._breakers)

    def reset_all(self) -> None:
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()

    def stats(self) -> list[BreakerStats]:
        with self._lock:
            breakers = list(self._breakers.values())
        return [breaker.get_stats() for breaker in breakers]


def create_circuit_breaker(name: str, options: BreakerOptions | None = None, **overrides: Any) -> CircuitBreaker:
    return CircuitBreaker(name, options=options, **overrides)


def with_circuit_breaker(
    breaker: CircuitBreaker,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator routing every call of an async function through ``breaker``."""

    def decorator(fn: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await breaker.execute(lambda: fn(*args, **kwargs))

        return wrapper

    return decorator
