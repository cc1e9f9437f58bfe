"""Core circuit breaker implementation."""

import sys
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Final, TypeVar

from ingest_core.circuit_breaker.exceptions import CircuitOpenError
from ingest_core.circuit_breaker.state import BreakerStatus, CircuitState
from ingest_core.clock import Clock, SystemClock
from ingest_core.logging import AnyLogger, get_logger, log_debug, log_info, log_warning

T = TypeVar("T")


class NoFallback(Enum):
    """Marker type distinguishing "no fallback" from falsy fallback values."""

    NO_FALLBACK = "no_fallback"


NO_FALLBACK: Final = NoFallback.NO_FALLBACK


class _ProbeGate:
    """Allow at most one in-flight half-open probe per breaker instance."""

    def __init__(self) -> None:
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())
        self._thread_lock: threading.Lock | None = None
        if not self._gil_enabled:
            self._thread_lock = threading.Lock()
        self._held = False

    def try_acquire(self) -> bool:
        if self._thread_lock is None:
            if self._held:
                return False
            self._held = True
            return True

        with self._thread_lock:
            if self._held:
                return False
            self._held = True
            return True

    def release(self) -> None:
        if self._thread_lock is None:
            self._held = False
            return
        with self._thread_lock:
            self._held = False


@dataclass(slots=True, frozen=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures required before opening.
        reset_timeout: Seconds after the last failure before a probe is allowed.
    """

    failure_threshold: int = 5
    reset_timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.reset_timeout <= 0:
            raise ValueError("reset_timeout must be > 0")


class CircuitBreaker:
    """Stateful guard around calls to one named dependency.

    The breaker never retries. It counts the outcome of whatever unit of work it
    wraps, so a retrying fetch inside ``execute`` only registers as one failure
    once its own attempts are exhausted.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        clock: Clock | None = None,
        logger: AnyLogger | None = None,
    ) -> None:
        """Build a circuit breaker in the ``CLOSED`` state.

        Args:
            name: Dependency name used for registry lookup and logging.
            config: Breaker thresholds. Defaults to ``CircuitBreakerConfig()``.
            clock: Time source for reset-window checks. Defaults to the
                system clock.
            logger: Structured logger. Defaults to this module's logger.
        """
        self._name = name
        self._config = CircuitBreakerConfig() if config is None else config
        self._clock: Clock = SystemClock() if clock is None else clock
        self._logger: AnyLogger = get_logger(__name__) if logger is None else logger
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_at: datetime | None = None
        self._lock = threading.Lock()
        self._probe_gate = _ProbeGate()

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    @property
    def state(self) -> CircuitState:
        """Stored state, without applying the reset-window check."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_at(self) -> datetime | None:
        return self._last_failure_at

    def _reset_window(self) -> timedelta:
        return timedelta(seconds=self._config.reset_timeout)

    def _retry_after(self, now: datetime) -> float:
        if self._last_failure_at is None:
            return 0.0
        remaining = self._reset_window() - (now - self._last_failure_at)
        return max(remaining.total_seconds(), 0.0)

    def _apply_reset_window(self, now: datetime) -> bool:
        """Move ``OPEN`` to ``HALF_OPEN`` once the reset window has elapsed.

        Must be called with ``self._lock`` held. Returns whether the state changed.
        """
        if self._state != CircuitState.OPEN or self._last_failure_at is None:
            return False
        if now - self._last_failure_at < self._reset_window():
            return False
        self._state = CircuitState.HALF_OPEN
        return True

    def _shed(self, fallback: T | NoFallback, retry_after: float) -> T:
        if fallback is NO_FALLBACK:
            log_info(
                self._logger,
                "circuit_open_rejected",
                breaker=self._name,
                retry_after=retry_after,
            )
            raise CircuitOpenError(self._name, retry_after=retry_after)
        log_info(
            self._logger,
            "circuit_open_fallback",
            breaker=self._name,
            retry_after=retry_after,
        )
        return fallback

    def _record_success(self, *, is_probe: bool) -> None:
        with self._lock:
            was_closed = self._state == CircuitState.CLOSED
            self._failure_count = 0
            self._state = CircuitState.CLOSED
        if is_probe or not was_closed:
            log_info(self._logger, "circuit_probe_succeeded", breaker=self._name)

    def _record_failure(self, *, is_probe: bool) -> int:
        with self._lock:
            self._failure_count += 1
            self._last_failure_at = self._clock.now()
            half_open = is_probe or self._state == CircuitState.HALF_OPEN
            tripped = half_open or (
                self._state != CircuitState.OPEN
                and self._failure_count >= self._config.failure_threshold
            )
            if tripped:
                self._state = CircuitState.OPEN
            failure_count = self._failure_count
        if tripped:
            log_warning(
                self._logger,
                "circuit_opened",
                breaker=self._name,
                failures=failure_count,
                reset_timeout=self._config.reset_timeout,
                probe_failed=half_open,
            )
        return failure_count

    async def execute(
        self,
        func: Callable[[], Awaitable[T]],
        fallback: T | NoFallback = NO_FALLBACK,
    ) -> T:
        """Invoke ``func`` under circuit breaker protection.

        Args:
            func: Zero-argument async callable performing the dependency call.
            fallback: Value returned instead of raising when the circuit is
                open or the call fails. ``None`` and other falsy values are
                valid fallbacks; omit the argument to propagate errors.

        Returns:
            The result of ``func``, or ``fallback`` when one was supplied and
            the call was shed or failed.

        Raises:
            CircuitOpenError: When the circuit is open and no fallback was given.
            Exception: The original exception from ``func`` when no fallback
                was given.
        """
        now = self._clock.now()
        with self._lock:
            entered_half_open = self._apply_reset_window(now)
            state = self._state
            retry_after = self._retry_after(now)

        if entered_half_open:
            log_info(self._logger, "circuit_half_open", breaker=self._name)
        if state == CircuitState.OPEN:
            return self._shed(fallback, retry_after)

        is_probe = state == CircuitState.HALF_OPEN
        if is_probe and not self._probe_gate.try_acquire():
            return self._shed(fallback, 0.0)

        try:
            result = await func()
        except Exception as exc:
            failures = self._record_failure(is_probe=is_probe)
            if fallback is NO_FALLBACK:
                log_debug(
                    self._logger,
                    "circuit_call_failed",
                    breaker=self._name,
                    failures=failures,
                    threshold=self._config.failure_threshold,
                    error=str(exc),
                )
                raise
            log_warning(
                self._logger,
                "circuit_call_failed_fallback",
                breaker=self._name,
                failures=failures,
                threshold=self._config.failure_threshold,
                error=str(exc),
            )
            return fallback
        else:
            self._record_success(is_probe=is_probe)
            return result
        finally:
            if is_probe:
                self._probe_gate.release()

    def get_status(self) -> BreakerStatus:
        """Return a snapshot, applying the ``OPEN`` to ``HALF_OPEN`` check first."""
        with self._lock:
            entered_half_open = self._apply_reset_window(self._clock.now())
            status = BreakerStatus(
                name=self._name,
                state=self._state,
                failures=self._failure_count,
                last_failure=self._last_failure_at,
            )
        if entered_half_open:
            log_info(self._logger, "circuit_half_open", breaker=self._name)
        return status

    def reset(self) -> None:
        """Force the breaker back to a healthy ``CLOSED`` state."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_at = None
        log_info(self._logger, "circuit_reset", breaker=self._name)
