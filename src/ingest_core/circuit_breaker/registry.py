"""Process-wide lookup of circuit breakers by dependency name.

Breaker state must be shared by every call site talking to the same dependency,
so breakers are only ever created through ``BreakerRegistry.get_or_create``.
The registry is constructed once per process and passed to whatever needs it;
tests build their own.
"""

import threading

from ingest_core.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from ingest_core.circuit_breaker.state import BreakerStatus
from ingest_core.clock import Clock, SystemClock
from ingest_core.logging import AnyLogger, get_logger, log_debug


class BreakerRegistry:
    """Append-only mapping from dependency name to ``CircuitBreaker``."""

    def __init__(
        self,
        *,
        default_config: CircuitBreakerConfig | None = None,
        clock: Clock | None = None,
        logger: AnyLogger | None = None,
    ) -> None:
        """Create an empty registry.

        Args:
            default_config: Config for breakers registered without one.
            clock: Time source handed to every breaker created here.
            logger: Structured logger handed to every breaker created here.
        """
        self._default_config = (
            CircuitBreakerConfig() if default_config is None else default_config
        )
        self._clock: Clock = SystemClock() if clock is None else clock
        self._logger: AnyLogger = get_logger(__name__) if logger is None else logger
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """Return the breaker for ``name``, creating it on first use.

        The first registration wins: ``config`` is ignored when ``name`` is
        already registered.
        """
        with self._lock:
            existing = self._breakers.get(name)
            if existing is not None:
                return existing
            breaker = CircuitBreaker(
                name,
                config=self._default_config if config is None else config,
                clock=self._clock,
                logger=self._logger,
            )
            self._breakers[name] = breaker
        log_debug(
            self._logger,
            "circuit_registered",
            breaker=name,
            failure_threshold=breaker.config.failure_threshold,
            reset_timeout=breaker.config.reset_timeout,
        )
        return breaker

    def get(self, name: str) -> CircuitBreaker | None:
        with self._lock:
            return self._breakers.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._breakers)

    def reset(self, name: str) -> None:
        """Reset one registered breaker. Raises ``KeyError`` for unknown names."""
        with self._lock:
            breaker = self._breakers[name]
        breaker.reset()

    def snapshot(self) -> list[BreakerStatus]:
        """Return ``get_status()`` of every breaker in registration order."""
        with self._lock:
            breakers = list(self._breakers.values())
        return [breaker.get_status() for breaker in breakers]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._breakers

    def __len__(self) -> int:
        with self._lock:
            return len(self._breakers)
