"""In-process async circuit breaker.

Key behavior notes:
  - One breaker guards one named dependency. Breakers are shared by name through
    ``BreakerRegistry`` so every call site sees the same failure history.
  - ``OPEN`` becomes ``HALF_OPEN`` lazily: the reset window is evaluated on every
    ``execute()`` and ``get_status()`` call against an injectable clock. There is
    no background timer.
  - Half-open probing admits at most one in-flight call per breaker. Other
    callers are shed as if the circuit were still ``OPEN``.
  - ``execute()`` accepts an optional fallback. ``NO_FALLBACK`` (the default)
    means errors propagate; ``None`` is a real fallback value.
"""

from ingest_core.circuit_breaker.breaker import (
    NO_FALLBACK,
    CircuitBreaker,
    CircuitBreakerConfig,
    NoFallback,
)
from ingest_core.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from ingest_core.circuit_breaker.registry import BreakerRegistry
from ingest_core.circuit_breaker.state import BreakerStatus, CircuitState

__all__ = [
    "NO_FALLBACK",
    "BreakerRegistry",
    "BreakerStatus",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "NoFallback",
]
