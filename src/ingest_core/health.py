"""Breaker health snapshot for status endpoints."""

from __future__ import annotations

from ingest_core.circuit_breaker import BreakerRegistry, CircuitState

STATUS_OK = "ok"
STATUS_DEGRADED = "degraded"


def breaker_health_report(registry: BreakerRegistry) -> dict[str, object]:
    """Summarize every registered breaker.

    The report is ``degraded`` when any breaker is not ``CLOSED``. Statuses
    are taken through ``get_status()``, so an ``OPEN`` breaker whose reset
    window has elapsed is reported as ``HALF_OPEN``.
    """
    statuses = registry.snapshot()
    healthy = all(status.state == CircuitState.CLOSED for status in statuses)
    return {
        "status": STATUS_OK if healthy else STATUS_DEGRADED,
        "breakers": [status.to_dict() for status in statuses],
    }
