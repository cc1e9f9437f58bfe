"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class BreakerStatus:
    """Point-in-time view of one breaker, used for health reporting.

    Attributes:
        name: Breaker name.
        state: Breaker state after the reset-window check was applied.
        failures: Consecutive failures since the last success or reset.
        last_failure: Timestamp of the last recorded failure, if any.
    """

    name: str
    state: CircuitState
    failures: int
    last_failure: datetime | None

    def to_dict(self) -> dict[str, object]:
        """Render the status as a JSON-compatible mapping."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failures": self.failures,
            "lastFailure": (
                None if self.last_failure is None else self.last_failure.isoformat()
            ),
        }
