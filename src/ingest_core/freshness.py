"""Per-module time-to-live and refresh priority for stored content."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from types import MappingProxyType


class RefreshPriority(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"


@dataclass(frozen=True)
class FreshnessPolicy:
    """How long content of one module stays fresh."""

    ttl_hours: int
    priority: RefreshPriority

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=self.ttl_hours)


DEFAULT_POLICY = FreshnessPolicy(ttl_hours=720, priority=RefreshPriority.MODERATE)

FRESHNESS_POLICIES = MappingProxyType(
    {
        "space-stations": FreshnessPolicy(24, RefreshPriority.CRITICAL),
        "constellations": FreshnessPolicy(168, RefreshPriority.HIGH),
        "space-defense": FreshnessPolicy(168, RefreshPriority.HIGH),
        "asteroid-watch": FreshnessPolicy(168, RefreshPriority.MODERATE),
        "patents": FreshnessPolicy(720, RefreshPriority.MODERATE),
    }
)


def get_policy(module: str) -> FreshnessPolicy:
    """Return the policy for ``module``, falling back to the default."""
    return FRESHNESS_POLICIES.get(module, DEFAULT_POLICY)


def expires_at(module: str, from_: datetime) -> datetime:
    """Return when content refreshed at ``from_`` stops being fresh."""
    return from_ + get_policy(module).ttl
