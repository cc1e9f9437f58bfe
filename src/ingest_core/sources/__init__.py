"""Per-dependency source fetchers and the default refresh lists."""

from ingest_core.sources.base import (
    CollectResult,
    FetchContext,
    SourceFetcher,
    require_list,
    require_mapping,
)
from ingest_core.sources.celestrak import CONSTELLATION_GROUPS, SatelliteCountsFetcher
from ingest_core.sources.government import DefenseSpendingFetcher, PatentsFetcher
from ingest_core.sources.neows import NeoObjectsFetcher
from ingest_core.sources.stations import IssCrewFetcher, IssPositionFetcher


def build_default_fetchers(context: FetchContext) -> list[SourceFetcher]:
    """Return every external source in refresh order."""
    return [
        IssCrewFetcher(context),
        NeoObjectsFetcher(context),
        SatelliteCountsFetcher(context),
        DefenseSpendingFetcher(context),
        PatentsFetcher(context),
        IssPositionFetcher(context),
    ]


def build_high_frequency_fetchers(context: FetchContext) -> list[SourceFetcher]:
    """Return the sources refreshed on the short schedule."""
    return [IssPositionFetcher(context)]


__all__ = [
    "CONSTELLATION_GROUPS",
    "CollectResult",
    "DefenseSpendingFetcher",
    "FetchContext",
    "IssCrewFetcher",
    "IssPositionFetcher",
    "NeoObjectsFetcher",
    "PatentsFetcher",
    "SatelliteCountsFetcher",
    "SourceFetcher",
    "build_default_fetchers",
    "build_high_frequency_fetchers",
    "require_list",
    "require_mapping",
]
