"""Active satellite counts per constellation from CelesTrak GP data."""

from __future__ import annotations

from types import MappingProxyType
from typing import ClassVar, NamedTuple

from ingest_core.circuit_breaker import CircuitBreakerConfig
from ingest_core.sources.base import CollectResult, FetchContext, SourceFetcher
from ingest_core.store import RefreshStatus

SAMPLE_SIZE = 5


class ConstellationGroup(NamedTuple):
    group: str
    display_name: str
    operator: str


CONSTELLATION_GROUPS = MappingProxyType(
    {
        "starlink": ConstellationGroup("starlink", "Starlink", "SpaceX"),
        "oneweb": ConstellationGroup("oneweb", "OneWeb", "Eutelsat OneWeb"),
        "planet": ConstellationGroup("planet", "Planet Labs", "Planet Labs"),
        "spire": ConstellationGroup("spire", "Spire Global", "Spire Global"),
        "iridium": ConstellationGroup(
            "iridium-NEXT", "Iridium NEXT", "Iridium Communications"
        ),
        "globalstar": ConstellationGroup("globalstar", "Globalstar", "Globalstar"),
        "orbcomm": ConstellationGroup("orbcomm", "Orbcomm", "Orbcomm"),
        "gps-ops": ConstellationGroup("gps-ops", "GPS", "US Space Force"),
        "galileo": ConstellationGroup("galileo", "Galileo", "ESA/EU"),
        "beidou": ConstellationGroup("beidou", "BeiDou", "CNSA"),
        "glonass": ConstellationGroup("glo-ops", "GLONASS", "Roscosmos"),
    }
)


class SatelliteCountsFetcher(SourceFetcher):
    """Count active satellites in each tracked constellation.

    CelesTrak rate-limits aggressively per IP, so requests are spaced by
    ``request_interval`` and a failing group is skipped rather than failing the
    whole run. Once the breaker opens the remaining groups are shed without a
    request and without waiting.
    """

    name = "satellite-counts"
    module = "constellations"
    breaker_name = "celestrak-gp"
    breaker_config: ClassVar[CircuitBreakerConfig] = CircuitBreakerConfig(
        failure_threshold=3,
        reset_timeout=300.0,
    )

    def __init__(
        self,
        context: FetchContext,
        *,
        request_interval: float | None = None,
    ) -> None:
        if request_interval is None:
            request_interval = context.settings.celestrak_request_interval_seconds
        super().__init__(context, request_interval=request_interval)

    async def collect(self) -> CollectResult:
        url = f"{self.settings.celestrak_base_url}/gp.php"
        updated = 0
        for key, config in CONSTELLATION_GROUPS.items():
            calls_before = self._api_calls
            data = await self._request_json(
                url,
                params={"GROUP": config.group, "FORMAT": "json"},
                fallback=None,
            )
            if isinstance(data, list):
                await self._upsert(
                    key,
                    section="constellation-data",
                    data={
                        "name": config.display_name,
                        "operator": config.operator,
                        "activeSatellites": len(data),
                        "sampleSatellites": [
                            {
                                "name": entry.get("OBJECT_NAME"),
                                "noradId": entry.get("NORAD_CAT_ID"),
                            }
                            for entry in data[:SAMPLE_SIZE]
                            if isinstance(entry, dict)
                        ],
                    },
                    source_url=f"{url}?GROUP={config.group}",
                )
                updated += 1
            if self._api_calls > calls_before:
                await self._throttle()

        if updated == 0:
            return CollectResult(
                items_updated=0,
                items_checked=len(CONSTELLATION_GROUPS),
                status=RefreshStatus.FAILED,
                error_message="No constellation group could be fetched.",
            )
        return CollectResult(
            items_updated=updated,
            items_checked=len(CONSTELLATION_GROUPS),
        )
