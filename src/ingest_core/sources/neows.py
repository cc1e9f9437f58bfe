"""Near-Earth object close approaches from NASA NeoWs."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, ClassVar

from ingest_core.circuit_breaker import CircuitBreakerConfig
from ingest_core.errors import SourcePayloadError
from ingest_core.sources.base import CollectResult, SourceFetcher, require_mapping

FEED_WINDOW_DAYS = 7
MAX_CLOSE_APPROACHES = 20


def _as_float(value: object) -> float:
    try:
        return float(str(value))
    except ValueError:
        return 0.0


def _miss_distance_km(neo: dict[str, Any]) -> float:
    return _as_float(neo["close_approach_data"][0]["miss_distance"]["kilometers"])


def _summarize(neo: dict[str, Any]) -> dict[str, object]:
    approach = neo["close_approach_data"][0]
    diameter = neo.get("estimated_diameter", {}).get("meters", {})
    return {
        "id": neo.get("id"),
        "name": str(neo.get("name", "")).replace("(", "").replace(")", "").strip(),
        "nasaUrl": neo.get("nasa_jpl_url"),
        "magnitude": neo.get("absolute_magnitude_h"),
        "diameterMin": round(_as_float(diameter.get("estimated_diameter_min"))),
        "diameterMax": round(_as_float(diameter.get("estimated_diameter_max"))),
        "isPotentiallyHazardous": bool(neo.get("is_potentially_hazardous_asteroid")),
        "approachDate": approach.get("close_approach_date"),
        "velocityKmH": round(
            _as_float(approach.get("relative_velocity", {}).get("kilometers_per_hour"))
        ),
        "missDistanceKm": round(_miss_distance_km(neo)),
        "missDistanceLunar": round(
            _as_float(approach.get("miss_distance", {}).get("lunar")), 2
        ),
        "orbitingBody": approach.get("orbiting_body"),
    }


class NeoObjectsFetcher(SourceFetcher):
    """Closest upcoming asteroid approaches for the next week."""

    name = "neo-objects"
    module = "asteroid-watch"
    breaker_name = "nasa-neows"
    breaker_config: ClassVar[CircuitBreakerConfig] = CircuitBreakerConfig(
        failure_threshold=3,
        reset_timeout=120.0,
    )

    async def collect(self) -> CollectResult:
        today = self._context.clock.now().date()
        end = today + timedelta(days=FEED_WINDOW_DAYS)
        url = f"{self.settings.nasa_neows_base_url}/feed"
        data = require_mapping(
            await self._request_json(
                url,
                params={
                    "start_date": today.isoformat(),
                    "end_date": end.isoformat(),
                    "api_key": self.settings.nasa_api_key,
                },
            ),
            "NeoWs feed",
        )
        by_date = data.get("near_earth_objects")
        if not isinstance(by_date, dict):
            raise SourcePayloadError("NeoWs feed has no near_earth_objects.")

        neos = [
            neo
            for day in by_date.values()
            if isinstance(day, list)
            for neo in day
            if isinstance(neo, dict) and neo.get("close_approach_data")
        ]
        neos.sort(key=_miss_distance_km)
        approaches = [_summarize(neo) for neo in neos[:MAX_CLOSE_APPROACHES]]
        element_count = int(data.get("element_count", len(neos)))

        await self._upsert(
            "close-approaches-live",
            section="close-approaches",
            data={
                "approaches": approaches,
                "totalCount": element_count,
                "dateRange": {"start": today.isoformat(), "end": end.isoformat()},
                "hazardousCount": sum(
                    1 for approach in approaches if approach["isPotentiallyHazardous"]
                ),
            },
            source_url=url,
        )
        await self._upsert(
            "neo-stats-live",
            section="stats",
            data={
                "weeklyApproachCount": element_count,
                "hazardousCount": sum(
                    1 for neo in neos if neo.get("is_potentially_hazardous_asteroid")
                ),
                "closestApproach": approaches[0] if approaches else None,
            },
            source_url=url,
        )
        return CollectResult(items_updated=2, items_checked=element_count)
